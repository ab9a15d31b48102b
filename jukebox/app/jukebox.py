import logging
import threading
from pathlib import Path
from typing import Dict

from jukebox.cache.media_cache import MediaCache
from jukebox.config import JukeboxConfig
from jukebox.outputs.base_output import OutputCapability
from jukebox.outputs.factory import create_output
from jukebox.playback.controller import PlaylistController
from jukebox.reporting.reporters import LogReporter, WebhookReporter
from jukebox.resolver.ytdlp_resolver import YtDlpTrackResolver
from jukebox.state.playlist_store import PlaylistStore

logger = logging.getLogger(__name__)


class Jukebox:
    """
    Process-wide registry of per-guild PlaylistControllers.

    Owns the shared components (output capability, MediaCache, resolver,
    PlaylistStore, reporter) and creates one controller per guild on
    first use. Different guilds play independently; each controller
    serializes its own guild's work.
    """

    def __init__(
        self,
        config: JukeboxConfig,
        output: OutputCapability,
        cache: MediaCache,
        resolver,
        store,
        reporter,
    ):
        """
        Args:
            config: Supplies volume, ramp and timeout settings for new controllers
            output: Output capability shared by all guilds
            cache: Shared MediaCache
            resolver: Track resolver
            store: Playlist store
            reporter: Reporting sink
        """
        self.config = config
        self.output = output
        self.cache = cache
        self.resolver = resolver
        self.store = store
        self.reporter = reporter

        self._controllers: Dict[str, PlaylistController] = {}
        self._lock = threading.Lock()
        self._shutdown_initiated = False

    @classmethod
    def from_config(cls, config: JukeboxConfig) -> "Jukebox":
        """
        Build a Jukebox and its shared components from configuration.

        Args:
            config: Validated JukeboxConfig
        """
        if config.webhook_url:
            reporter = WebhookReporter(config.webhook_url)
        else:
            reporter = LogReporter()

        jukebox = cls(
            config,
            output=create_output(config),
            cache=MediaCache(Path(config.cache_dir), max_workers=config.download_workers),
            resolver=YtDlpTrackResolver(),
            store=PlaylistStore(config.db_path),
            reporter=reporter,
        )
        logger.info(
            f"[JUKEBOX] Ready (output={config.output_mode}, cache={config.cache_dir}, "
            f"db={config.db_path}, reporter={type(reporter).__name__})"
        )
        return jukebox

    def controller_for(self, guild_id: str) -> PlaylistController:
        """
        Return the guild's controller, creating it on first use.

        Raises:
            RuntimeError: If the jukebox is shutting down
        """
        with self._lock:
            if self._shutdown_initiated:
                raise RuntimeError("jukebox is shutting down")
            controller = self._controllers.get(guild_id)
            if controller is None:
                controller = PlaylistController(
                    guild_id,
                    output=self.output,
                    cache=self.cache,
                    resolver=self.resolver,
                    store=self.store,
                    reporter=self.reporter,
                    volume=self.config.default_volume,
                    ramp_steps=self.config.ramp_steps,
                    ramp_interval_ms=self.config.ramp_interval_ms,
                    command_timeout_sec=self.config.command_timeout_sec,
                )
                self._controllers[guild_id] = controller
            return controller

    def guild_ids(self):
        with self._lock:
            return list(self._controllers)

    def shutdown(self) -> None:
        """Stop every guild, then close the cache and the store. Idempotent."""
        with self._lock:
            if self._shutdown_initiated:
                logger.debug("[JUKEBOX] Shutdown already in progress")
                return
            self._shutdown_initiated = True
            controllers = list(self._controllers.values())

        logger.info(f"[JUKEBOX] Shutting down {len(controllers)} guild(s)")
        for controller in controllers:
            try:
                controller.shutdown()
            except Exception as e:
                logger.error(f"[JUKEBOX] Error shutting down {controller.guild_id}: {e}", exc_info=True)

        self.cache.close(wait=False)
        close_store = getattr(self.store, "close", None)
        if close_store is not None:
            close_store()
        logger.info("[JUKEBOX] Shutdown complete")
