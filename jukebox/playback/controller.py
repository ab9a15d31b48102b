"""
Playlist Controller for the Jukebox playback engine.

Orchestrates one guild's playback: receives user intents, mutates the
Playlist, materializes remote tracks through MediaCache, drives the
PlaybackSession, and reacts to finished notifications to decide what
plays next.

Every intent and every finished notification runs on the guild's
SessionMailbox worker, one at a time, in arrival order. Public methods
never raise: failures come back as CommandResult values.

Natural-end transitions:
    repeat one                  -> replay the current track
    repeat all, cursor at last  -> rewind, advance, play
    otherwise                   -> advance and play, or go idle at the end
"""

import logging
import os
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from jukebox.cache.media_cache import CacheStatus, MediaCache
from jukebox.outputs.base_output import OutputCapability
from jukebox.playback.errors import (
    CommandResult,
    DownloadFailed,
    ErrorKind,
    IndexOutOfRange,
    InvalidArgument,
    JukeboxError,
    NoOutputTarget,
)
from jukebox.playback.mailbox import MailboxClosed, SessionMailbox
from jukebox.playback.playback_session import (
    FinishedNotification,
    PlaybackSession,
    StopReason,
    validate_volume,
)
from jukebox.playback.playlist import Playlist, RepeatMode
from jukebox.playback.track import Track
from jukebox.state.now_playing_state import NowPlayingState, NowPlayingStateManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestScope:
    """
    Where a request came from.

    Attributes:
        guild_id: Guild (server) owning the session
        channel_id: Text channel to report to; also namespaces saved playlists
        user_id: Requesting user
        voice_target: Output target the requester is in, if any
    """
    guild_id: str
    channel_id: str
    user_id: Optional[str] = None
    voice_target: Optional[str] = None


def _looks_like_url(query: str) -> bool:
    return query.startswith("http://") or query.startswith("https://")


class PlaylistController:
    """
    Serializes all playback-affecting work for one guild.

    The controller is the only writer of its Playlist and the only driver
    of its PlaybackSession.
    """

    def __init__(
        self,
        guild_id: str,
        output: OutputCapability,
        cache: MediaCache,
        resolver,
        store,
        reporter,
        volume: float = 1.0,
        ramp_steps: int = 20,
        ramp_interval_ms: int = 10,
        command_timeout_sec: Optional[float] = 120.0,
    ):
        """
        Initialize the controller and start its mailbox worker.

        Args:
            guild_id: Guild this controller serves
            output: Output capability used to join voice targets
            cache: Shared MediaCache
            resolver: Track resolver (search(query), title_of(url))
            store: Playlist store (save_playlist, load_playlist)
            reporter: Reporting sink (notify(scope, text))
            volume: Playback volume for new tracks, in [0, 2]
            ramp_steps: Ticks per volume ramp
            ramp_interval_ms: Milliseconds between ramp ticks
            command_timeout_sec: Max seconds a caller waits for a command
        """
        self.guild_id = guild_id
        self._cache = cache
        self._resolver = resolver
        self._store = store
        self._reporter = reporter
        self._volume = validate_volume(volume)
        self._ramp_steps = ramp_steps
        self._ramp_interval_ms = ramp_interval_ms
        self._command_timeout = command_timeout_sec

        self._playlist = Playlist()
        self._now_playing = NowPlayingStateManager()
        self._report_scope: Optional[RequestScope] = None
        # Natural ends at or below this generation were overtaken by an intent
        self._superseded_generation = 0

        self._mailbox = SessionMailbox(name=guild_id)
        self._session = PlaybackSession(output, on_finished=self._post_finished, volume=self._volume, name=guild_id)

        logger.info(f"[CONTROLLER] {guild_id}: initialized")

    # ------------------------------------------------------------------
    # Introspection (tests and command layer)
    # ------------------------------------------------------------------

    @property
    def session(self) -> PlaybackSession:
        return self._session

    @property
    def playlist(self) -> Playlist:
        """The live playlist. Read it only from the mailbox or after sync()."""
        return self._playlist

    def sync(self, timeout: Optional[float] = None) -> None:
        """Block until every job queued before this call has run."""
        self._mailbox.call(lambda: None, timeout=timeout)

    # ------------------------------------------------------------------
    # Boundary
    # ------------------------------------------------------------------

    def _run(self, name: str, job: Callable[[], CommandResult], scope: Optional[RequestScope] = None) -> CommandResult:
        """
        Run a command body on the mailbox and wait up to the command timeout.

        A command still queued at the timeout is cancelled and changes
        nothing. A command already running keeps running; the caller gets a
        pending result and the final message goes to the reporter.
        """
        def guarded() -> CommandResult:
            return self._guarded(name, job, scope)

        if self._mailbox.in_worker():
            return guarded()
        try:
            future = self._mailbox.submit(guarded)
        except MailboxClosed:
            return CommandResult(ok=False, message="the player is shutting down.", error=ErrorKind.INTERNAL)

        try:
            return future.result(timeout=self._command_timeout)
        except FutureTimeout:
            if future.cancel():
                logger.warning(f"[CONTROLLER] {self.guild_id}: {name} cancelled, still queued after {self._command_timeout}s")
                return CommandResult(
                    ok=False,
                    message="I'm too busy right now, nothing was changed. Try again in a bit.",
                    error=ErrorKind.INTERNAL,
                )
            logger.warning(f"[CONTROLLER] {self.guild_id}: {name} still running after {self._command_timeout}s")
            future.add_done_callback(lambda done: self._report_late(name, scope, done))
            return CommandResult(ok=True, message="Still working on that, I'll let you know when it's done.", pending=True)

    def _report_late(self, name: str, scope: Optional[RequestScope], future) -> None:
        result: CommandResult = future.result()
        logger.info(f"[CONTROLLER] {self.guild_id}: late {name} finished (ok={result.ok}): {result.message}")
        scope = scope or self._report_scope
        if scope is None:
            return
        try:
            self._reporter.notify(scope, result.message)
        except Exception as e:
            logger.warning(f"[CONTROLLER] {self.guild_id}: reporter failed: {e}")

    def _guarded(self, name: str, job: Callable[[], CommandResult], scope: Optional[RequestScope]) -> CommandResult:
        if scope is not None:
            self._report_scope = scope
        try:
            return job()
        except JukeboxError as e:
            logger.info(f"[CONTROLLER] {self.guild_id}: {name} failed ({e.kind.value}): {e}")
            return CommandResult.failure(e)
        except Exception as e:
            logger.error(f"[CONTROLLER] {self.guild_id}: {name} crashed: {e}", exc_info=True)
            return CommandResult(ok=False, message=f"something went wrong: {e}", error=ErrorKind.INTERNAL)

    def _report(self, text: str) -> None:
        if self._report_scope is None:
            logger.debug(f"[CONTROLLER] {self.guild_id}: no report scope for: {text}")
            return
        try:
            self._reporter.notify(self._report_scope, text)
        except Exception as e:
            logger.warning(f"[CONTROLLER] {self.guild_id}: reporter failed: {e}")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def play_query(self, scope: RequestScope, query: str) -> CommandResult:
        """Add a URL, local file, or search result; start it if nothing is playing."""
        return self._run("play", lambda: self._do_play_query(scope, query), scope)

    def next(self) -> CommandResult:
        return self._run("next", self._do_next)

    def back(self) -> CommandResult:
        return self._run("back", self._do_back)

    def list(self) -> CommandResult:
        return self._run("list", self._do_list)

    def clear(self) -> CommandResult:
        return self._run("clear", self._do_clear)

    def delete_at(self, index) -> CommandResult:
        return self._run("delete", lambda: self._do_delete_at(index))

    def set_repeat(self, mode=None) -> CommandResult:
        """Set the repeat mode; with no mode, report the current one."""
        return self._run("repeat", lambda: self._do_set_repeat(mode))

    def repeat_mode(self) -> CommandResult:
        return self.set_repeat(None)

    # Saved playlists are namespaced by the requester's guild and channel;
    # without a scope the last requester's scope is used.

    def save(self, name: str, scope: Optional[RequestScope] = None) -> CommandResult:
        return self._run("save", lambda: self._do_save(self._scope_or_last(scope), name), scope)

    def load(self, name: str, scope: Optional[RequestScope] = None) -> CommandResult:
        return self._run("load", lambda: self._do_load(self._scope_or_last(scope), name), scope)

    def show(self, name: str, scope: Optional[RequestScope] = None) -> CommandResult:
        """List a saved playlist without loading it."""
        return self._run("show", lambda: self._do_show(self._scope_or_last(scope), name), scope)

    def set_volume(self, level) -> CommandResult:
        return self._run("volume", lambda: self._do_set_volume(level))

    def volume(self) -> CommandResult:
        level = self._session.volume
        return CommandResult.success(f"volume is {level:.2f}", data=level)

    def pause(self) -> CommandResult:
        return self._run("pause", self._do_pause)

    def resume(self) -> CommandResult:
        return self._run("resume", self._do_resume)

    def leave_output(self) -> CommandResult:
        return self._run("leave", self._do_leave)

    def now_playing(self) -> CommandResult:
        state: Optional[NowPlayingState] = self._now_playing.get_state()
        if state is None:
            return CommandResult.success("Nothing is playing.")
        return CommandResult.success(f"🎶 {state.index}. {state.track.display_title()}", data=state)

    def shutdown(self) -> None:
        """Stop playback, release the output and stop the mailbox worker."""
        try:
            self._mailbox.call(self._session.leave, timeout=self._command_timeout)
        except (MailboxClosed, FutureTimeout):
            self._session.leave()
        self._mailbox.close()
        logger.info(f"[CONTROLLER] {self.guild_id}: shut down")

    # ------------------------------------------------------------------
    # Command bodies (mailbox worker only)
    # ------------------------------------------------------------------

    def _track_for_query(self, query: str) -> Track:
        query = (query or "").strip()
        if not query:
            raise InvalidArgument("tell me what to play: a URL, a file, or a search query")
        if _looks_like_url(query):
            return Track(remote_ref=query)
        if os.path.isfile(query):
            return Track(local_path=query, title=Path(query).stem)
        result = self._resolver.search(query)
        return Track(remote_ref=result.url, title=result.title)

    def _do_play_query(self, scope: RequestScope, query: str) -> CommandResult:
        # A failed search or join leaves both the playlist and the session untouched
        track = self._track_for_query(query)
        self._session.bind(scope.voice_target)
        index = self._playlist.append(track)
        message = f'Adding "{track.display_title()}" to the playlist at #{index}.'

        if self._session.is_playing:
            return CommandResult.success(message, data=index)

        self._supersede_pending_end()
        self._playlist.select(index)
        self._play_from_cursor()
        return CommandResult.success(message, data=index)

    def _do_next(self) -> CommandResult:
        if self._playlist.cursor + 1 >= len(self._playlist):
            return CommandResult.success("There's no next track.")
        self._session.stop(StopReason.SUPERSEDED)
        self._supersede_pending_end()
        self._playlist.advance()
        self._play_from_cursor()
        return CommandResult.success(f"Skipping to #{self._playlist.cursor}.")

    def _do_back(self) -> CommandResult:
        if self._playlist.cursor <= 0:
            return CommandResult.success("Already at the start of the playlist.")
        self._session.stop(StopReason.SUPERSEDED)
        self._supersede_pending_end()
        self._playlist.retreat()
        self._play_from_cursor()
        return CommandResult.success(f"Going back to #{self._playlist.cursor}.")

    def _do_list(self) -> CommandResult:
        if len(self._playlist) == 0:
            return CommandResult.success("Playlist is empty, boss!", data=[])
        lines: List[str] = []
        for index, track in enumerate(self._playlist.tracks):
            prefix = f"🎶 {index}" if index == self._playlist.cursor else f"{index}"
            lines.append(f"{prefix}. {self._title_for(track)} (`{track.ref}`)")
        return CommandResult.success("Here's the current playlist:\n" + "\n".join(lines), data=lines)

    def _title_for(self, track: Track) -> str:
        if track.title:
            return track.title
        if track.is_remote:
            return self._resolver.title_of(track.remote_ref)
        return Path(track.local_path).stem

    def _do_clear(self) -> CommandResult:
        self._session.stop(StopReason.CLEARED)
        self._supersede_pending_end()
        self._playlist.clear()
        self._now_playing.clear_state()
        return CommandResult.success("Playlist cleared.")

    def _do_delete_at(self, index) -> CommandResult:
        index = self._parse_index(index)
        if not 0 <= index < len(self._playlist):
            raise IndexOutOfRange("That playlist item doesn't exist yet, friendo!")

        deleting_current = index == self._playlist.cursor
        was_playing = deleting_current and self._session.is_playing
        if deleting_current:
            # Stop before the playlist changes under the notification handler
            self._session.stop(StopReason.INDEX_DELETED)
            self._supersede_pending_end()

        removed = self._playlist.remove_at(index)
        message = f"{index}. {removed.display_title()} deleted from playlist."

        # The next track slid into the deleted slot
        if was_playing and self._playlist.cursor == index:
            self._play_from_cursor()
        return CommandResult.success(message)

    @staticmethod
    def _parse_index(index) -> int:
        if isinstance(index, bool):
            raise InvalidArgument(f"not a playlist index: {index!r}")
        if isinstance(index, int):
            return index
        try:
            return int(str(index).strip())
        except ValueError:
            raise InvalidArgument(f"not a playlist index: {index!r}")

    def _do_set_repeat(self, mode) -> CommandResult:
        if mode is None:
            current = self._playlist.repeat_mode
            return CommandResult.success(f"Playlist repeat mode is currently: {current.value}", data=current)
        new_mode = self._playlist.set_repeat_mode(mode)
        return CommandResult.success(f"Playlist repeat mode is now: {new_mode.value}", data=new_mode)

    def _scope_or_last(self, scope: Optional[RequestScope]) -> RequestScope:
        scope = scope or self._report_scope
        if scope is None:
            raise InvalidArgument("I don't know which channel this playlist belongs to yet.")
        return scope

    @staticmethod
    def _require_name(name: str, verb: str) -> str:
        name = (name or "").strip()
        if not name:
            raise InvalidArgument(f"Please specify a playlist name: `{verb} <playlist name>`")
        return name

    def _do_save(self, scope: RequestScope, name: str) -> CommandResult:
        name = self._require_name(name, "save")
        tracks = list(self._playlist.tracks)
        self._store.save_playlist(scope.guild_id, scope.channel_id, name, tracks, user=scope.user_id)
        return CommandResult.success(f'Playlist saved as "{name}" ({len(tracks)} tracks).')

    def _do_load(self, scope: RequestScope, name: str) -> CommandResult:
        name = self._require_name(name, "load")
        tracks = self._store.load_playlist(scope.guild_id, scope.channel_id, name)
        if not tracks:
            return CommandResult.success("That playlist didn't have any songs in it! Silly.")

        idle = not self._session.is_playing
        if idle:
            self._session.bind(scope.voice_target)

        first_index = len(self._playlist)
        for track in tracks:
            self._playlist.append(track)
        message = f'Playlist "{name}" loaded ({len(tracks)} tracks).'

        if idle:
            self._supersede_pending_end()
            self._playlist.select(first_index)
            self._play_from_cursor()
        return CommandResult.success(message)

    def _do_show(self, scope: RequestScope, name: str) -> CommandResult:
        name = self._require_name(name, "show")
        tracks = self._store.load_playlist(scope.guild_id, scope.channel_id, name)
        if not tracks:
            return CommandResult.success("That playlist didn't have any songs in it!", data=[])
        lines = [f"{index}. {self._title_for(track)} (`{track.ref}`)" for index, track in enumerate(tracks)]
        return CommandResult.success(f"Here's the playlist called `{name}`:\n" + "\n".join(lines), data=lines)

    def _do_set_volume(self, level) -> CommandResult:
        if isinstance(level, str):
            try:
                level = float(level)
            except ValueError:
                raise InvalidArgument("volume must be between 0 and 2")
        self._volume = validate_volume(level)
        if self._session.is_playing:
            self._session.ramp_volume(self._volume, self._ramp_steps, self._ramp_interval_ms)
        else:
            self._session.set_volume(self._volume)
        return CommandResult.success(f"set music volume to {self._volume:g}", data=self._volume)

    def _do_pause(self) -> CommandResult:
        if self._session.pause():
            return CommandResult.success("Paused.")
        return CommandResult.success("Nothing is playing.")

    def _do_resume(self) -> CommandResult:
        if self._session.resume():
            return CommandResult.success("Resumed.")
        return CommandResult.success("Nothing is paused.")

    def _do_leave(self) -> CommandResult:
        if not self._session.is_bound:
            raise NoOutputTarget("...i'm not in a voice channel")
        self._supersede_pending_end()
        self._session.leave()
        return CommandResult.success("Left the voice channel.")

    # ------------------------------------------------------------------
    # Playback pipeline: resolve, then start
    # ------------------------------------------------------------------

    def _supersede_pending_end(self) -> None:
        """Keep a natural end already queued for the current generation from advancing."""
        self._superseded_generation = self._session.generation

    def _materialize(self, track: Track) -> str:
        if not track.is_remote:
            return track.local_path
        if self._cache.status(track.remote_ref) is not CacheStatus.READY:
            self._report("I don't have a copy of this audio in my cache! Gimme a sec to download it...")
        return str(self._cache.resolve(track.remote_ref))

    def _start_current(self) -> int:
        """
        Resolve and start the track under the cursor.

        Raises:
            DownloadFailed: If the remote track can't be cached
            NoOutputTarget: If the session is not bound
        """
        track = self._playlist.current
        index = self._playlist.cursor
        path = self._materialize(track)
        generation = self._session.start(path, self._volume)
        self._now_playing.on_track_started(track, index, generation, path)
        self._report(f"Now playing: {track.display_title()}")
        return generation

    def _play_from_cursor(self) -> None:
        """
        Start the track under the cursor, skipping tracks that fail to download.

        Each playlist position is tried at most once; failed positions are
        skipped, not retried. Repeat-all wraps past the end while skipping.

        Raises:
            DownloadFailed: If no track could be started (session stays idle)
            NoOutputTarget: If the session is not bound
        """
        last_error: Optional[DownloadFailed] = None
        for _ in range(len(self._playlist)):
            try:
                self._start_current()
                return
            except DownloadFailed as e:
                last_error = e
                logger.warning(f"[CONTROLLER] {self.guild_id}: skipping #{self._playlist.cursor}: {e}")
                self._report(f"{e}. Skipping it.")
            if not self._step_past_failed():
                break
        if last_error is not None:
            raise last_error

    def _step_past_failed(self) -> bool:
        if self._playlist.is_last():
            if self._playlist.repeat_mode is not RepeatMode.ALL:
                return False
            self._playlist.rewind()
        return self._playlist.advance() is not None

    # ------------------------------------------------------------------
    # Finished notifications
    # ------------------------------------------------------------------

    def _post_finished(self, notification: FinishedNotification) -> None:
        # Runs under the session lock: only enqueue
        self._mailbox.post(lambda: self._on_finished(notification))

    def _on_finished(self, notification: FinishedNotification) -> None:
        self._now_playing.on_track_finished(notification.generation)

        current = self._session.generation
        if notification.generation != current:
            logger.debug(
                f"[CONTROLLER] {self.guild_id}: ignoring stale finish for generation "
                f"{notification.generation} (current={current})"
            )
            return
        if not notification.reason.advances:
            logger.debug(
                f"[CONTROLLER] {self.guild_id}: generation {notification.generation} "
                f"stopped ({notification.reason.value}), not advancing"
            )
            return
        if notification.generation <= self._superseded_generation:
            logger.debug(
                f"[CONTROLLER] {self.guild_id}: natural end of generation {notification.generation} "
                f"overtaken by a command, not advancing"
            )
            return

        try:
            self._continue_after_natural_end()
        except DownloadFailed as e:
            # Each failed track was already reported while skipping
            logger.info(f"[CONTROLLER] {self.guild_id}: no playable track left: {e}")
        except JukeboxError as e:
            logger.warning(f"[CONTROLLER] {self.guild_id}: could not continue playlist: {e}")
            self._report(str(e))

    def _continue_after_natural_end(self) -> None:
        if self._playlist.current is None:
            return

        mode = self._playlist.repeat_mode
        if mode is RepeatMode.ONE:
            logger.info(f"[CONTROLLER] {self.guild_id}: repeating #{self._playlist.cursor}")
            self._play_from_cursor()
            return

        if mode is RepeatMode.ALL and self._playlist.is_last():
            logger.info(f"[CONTROLLER] {self.guild_id}: starting playlist from the beginning")
            self._playlist.rewind()

        if self._playlist.advance() is None:
            logger.info(f"[CONTROLLER] {self.guild_id}: end of playlist")
            self._report("End of playlist.")
            return
        self._play_from_cursor()
