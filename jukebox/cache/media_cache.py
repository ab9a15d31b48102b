"""
Media Cache for the Jukebox playback engine.

Maps remote media references to local files. Downloads on miss, serves on
hit, and collapses concurrent requests for the same media into a single
download. Shared by every guild's PlaylistController.

Layout:
    <cache_dir>/<media_id>.media   finished download
    <cache_dir>/<media_id>.part    download in progress (never served)
"""

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from jukebox.cache.fetchers import HttpFetcher, MediaFetcher, YtDlpFetcher
from jukebox.playback.errors import DownloadFailed

logger = logging.getLogger(__name__)

MEDIA_SUFFIX = ".media"
PARTIAL_SUFFIX = ".part"


class CacheStatus(Enum):
    DOWNLOADING = "downloading"
    READY = "ready"
    FAILED = "failed"


@dataclass
class CacheEntry:
    """
    One remote media item known to the cache.

    Attributes:
        media_id: Stable id derived from the remote reference
        path: Final local file path
        status: downloading, ready or failed
        future: Resolves to path when the download finishes
    """
    media_id: str
    path: Path
    status: CacheStatus
    future: Future = field(default_factory=Future, repr=False)


class MediaCache:
    """
    Download-once cache of remote media.

    Lookups for different media ids never serialize on each other; the map
    lock is held only to read or update entries, never during I/O.
    Downloads run to completion on a worker pool even if every requester
    has stopped caring.
    """

    def __init__(
        self,
        cache_dir: Path,
        fetchers: Optional[Sequence[MediaFetcher]] = None,
        max_workers: int = 4,
    ):
        """
        Initialize the cache and remove partial files left by a previous run.

        Args:
            cache_dir: Directory holding cached media
            fetchers: Fetchers tried in order (default: yt-dlp, then plain HTTP)
            max_workers: Concurrent download limit
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._fetchers: List[MediaFetcher] = list(fetchers) if fetchers is not None else [YtDlpFetcher(), HttpFetcher()]
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="media-cache")

        self._remove_partial_files()
        logger.info(f"MediaCache initialized: {self.cache_dir}")

    def _remove_partial_files(self) -> None:
        for partial in self.cache_dir.glob(f"*{PARTIAL_SUFFIX}*"):
            try:
                partial.unlink()
                logger.debug(f"[CACHE] Removed stale partial file: {partial}")
            except OSError as e:
                logger.warning(f"[CACHE] Could not remove stale partial file {partial}: {e}")

    def _fetcher_for(self, remote_ref: str) -> MediaFetcher:
        for fetcher in self._fetchers:
            if fetcher.handles(remote_ref):
                return fetcher
        raise DownloadFailed(f"don't know how to download {remote_ref}")

    def path_for(self, media_id: str) -> Path:
        """
        Cache file path for media_id.

        Raises:
            DownloadFailed: If the id would place the file outside cache_dir
        """
        path = self.cache_dir / f"{media_id}{MEDIA_SUFFIX}"
        if path.resolve().parent != self.cache_dir.resolve():
            raise DownloadFailed(f"refusing to cache media id {media_id!r} outside {self.cache_dir}")
        return path

    def resolve(self, remote_ref: str, timeout: Optional[float] = None) -> Path:
        """
        Return a local file for remote_ref, downloading it if needed.

        Ready entries return immediately. A request for media that is already
        downloading waits on the same download. A failed entry is dropped so
        the next request retries.

        Args:
            remote_ref: Remote media URL
            timeout: Optional seconds to wait for an in-flight download

        Returns:
            Path of the cached file

        Raises:
            DownloadFailed: If the download fails or no fetcher handles the URL
        """
        fetcher = self._fetcher_for(remote_ref)
        media_id = fetcher.media_id(remote_ref)

        with self._lock:
            entry = self._entries.get(media_id)
            if entry is not None and entry.status is CacheStatus.READY:
                logger.debug(f"[CACHE] Hit: {media_id}")
                return entry.path
            if entry is None:
                entry = self._create_entry_locked(media_id, remote_ref, fetcher)
                if entry.status is CacheStatus.READY:
                    return entry.path
            else:
                logger.debug(f"[CACHE] Joining in-flight download: {media_id}")

        return entry.future.result(timeout=timeout)

    def _create_entry_locked(self, media_id: str, remote_ref: str, fetcher: MediaFetcher) -> CacheEntry:
        path = self.path_for(media_id)
        if path.exists():
            # Finished by an earlier run of the process
            entry = CacheEntry(media_id=media_id, path=path, status=CacheStatus.READY)
            entry.future.set_result(path)
            self._entries[media_id] = entry
            logger.debug(f"[CACHE] Adopted existing file: {path}")
            return entry

        entry = CacheEntry(media_id=media_id, path=path, status=CacheStatus.DOWNLOADING)
        self._entries[media_id] = entry
        logger.info(f"[CACHE] Miss, downloading: {remote_ref}")
        self._executor.submit(self._download, entry, remote_ref, fetcher)
        return entry

    def _download(self, entry: CacheEntry, remote_ref: str, fetcher: MediaFetcher) -> None:
        partial = entry.path.with_suffix(PARTIAL_SUFFIX)
        try:
            fetcher.fetch(remote_ref, partial)
            os.replace(partial, entry.path)
        except Exception as e:
            logger.warning(f"[CACHE] Download failed for {remote_ref}: {e}")
            try:
                if partial.exists():
                    partial.unlink()
            except OSError:
                pass
            with self._lock:
                entry.status = CacheStatus.FAILED
                # Failed entries are evicted so the next request retries
                if self._entries.get(entry.media_id) is entry:
                    del self._entries[entry.media_id]
            error = DownloadFailed(f"couldn't download {remote_ref}: {e}")
            error.__cause__ = e
            entry.future.set_exception(error)
            return

        with self._lock:
            entry.status = CacheStatus.READY
        logger.info(f"[CACHE] Downloaded {remote_ref} -> {entry.path}")
        entry.future.set_result(entry.path)

    def status(self, remote_ref: str) -> Optional[CacheStatus]:
        """Current status for remote_ref, or None if the cache has no entry."""
        fetcher = self._fetcher_for(remote_ref)
        with self._lock:
            entry = self._entries.get(fetcher.media_id(remote_ref))
            return entry.status if entry else None

    def entries(self) -> Dict[str, CacheStatus]:
        """Snapshot of media id -> status."""
        with self._lock:
            return {media_id: entry.status for media_id, entry in self._entries.items()}

    def close(self, wait: bool = True) -> None:
        """Shut down the download pool; in-flight downloads finish first when wait is True."""
        self._executor.shutdown(wait=wait)
