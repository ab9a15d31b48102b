"""
Track resolver backed by yt-dlp.

Turns a free-text query into the first matching YouTube video and looks up
titles for URLs already in a playlist. No downloads happen here.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

import yt_dlp

from jukebox.playback.errors import NoResults

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


@dataclass(frozen=True)
class SearchResult:
    url: str
    title: str


class YtDlpTrackResolver:
    """
    Search and title lookup through yt-dlp metadata extraction.

    Titles are memoized per URL for the life of the process.
    """

    def __init__(self):
        self._titles: Dict[str, str] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _opts(extra: Optional[dict] = None) -> dict:
        opts = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            "noplaylist": True,
        }
        if extra:
            opts.update(extra)
        return opts

    def search(self, query: str) -> SearchResult:
        """
        Return the first video matching query.

        Raises:
            NoResults: If the search yields nothing or fails
        """
        opts = self._opts({"extract_flat": "in_playlist"})
        try:
            with yt_dlp.YoutubeDL(opts) as ydl:
                info = ydl.extract_info(f"ytsearch1:{query}", download=False)
        except Exception as e:
            logger.error(f"[RESOLVER] Search failed for {query!r}: {e}")
            raise NoResults(f'There were no YouTube results for the query "{query}"')

        entries = (info or {}).get("entries") or []
        if not entries:
            raise NoResults(f'There were no YouTube results for the query "{query}"')

        first = entries[0]
        video_id = first.get("id")
        url = WATCH_URL.format(video_id=video_id) if video_id else first.get("url")
        if not url:
            raise NoResults(f'There were no YouTube results for the query "{query}"')
        title = first.get("title") or url
        with self._lock:
            self._titles[url] = title
        logger.info(f"[RESOLVER] {query!r} -> {title} ({url})")
        return SearchResult(url=url, title=title)

    def title_of(self, url: str) -> str:
        """Title for url, or the URL itself when it can't be looked up."""
        with self._lock:
            cached = self._titles.get(url)
        if cached:
            return cached

        try:
            with yt_dlp.YoutubeDL(self._opts()) as ydl:
                info = ydl.extract_info(url, download=False)
        except Exception as e:
            logger.debug(f"[RESOLVER] Title lookup failed for {url}: {e}")
            return url

        title = (info or {}).get("title") or url
        with self._lock:
            self._titles[url] = title
        return title
