"""
Media fetchers for the Jukebox MediaCache.

A fetcher knows which URLs it handles, how to derive a stable media id
for a URL, and how to download the media to a given file path.
"""

import hashlib
import logging
import re
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlparse

import httpx
import yt_dlp

logger = logging.getLogger(__name__)

YOUTUBE_HOSTS = ("youtube.com", "youtu.be", "music.youtube.com")

# Video ids double as cache file stems
VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def is_youtube_url(url: str) -> bool:
    host = (urlparse(str(url or "")).netloc or "").lower()
    return any(h in host for h in YOUTUBE_HOSTS)


def youtube_video_id(url: str) -> str:
    """Extract the video id from a youtube.com or youtu.be URL ("" if absent or malformed)."""
    try:
        parsed = urlparse(str(url or "").strip())
        host = (parsed.netloc or "").lower()
        if "youtu.be" in host:
            video_id = parsed.path.strip("/").split("/", 1)[0].strip()
        else:
            video_id = parse_qs(parsed.query).get("v", [""])[0].strip()
    except ValueError:
        return ""
    return video_id if VIDEO_ID_PATTERN.match(video_id) else ""


def url_digest(url: str) -> str:
    return hashlib.sha1(url.encode("utf-8")).hexdigest()


class MediaFetcher:
    """Base class for fetchers."""

    def handles(self, url: str) -> bool:
        raise NotImplementedError

    def media_id(self, url: str) -> str:
        """Stable identifier for the media behind url; used as the cache file stem."""
        return url_digest(url)

    def fetch(self, url: str, dest: Path) -> None:
        """
        Download url to dest.

        Raises:
            Exception: Any failure; MediaCache wraps it in DownloadFailed
        """
        raise NotImplementedError


class YtDlpFetcher(MediaFetcher):
    """Downloads the best audio stream of a YouTube video with yt-dlp."""

    def __init__(self, cookies_file: Optional[str] = None):
        self._cookies_file = cookies_file

    def handles(self, url: str) -> bool:
        return is_youtube_url(url)

    def media_id(self, url: str) -> str:
        return youtube_video_id(url) or url_digest(url)

    def _opts(self, dest: Path) -> dict:
        opts = {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "format": "bestaudio/best",
            "outtmpl": str(dest),
        }
        if self._cookies_file and Path(self._cookies_file).exists():
            opts["cookiefile"] = self._cookies_file
        return opts

    def fetch(self, url: str, dest: Path) -> None:
        logger.debug(f"[CACHE] yt-dlp downloading {url} -> {dest}")
        with yt_dlp.YoutubeDL(self._opts(dest)) as ydl:
            ydl.download([url])
        if not dest.exists():
            raise FileNotFoundError(f"yt-dlp finished but {dest} was not written")


class HttpFetcher(MediaFetcher):
    """Streams a direct media URL to disk with httpx."""

    def __init__(self, timeout: float = 30.0, chunk_size: int = 65536):
        self.timeout = timeout
        self.chunk_size = chunk_size

        # Suppress httpx INFO level logging (one line per request)
        logging.getLogger("httpx").setLevel(logging.WARNING)

    def handles(self, url: str) -> bool:
        return urlparse(str(url or "")).scheme in ("http", "https")

    def fetch(self, url: str, dest: Path) -> None:
        logger.debug(f"[CACHE] HTTP downloading {url} -> {dest}")
        with httpx.stream("GET", url, timeout=self.timeout, follow_redirects=True) as response:
            response.raise_for_status()
            with open(dest, "wb") as f:
                for chunk in response.iter_bytes(self.chunk_size):
                    f.write(chunk)
