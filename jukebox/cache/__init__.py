"""
Media cache subsystem.

Downloads remote media once and serves it from local disk afterwards.
"""

from jukebox.cache.media_cache import CacheStatus, MediaCache
from jukebox.cache.fetchers import HttpFetcher, MediaFetcher, YtDlpFetcher

__all__ = [
    "CacheStatus",
    "MediaCache",
    "MediaFetcher",
    "YtDlpFetcher",
    "HttpFetcher",
]
