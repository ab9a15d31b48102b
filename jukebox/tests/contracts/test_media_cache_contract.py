"""
Contract tests for MediaCache and the fetcher helpers.

Covers download-once behaviour, collapsing of concurrent requests,
failure eviction and retry, partial-file hygiene, adoption of files left
by an earlier run, and URL -> media id mapping.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from jukebox.cache.fetchers import HttpFetcher, YtDlpFetcher, is_youtube_url, url_digest, youtube_video_id
from jukebox.cache.media_cache import CacheStatus, MediaCache
from jukebox.playback.errors import DownloadFailed
from jukebox.tests.contracts.test_doubles import FakeFetcher

URL = "https://media.test/song.mp3"
OTHER_URL = "https://media.test/other.mp3"


class TestHitAndMiss:
    def test_miss_downloads_then_hit_serves(self, media_cache, fake_fetcher):
        first = media_cache.resolve(URL, timeout=5)
        second = media_cache.resolve(URL, timeout=5)
        assert first == second
        assert first.read_text() == URL
        assert fake_fetcher.fetch_counts[URL] == 1
        assert media_cache.status(URL) is CacheStatus.READY

    def test_unknown_url_has_no_status(self, media_cache):
        assert media_cache.status(URL) is None
        assert media_cache.entries() == {}

    def test_no_fetcher_for_url(self, tmp_path):
        cache = MediaCache(tmp_path, fetchers=[HttpFetcher()])
        try:
            with pytest.raises(DownloadFailed):
                cache.resolve("ftp://media.test/song.mp3")
        finally:
            cache.close()


class TestConcurrentRequests:
    def test_concurrent_resolves_share_one_download(self, tmp_path):
        release = threading.Event()
        fetcher = FakeFetcher(block=release)
        cache = MediaCache(tmp_path, fetchers=[fetcher], max_workers=4)
        try:
            with ThreadPoolExecutor(max_workers=4) as pool:
                futures = [pool.submit(cache.resolve, URL, 5) for _ in range(4)]
                assert fetcher.started.wait(2.0)
                assert cache.status(URL) is CacheStatus.DOWNLOADING
                release.set()
                paths = {f.result(timeout=5) for f in futures}
            assert len(paths) == 1
            assert fetcher.fetch_counts[URL] == 1
        finally:
            release.set()
            cache.close()

    def test_different_media_do_not_wait_on_each_other(self, tmp_path):
        release = threading.Event()
        fetcher = FakeFetcher()
        fetcher.hold(URL, release)
        cache = MediaCache(tmp_path, fetchers=[fetcher], max_workers=2)
        try:
            with ThreadPoolExecutor(max_workers=1) as pool:
                slow = pool.submit(cache.resolve, URL, 5)
                assert fetcher.started.wait(2.0)
                # Second media id downloads and returns while the first is still held
                other = cache.resolve(OTHER_URL, timeout=2)
                assert other.read_text() == OTHER_URL
                assert not slow.done()
                assert cache.status(URL) is CacheStatus.DOWNLOADING
                release.set()
                assert slow.result(timeout=5).exists()
        finally:
            release.set()
            cache.close()


class TestFailures:
    def test_failure_evicts_and_retry_succeeds(self, media_cache, fake_fetcher):
        fake_fetcher.fail(URL, times=1)
        with pytest.raises(DownloadFailed):
            media_cache.resolve(URL, timeout=5)
        assert media_cache.status(URL) is None

        path = media_cache.resolve(URL, timeout=5)
        assert path.read_text() == URL
        assert fake_fetcher.fetch_counts[URL] == 2

    def test_failure_leaves_no_partial_or_final_file(self, media_cache, fake_fetcher):
        fake_fetcher.fail(URL, times=1)
        with pytest.raises(DownloadFailed):
            media_cache.resolve(URL, timeout=5)
        assert list(media_cache.cache_dir.iterdir()) == []


class TestRestart:
    def test_partial_files_removed_at_startup(self, tmp_path, fake_fetcher):
        (tmp_path / "abc.part").write_bytes(b"half")
        (tmp_path / "keep.media").write_bytes(b"whole")
        cache = MediaCache(tmp_path, fetchers=[fake_fetcher])
        try:
            names = sorted(p.name for p in tmp_path.iterdir())
            assert names == ["keep.media"]
        finally:
            cache.close()

    def test_existing_file_is_adopted_without_download(self, tmp_path, fake_fetcher):
        media_id = fake_fetcher.media_id(URL)
        existing = tmp_path / f"{media_id}.media"
        existing.write_text("from an earlier run")
        cache = MediaCache(tmp_path, fetchers=[fake_fetcher])
        try:
            assert cache.resolve(URL) == existing
            assert fake_fetcher.fetch_counts == {}
            assert cache.entries() == {media_id: CacheStatus.READY}
        finally:
            cache.close()


class TestFetcherHelpers:
    @pytest.mark.parametrize("url,video_id", [
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://youtube.com/watch?v=dQw4w9WgXcQ&t=42", "dQw4w9WgXcQ"),
        ("https://youtu.be/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://music.youtube.com/watch?v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ])
    def test_youtube_ids(self, url, video_id):
        assert is_youtube_url(url)
        assert youtube_video_id(url) == video_id
        assert YtDlpFetcher().media_id(url) == video_id

    def test_plain_urls_use_digest(self):
        fetcher = HttpFetcher()
        assert not is_youtube_url(URL)
        assert fetcher.handles(URL)
        assert not fetcher.handles("ftp://media.test/a")
        assert fetcher.media_id(URL) == url_digest(URL)
        assert url_digest(URL) != url_digest(OTHER_URL)

    @pytest.mark.parametrize("url", [
        "https://www.youtube.com/watch?v=../escaped",
        "https://www.youtube.com/watch?v=a/b",
        "https://youtu.be/..",
        "https://www.youtube.com/watch?v=" + "x" * 65,
    ])
    def test_malformed_youtube_ids_fall_back_to_digest(self, url):
        assert youtube_video_id(url) == ""
        assert YtDlpFetcher().media_id(url) == url_digest(url)


class LocalYtDlpFetcher(YtDlpFetcher):
    """YtDlpFetcher id mapping with a local write instead of a download."""

    def fetch(self, url, dest):
        dest.write_text(url)


class EscapingFetcher(FakeFetcher):
    def media_id(self, url):
        return "../escaped"


class TestCacheDirectoryConfinement:
    def test_traversal_video_id_stays_in_cache_dir(self, tmp_path):
        cache_dir = tmp_path / "cache"
        cache = MediaCache(cache_dir, fetchers=[LocalYtDlpFetcher()])
        try:
            path = cache.resolve("https://www.youtube.com/watch?v=../escaped", timeout=5)
            assert path.resolve().parent == cache_dir.resolve()
            assert not (tmp_path / "escaped.media").exists()
        finally:
            cache.close()

    def test_escaping_media_id_is_refused(self, tmp_path):
        cache_dir = tmp_path / "cache"
        fetcher = EscapingFetcher()
        cache = MediaCache(cache_dir, fetchers=[fetcher])
        try:
            with pytest.raises(DownloadFailed):
                cache.resolve(URL, timeout=5)
            assert fetcher.fetch_counts == {}
            assert sorted(p.name for p in tmp_path.iterdir()) == ["cache"]
        finally:
            cache.close()
