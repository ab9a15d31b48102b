"""
Shared pytest fixtures for Jukebox contract tests.

Contract tests use test doubles (fakes, stubs, mocks) instead of audio
devices, network access and real databases. Files only ever live under
pytest's tmp_path.
"""

import threading

import pytest

from jukebox.cache.media_cache import MediaCache
from jukebox.playback.controller import PlaylistController, RequestScope
from jukebox.tests.contracts.test_doubles import (
    FakeFetcher,
    FakeOutput,
    FakePlaylistStore,
    FakeResolver,
    RecordingReporter,
)

GUILD = "guild-1"
CHANNEL = "channel-1"
VOICE = "voice-1"


@pytest.fixture
def fake_output():
    """Output capability that records joins and streams."""
    return FakeOutput(reject_targets={"locked-voice"})


@pytest.fixture
def fake_fetcher():
    """Fetcher writing the URL into the cached file."""
    return FakeFetcher()


@pytest.fixture
def media_cache(tmp_path, fake_fetcher):
    """MediaCache backed by tmp_path and the fake fetcher."""
    cache = MediaCache(tmp_path / "cache", fetchers=[fake_fetcher], max_workers=2)
    yield cache
    cache.close()


@pytest.fixture
def fake_resolver():
    return FakeResolver({
        "never gonna": ("https://youtube.test/watch?v=dQw4w9WgXcQ", "Never Gonna Give You Up"),
        "take on me": ("https://youtube.test/watch?v=djV11Xbc914", "Take On Me"),
    })


@pytest.fixture
def recording_reporter():
    return RecordingReporter()


@pytest.fixture
def fake_store():
    return FakePlaylistStore()


@pytest.fixture
def scope():
    """Request scope of a user sitting in an available voice target."""
    return RequestScope(guild_id=GUILD, channel_id=CHANNEL, user_id="user-1", voice_target=VOICE)


@pytest.fixture
def controller(fake_output, media_cache, fake_resolver, fake_store, recording_reporter):
    """PlaylistController wired to fakes; shut down after the test."""
    ctl = PlaylistController(
        GUILD,
        output=fake_output,
        cache=media_cache,
        resolver=fake_resolver,
        store=fake_store,
        reporter=recording_reporter,
        volume=1.0,
        ramp_steps=4,
        ramp_interval_ms=1,
        command_timeout_sec=10.0,
    )
    yield ctl
    ctl.shutdown()


@pytest.fixture
def local_tracks(tmp_path):
    """Three local audio files (content is irrelevant to the fakes)."""
    paths = []
    for name in ("alpha", "bravo", "charlie"):
        path = tmp_path / f"{name}.mp3"
        path.write_bytes(b"ID3")
        paths.append(str(path))
    return paths


@pytest.fixture
def thread_leak_guard():
    """
    Detect thread leaks between tests.

    Request it explicitly in tests that shut components down.
    """
    before = set(t.ident for t in threading.enumerate())
    yield
    after = set(t.ident for t in threading.enumerate())
    leaked = after - before
    if leaked:
        leaked_threads = [t for t in threading.enumerate() if t.ident in leaked]
        thread_info = '\n'.join(f"  - {t.name} (daemon={t.daemon})" for t in leaked_threads)
        assert False, f"Thread leak detected - shutdown incomplete.\nLeaked threads:\n{thread_info}"
