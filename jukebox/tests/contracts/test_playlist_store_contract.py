"""
Contract tests for PlaylistStore (SQLite).
"""

import pytest

from jukebox.playback.errors import NotFound
from jukebox.playback.track import Track
from jukebox.state.playlist_store import PlaylistStore

TRACKS = [
    Track(remote_ref="https://www.youtube.com/watch?v=dQw4w9WgXcQ", title="Never Gonna Give You Up"),
    Track(local_path="/music/local.mp3"),
]


@pytest.fixture
def store(tmp_path):
    store = PlaylistStore(str(tmp_path / "db" / "playlists.sqlite"))
    yield store
    store.close()


class TestPlaylistStore:
    def test_save_and_load_preserves_order_and_fields(self, store):
        store.save_playlist("g", "c", "mix", TRACKS, user="u")
        assert store.load_playlist("g", "c", "mix") == TRACKS

    def test_save_replaces_same_name(self, store):
        store.save_playlist("g", "c", "mix", TRACKS)
        store.save_playlist("g", "c", "mix", TRACKS[:1])
        assert store.load_playlist("g", "c", "mix") == TRACKS[:1]

    def test_names_are_scoped_per_channel(self, store):
        store.save_playlist("g", "c1", "mix", TRACKS)
        with pytest.raises(NotFound):
            store.load_playlist("g", "c2", "mix")
        assert store.playlist_names("g", "c1") == ["mix"]
        assert store.playlist_names("g", "c2") == []

    def test_missing_playlist(self, store):
        with pytest.raises(NotFound) as exc_info:
            store.load_playlist("g", "c", "nope")
        assert str(exc_info.value) == 'I couldn\'t find a playlist named "nope" in my database.'

    def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "playlists.sqlite")
        first = PlaylistStore(path)
        first.save_playlist("g", "c", "mix", TRACKS)
        first.close()

        second = PlaylistStore(path)
        try:
            assert second.load_playlist("g", "c", "mix") == TRACKS
        finally:
            second.close()

    def test_in_memory_database(self):
        store = PlaylistStore(":memory:")
        store.save_playlist("g", "c", "mix", [])
        assert store.load_playlist("g", "c", "mix") == []
        store.close()
