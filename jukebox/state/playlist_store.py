"""
Playlist Storage for the Jukebox playback engine.

Saved playlists live in SQLite, keyed by (guild, channel, name), so each
text channel has its own namespace of playlist names.
"""

import json
import logging
import os
import sqlite3
import threading
from typing import List, Optional

from jukebox.playback.errors import NotFound
from jukebox.playback.track import Track

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS playlists (
    name TEXT NOT NULL,
    guild TEXT NOT NULL,
    channel TEXT NOT NULL,
    user_who_added TEXT,
    created DATETIME DEFAULT CURRENT_TIMESTAMP,
    tracks_json TEXT NOT NULL,
    PRIMARY KEY (guild, channel, name)
);
"""


class PlaylistStore:
    """
    SQLite-backed store of named playlists.

    One connection shared across threads, guarded by a lock.
    """

    def __init__(self, db_path: str = "./playlists/playlists.sqlite"):
        """
        Open (and create if needed) the playlist database.

        Args:
            db_path: SQLite file path, or ":memory:"
        """
        self.db_path = db_path
        if db_path != ":memory:":
            parent = os.path.dirname(os.path.abspath(db_path))
            os.makedirs(parent, exist_ok=True)

        self._lock = threading.Lock()
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA synchronous=1")
        self._db.executescript(SCHEMA)
        self._db.commit()
        logger.debug(f"PlaylistStore initialized with path: {db_path}")

    def save_playlist(self, guild: str, channel: str, name: str, tracks: List[Track],
                      user: Optional[str] = None) -> None:
        """
        Save tracks under name, replacing any playlist with the same name.

        Args:
            guild: Guild id of the requester
            channel: Text channel id of the requester
            name: Playlist name
            tracks: Tracks in playback order
            user: Id of the user saving the playlist
        """
        payload = json.dumps([track.to_dict() for track in tracks])
        with self._lock:
            self._db.execute(
                "INSERT OR REPLACE INTO playlists (name, guild, channel, user_who_added, tracks_json) "
                "VALUES (?, ?, ?, ?, ?)",
                (name, guild, channel, user, payload),
            )
            self._db.commit()
        logger.info(f"[STORE] Saved playlist {name!r} ({len(tracks)} tracks) for {guild}/{channel}")

    def load_playlist(self, guild: str, channel: str, name: str) -> List[Track]:
        """
        Load a saved playlist.

        Raises:
            NotFound: If no playlist with that name exists for the guild/channel
        """
        with self._lock:
            row = self._db.execute(
                "SELECT tracks_json FROM playlists WHERE guild = ? AND channel = ? AND name = ?",
                (guild, channel, name),
            ).fetchone()
        if row is None:
            raise NotFound(f'I couldn\'t find a playlist named "{name}" in my database.')
        return [Track.from_dict(item) for item in json.loads(row["tracks_json"])]

    def playlist_names(self, guild: str, channel: str) -> List[str]:
        with self._lock:
            rows = self._db.execute(
                "SELECT name FROM playlists WHERE guild = ? AND channel = ? ORDER BY name",
                (guild, channel),
            ).fetchall()
        return [row["name"] for row in rows]

    def close(self) -> None:
        with self._lock:
            self._db.close()
