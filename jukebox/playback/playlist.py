"""
Playlist for the Jukebox playback engine.

Ordered, mutable sequence of Tracks with a cursor and a repeat mode.
Pure in-memory data structure: no I/O, no threading. The owning
PlaylistController serializes all access.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple

from jukebox.playback.errors import IndexOutOfRange, InvalidArgument
from jukebox.playback.track import Track

logger = logging.getLogger(__name__)

NO_CURSOR = -1


class RepeatMode(Enum):
    """Policy governing what plays after the current track ends naturally."""
    NONE = "none"
    ONE = "one"
    ALL = "all"

    @classmethod
    def parse(cls, value) -> "RepeatMode":
        """
        Convert a user-supplied value to a RepeatMode.

        Raises:
            InvalidArgument: If value is not none, one or all
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidArgument(f"unknown repeat mode {value!r} (must be none, one or all)")


class Playlist:
    """
    Ordered sequence of Tracks plus a cursor and a repeat mode.

    Insertion order is playback order. The cursor is either NO_CURSOR (-1)
    or a valid index into the sequence.
    """

    def __init__(self):
        """Initialize an empty playlist."""
        self._tracks: List[Track] = []
        self._cursor = NO_CURSOR
        self._repeat_mode = RepeatMode.NONE

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def repeat_mode(self) -> RepeatMode:
        return self._repeat_mode

    @property
    def tracks(self) -> Tuple[Track, ...]:
        return tuple(self._tracks)

    @property
    def current(self) -> Optional[Track]:
        """Track under the cursor, or None when nothing is selected."""
        if self._cursor == NO_CURSOR:
            return None
        return self._tracks[self._cursor]

    @property
    def last_index(self) -> int:
        return len(self._tracks) - 1

    def __len__(self) -> int:
        return len(self._tracks)

    def is_last(self) -> bool:
        """True if the cursor points at the final track."""
        return self._cursor != NO_CURSOR and self._cursor == self.last_index

    def append(self, track: Track) -> int:
        """
        Add a track to the end of the playlist.

        Does not move the cursor, even when nothing is selected.

        Returns:
            Index of the appended track
        """
        self._tracks.append(track)
        logger.debug(f"[PLAYLIST] Appended #{len(self._tracks) - 1}: {track.ref}")
        return len(self._tracks) - 1

    def remove_at(self, index: int) -> Track:
        """
        Remove the track at index.

        If the cursor pointed at the removed track and a track now occupies
        that slot, the cursor is left on the new occupant. If the removed
        track was the last one, the cursor moves back by one (NO_CURSOR when
        the playlist is now empty). Removing a track before the cursor shifts
        the cursor so it keeps naming the same track.

        Returns:
            The removed Track

        Raises:
            IndexOutOfRange: If index is not a valid position
        """
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(self._tracks):
            raise IndexOutOfRange(f"playlist item {index} doesn't exist")

        removed = self._tracks.pop(index)
        if index < self._cursor:
            self._cursor -= 1
        elif index == self._cursor and self._cursor > self.last_index:
            self._cursor -= 1  # Reaches NO_CURSOR when the list is now empty
        logger.debug(f"[PLAYLIST] Removed #{index}: {removed.ref} (cursor={self._cursor})")
        return removed

    def advance(self) -> Optional[Track]:
        """
        Move the cursor to the next track.

        Returns:
            The new current Track, or None (state unchanged) if there is no next track
        """
        if self._cursor + 1 < len(self._tracks):
            self._cursor += 1
            return self._tracks[self._cursor]
        return None

    def retreat(self) -> Optional[Track]:
        """
        Move the cursor to the previous track. Does not wrap.

        Returns:
            The new current Track, or None (state unchanged) at the start of the list
        """
        if self._cursor > 0:
            self._cursor -= 1
            return self._tracks[self._cursor]
        return None

    def rewind(self) -> None:
        """Reset the cursor so the next advance() selects the first track."""
        self._cursor = NO_CURSOR

    def select(self, index: int) -> Track:
        """
        Point the cursor at index.

        Raises:
            IndexOutOfRange: If index is not a valid position
        """
        if not 0 <= index < len(self._tracks):
            raise IndexOutOfRange(f"playlist item {index} doesn't exist")
        self._cursor = index
        return self._tracks[index]

    def clear(self) -> None:
        """Remove all tracks and reset the cursor."""
        self._tracks.clear()
        self._cursor = NO_CURSOR
        logger.debug("[PLAYLIST] Cleared")

    def set_repeat_mode(self, mode) -> RepeatMode:
        """
        Set the repeat mode.

        Args:
            mode: RepeatMode or one of "none", "one", "all"

        Raises:
            InvalidArgument: For any other value
        """
        self._repeat_mode = RepeatMode.parse(mode)
        return self._repeat_mode
