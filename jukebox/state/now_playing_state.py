"""
Now Playing State Manager

Provides authoritative, read-only state for the track a guild is currently playing.
"""

import logging
import time
import threading
from dataclasses import dataclass
from typing import Optional

from jukebox.playback.track import Track

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NowPlayingState:
    """
    Immutable snapshot of the current playback.

    No derived fields (elapsed, remaining, progress, etc.).
    """
    track: Track
    index: int  # Playlist position when playback started
    generation: int
    started_at: float  # Wall-clock timestamp (time.time())
    file_path: Optional[str] = None


class NowPlayingStateManager:
    """
    Manages NowPlayingState lifecycle.

    State is created when a playback starts and cleared when any
    finished notification for that playback is handled. The owning
    PlaylistController is the only writer.
    """

    def __init__(self):
        """Initialize state manager."""
        self._state: Optional[NowPlayingState] = None
        self._lock = threading.RLock()
        self._listeners = []

    def on_track_started(self, track: Track, index: int, generation: int, file_path: Optional[str]) -> None:
        with self._lock:
            self._state = NowPlayingState(
                track=track,
                index=index,
                generation=generation,
                started_at=time.time(),
                file_path=file_path,
            )
            logger.debug(f"[NOW_PLAYING] State created: #{index} {track.ref} (generation {generation})")
            self._notify_listeners(self._state)

    def on_track_finished(self, generation: int) -> None:
        """
        Clear state if it belongs to generation.

        A finish for an older generation leaves a newer state in place.
        """
        with self._lock:
            if self._state is None or self._state.generation != generation:
                return
            logger.debug(f"[NOW_PLAYING] State cleared: {self._state.track.ref}")
            self._state = None
            self._notify_listeners(None)

    def get_state(self) -> Optional[NowPlayingState]:
        with self._lock:
            return self._state

    def clear_state(self) -> None:
        with self._lock:
            self._state = None
            self._notify_listeners(None)

    def add_listener(self, callback) -> None:
        """
        Add a listener callback for state changes.

        Callback will be called with (state: Optional[NowPlayingState]) when state changes.
        """
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, callback) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def _notify_listeners(self, state: Optional[NowPlayingState]) -> None:
        # Copy listeners list to avoid lock contention during callback execution
        listeners = self._listeners.copy()

        for callback in listeners:
            try:
                callback(state)
            except Exception as e:
                # Listener failures must not affect playback
                logger.debug(f"[NOW_PLAYING] Listener callback error: {e}")
