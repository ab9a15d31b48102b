import logging
import threading
import time
from typing import Callable, Optional

from jukebox.outputs.base_output import OutputCapability, OutputHandle, StreamHandle
from jukebox.playback.errors import JoinFailed

logger = logging.getLogger(__name__)


class NullStream(StreamHandle):
    """
    A stream that discards audio.

    With a duration it ends on its own after that many seconds (paused
    time does not count); without one it runs until stopped.
    """

    def __init__(self, path: str, volume: float, duration_sec: Optional[float]):
        self.path = path
        self.volume = volume
        self._remaining = duration_sec
        self._started_at: Optional[float] = None
        self._timer: Optional[threading.Timer] = None
        self._callback: Optional[Callable[[], None]] = None
        self._lock = threading.Lock()
        self._done = False
        self._ended = False
        self._arm()

    def _arm(self) -> None:
        if self._remaining is None:
            return
        self._started_at = time.monotonic()
        self._timer = threading.Timer(self._remaining, self._end)
        self._timer.daemon = True
        self._timer.start()

    def _end(self) -> None:
        with self._lock:
            if self._done:
                return
            self._done = True
            self._ended = True
            callback = self._callback
        if callback:
            callback()

    def on_finished(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._callback = callback
            ended = self._ended
        # Ended before anyone was listening
        if ended:
            callback()

    def pause(self) -> None:
        with self._lock:
            if self._timer is None or self._done:
                return
            self._timer.cancel()
            self._timer = None
            self._remaining = max(0.0, self._remaining - (time.monotonic() - self._started_at))

    def resume(self) -> None:
        with self._lock:
            if self._timer is not None or self._done:
                return
            self._arm()

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    def stop(self) -> None:
        with self._lock:
            self._done = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class NullOutputHandle(OutputHandle):

    def __init__(self, target: str, duration_sec: Optional[float]):
        self.target = target
        self._duration_sec = duration_sec

    def play(self, path: str, volume: float = 1.0) -> StreamHandle:
        logger.debug(f"[OUTPUT] Null play: {path} (volume={volume:.2f})")
        return NullStream(path, volume, self._duration_sec)

    def leave(self) -> None:
        logger.debug(f"[OUTPUT] Null leave: {self.target}")


class NullOutput(OutputCapability):
    """An output that discards all audio. Useful for headless runs and tests."""

    def __init__(self, track_duration_sec: Optional[float] = None):
        self._track_duration_sec = track_duration_sec

    def join(self, target: str) -> OutputHandle:
        if not target:
            raise JoinFailed("enter a voice channel first.")
        return NullOutputHandle(target, self._track_duration_sec)
