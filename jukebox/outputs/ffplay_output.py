"""
Local speaker output using ffplay.

Each stream is one `ffplay -nodisp -autoexit` process. A watcher thread
waits for the process to exit and fires the finished callback unless the
stream was stopped explicitly.
"""

import logging
import os
import shutil
import signal
import subprocess
import threading
from typing import Callable, Optional

from jukebox.outputs.base_output import OutputCapability, OutputHandle, StreamHandle
from jukebox.playback.errors import JoinFailed

logger = logging.getLogger(__name__)


class FFplayStream(StreamHandle):
    """
    One ffplay process playing a single file.

    ffplay has no runtime volume control, so set_volume() only takes effect
    for the next stream started on the handle.
    """

    def __init__(self, path: str, volume: float, ffplay_bin: str):
        self.path = path
        self.volume = volume
        self._callback: Optional[Callable[[], None]] = None
        self._stopped = False
        self._lock = threading.Lock()

        # ffplay volume is 0-100; engine volume is linear gain 0-2
        ffplay_volume = int(round(min(volume, 1.0) * 100))
        # Own process group so Ctrl-C on the console doesn't reach ffplay
        self.proc = subprocess.Popen(
            [
                ffplay_bin,
                "-nodisp",
                "-autoexit",
                "-loglevel", "quiet",
                "-volume", str(ffplay_volume),
                self.path,
            ],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            preexec_fn=os.setsid,
        )
        self._watcher = threading.Thread(target=self._watch, name=f"ffplay-{self.proc.pid}", daemon=True)
        self._watcher.start()

    def _watch(self) -> None:
        returncode = self.proc.wait()
        with self._lock:
            if self._stopped:
                return
            callback = self._callback
        logger.debug(f"[OUTPUT] ffplay exited (pid={self.proc.pid}, rc={returncode}): {self.path}")
        if callback:
            callback()

    def on_finished(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._callback = callback

    def _signal(self, sig: int) -> None:
        if self.proc.poll() is not None:
            return
        try:
            os.killpg(os.getpgid(self.proc.pid), sig)
        except ProcessLookupError:
            # Process already exited (race condition)
            pass

    def pause(self) -> None:
        self._signal(signal.SIGSTOP)

    def resume(self) -> None:
        self._signal(signal.SIGCONT)

    def set_volume(self, volume: float) -> None:
        self.volume = volume
        logger.debug(f"[OUTPUT] ffplay volume {volume:.2f} recorded (applies to next stream)")

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True

        if self.proc.poll() is None:
            # A stopped (paused) process ignores SIGTERM until continued
            self._signal(signal.SIGCONT)
            self._signal(signal.SIGTERM)
            try:
                self.proc.wait(timeout=2)
            except subprocess.TimeoutExpired:
                logger.warning(f"[OUTPUT] ffplay didn't terminate, killing (pid={self.proc.pid})")
                self._signal(signal.SIGKILL)


class FFplayOutputHandle(OutputHandle):

    def __init__(self, target: str, ffplay_bin: str):
        self.target = target
        self._ffplay_bin = ffplay_bin

    def play(self, path: str, volume: float = 1.0) -> StreamHandle:
        logger.info(f"[OUTPUT] ffplay starting: {path}")
        return FFplayStream(path, volume, self._ffplay_bin)

    def leave(self) -> None:
        logger.info(f"[OUTPUT] Released local output ({self.target})")


class FFplayOutput(OutputCapability):
    """Plays through the local audio device with ffplay."""

    def __init__(self, ffplay_bin: Optional[str] = None):
        self._ffplay_bin = ffplay_bin or shutil.which("ffplay")

    def join(self, target: str) -> OutputHandle:
        if not target:
            raise JoinFailed("no output target to join")
        if not self._ffplay_bin:
            raise JoinFailed("ffplay is not installed; cannot open local output")
        return FFplayOutputHandle(target, self._ffplay_bin)
