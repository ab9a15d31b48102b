"""
Cancelable volume ramp for the Jukebox playback engine.

A ramp moves a stream's volume from a base level to a target level over a
fixed number of discrete ticks on its own thread. Each tick goes through
an apply callback supplied by the owner; the owner re-checks, under its
own lock, that the ramp is still active before touching the stream.
"""

import logging
import threading
from typing import Callable, Optional

import numpy as np

logger = logging.getLogger(__name__)


class VolumeRamp:
    """
    Moves volume toward a target over `steps` ticks spaced `step_interval_ms` apart.

    The final tick lands exactly on the target. cancel() stops further
    ticks; a tick already waiting on the owner's lock is rejected by the
    owner's is-active check.
    """

    def __init__(
        self,
        base: float,
        target: float,
        apply: Callable[["VolumeRamp", float], bool],
        steps: int = 20,
        step_interval_ms: int = 10,
    ):
        """
        Initialize a ramp (does not start it).

        Args:
            base: Volume at the start of the ramp
            target: Volume after the final tick
            apply: Called as apply(ramp, value) for each tick; returns False
                   when the ramp is no longer wanted
            steps: Number of ticks (must be > 0)
            step_interval_ms: Delay before each tick in milliseconds
        """
        if steps <= 0:
            raise ValueError(f"Invalid ramp steps: {steps} (must be > 0)")
        self.base = float(base)
        self.target = float(target)
        self.steps = steps
        self.step_interval = max(0, step_interval_ms) / 1000.0
        self._apply = apply
        self._cancelled = threading.Event()
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ticks_applied = 0

    def values(self) -> np.ndarray:
        """Volume value for each tick (base excluded, target included)."""
        return np.linspace(self.base, self.target, self.steps + 1)[1:]

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="volume-ramp", daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        """Stop the ramp. Idempotent."""
        if not self._cancelled.is_set():
            self._cancelled.set()
            logger.debug(f"[RAMP] Cancelled after {self.ticks_applied}/{self.steps} ticks")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the ramp thread exits. Returns True if it did."""
        return self._done.wait(timeout)

    def _run(self) -> None:
        try:
            for value in self.values():
                # Event.wait doubles as the tick timer and the cancel signal
                if self._cancelled.wait(self.step_interval):
                    return
                if not self._apply(self, float(value)):
                    return
                self.ticks_applied += 1
            logger.debug(f"[RAMP] Reached {self.target:.2f} in {self.ticks_applied} ticks")
        except Exception as e:
            logger.error(f"[RAMP] Tick failed: {e}", exc_info=True)
        finally:
            self._done.set()
