"""
Playback Session for the Jukebox playback engine.

Owns the single exclusive output handle for one guild and the one live
stream played through it. Every playback attempt is tagged with a
generation number; the finished notification for a generation is emitted
exactly once, and end events that arrive for an older generation are
dropped.

State flow:
    IDLE -> STARTING -> PLAYING <-> PAUSED -> (finished) -> IDLE
"""

import logging
import math
import threading
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Callable, Optional

from jukebox.outputs.base_output import OutputCapability, OutputHandle, StreamHandle
from jukebox.playback.errors import InvalidArgument, NoOutputTarget
from jukebox.playback.volume_ramp import VolumeRamp

logger = logging.getLogger(__name__)

MIN_VOLUME = 0.0
MAX_VOLUME = 2.0


class StopReason(Enum):
    """Why a playback ended. Only NATURAL_END lets the playlist move on."""
    NATURAL_END = "naturalEnd"
    SUPERSEDED = "superseded"
    CLEARED = "cleared"
    INDEX_DELETED = "indexDeleted"
    LEAVING = "leaving"

    @property
    def advances(self) -> bool:
        return self is StopReason.NATURAL_END


class SessionState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True)
class FinishedNotification:
    """
    Terminal event for one playback.

    Attributes:
        generation: Generation of the playback that ended
        reason: Why it ended
        path: File that was playing
    """
    generation: int
    reason: StopReason
    path: Optional[str] = None


def validate_volume(level) -> float:
    """
    Check a volume level.

    Raises:
        InvalidArgument: If level is not a number in [0, 2]
    """
    if isinstance(level, bool) or not isinstance(level, Real) or math.isnan(level):
        raise InvalidArgument(f"volume must be a number between 0 and 2 (got {level!r})")
    if not MIN_VOLUME <= level <= MAX_VOLUME:
        raise InvalidArgument(f"volume must be between 0 and 2 (got {level})")
    return float(level)


class PlaybackSession:
    """
    Exclusive owner of one output handle and at most one live stream.

    All methods are thread-safe. Finished notifications are delivered
    synchronously to the on_finished callback while the session lock is
    held, so they arrive in the order playbacks actually ended. The
    callback must therefore be non-blocking (PlaylistController only
    enqueues the notification onto its mailbox).
    """

    def __init__(
        self,
        output: OutputCapability,
        on_finished: Optional[Callable[[FinishedNotification], None]] = None,
        volume: float = 1.0,
        name: str = "session",
    ):
        """
        Initialize the session (unbound, idle).

        Args:
            output: Output capability used to join a target
            on_finished: Callback receiving each FinishedNotification
            volume: Initial volume in [0, 2]
            name: Label used in log messages
        """
        self._output = output
        self._on_finished = on_finished
        self._name = name
        self._lock = threading.RLock()

        self._handle: Optional[OutputHandle] = None
        self._target: Optional[str] = None
        self._stream: Optional[StreamHandle] = None
        self._stream_path: Optional[str] = None
        self._state = SessionState.IDLE

        self._generation = 0
        self._finished_generation = 0  # Newest generation whose notification has been emitted
        self._volume = validate_volume(volume)
        self._ramp: Optional[VolumeRamp] = None

    def set_finished_callback(self, on_finished: Optional[Callable[[FinishedNotification], None]]) -> None:
        with self._lock:
            self._on_finished = on_finished

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def volume(self) -> float:
        with self._lock:
            return self._volume

    @property
    def target(self) -> Optional[str]:
        with self._lock:
            return self._target

    @property
    def is_bound(self) -> bool:
        with self._lock:
            return self._handle is not None

    @property
    def is_playing(self) -> bool:
        """True while a stream is live (playing or paused)."""
        with self._lock:
            return self._stream is not None

    @property
    def current_path(self) -> Optional[str]:
        with self._lock:
            return self._stream_path if self._stream is not None else None

    # ------------------------------------------------------------------
    # Output binding
    # ------------------------------------------------------------------

    def bind(self, target: Optional[str]) -> None:
        """
        Join an output target. Re-binding to the current target is a no-op.

        Binding to a different target releases the old one after the new
        join succeeds; a failed join leaves the session untouched.

        Raises:
            JoinFailed: If the output capability rejects the target
        """
        with self._lock:
            if self._handle is not None and target == self._target:
                return
            handle = self._output.join(target)
            if self._handle is not None:
                self._release_locked()
            self._handle = handle
            self._target = target
            logger.info(f"[SESSION] {self._name}: joined output {target}")

    def leave(self) -> bool:
        """
        Stop playback with reason LEAVING and release the output handle.

        Returns:
            True if a handle was released, False if none was bound
        """
        with self._lock:
            if self._handle is None:
                logger.debug(f"[SESSION] {self._name}: leave() while unbound ignored")
                return False
            self._release_locked()
            return True

    def _release_locked(self) -> None:
        self._stop_locked(StopReason.LEAVING)
        handle, target = self._handle, self._target
        self._handle = None
        self._target = None
        try:
            handle.leave()
        except Exception as e:
            logger.warning(f"[SESSION] {self._name}: error leaving output {target}: {e}")
        logger.info(f"[SESSION] {self._name}: left output {target}")

    # ------------------------------------------------------------------
    # Playback control
    # ------------------------------------------------------------------

    def start(self, path: str, volume: Optional[float] = None) -> int:
        """
        Start playing a local file.

        A live stream is stopped first with reason SUPERSEDED. Returns once
        playback has begun; completion arrives as a FinishedNotification.

        Args:
            path: Local file to play
            volume: Optional volume override in [0, 2]

        Returns:
            Generation number of the new playback

        Raises:
            NoOutputTarget: If no output handle is bound
            InvalidArgument: If volume is out of range
        """
        with self._lock:
            if self._handle is None:
                raise NoOutputTarget("i'm not connected to an output. join a voice channel first.")
            if volume is not None:
                self._volume = validate_volume(volume)

            self._cancel_ramp_locked()
            if self._stream is not None:
                self._stop_locked(StopReason.SUPERSEDED)

            self._generation += 1
            generation = self._generation
            self._state = SessionState.STARTING

            try:
                stream = self._handle.play(path, self._volume)
            except Exception:
                # Nothing went live, so there is nothing to notify about
                self._finished_generation = generation
                self._state = SessionState.IDLE
                logger.error(f"[SESSION] {self._name}: output failed to start {path}", exc_info=True)
                raise

            self._stream = stream
            self._stream_path = path
            self._state = SessionState.PLAYING
            stream.on_finished(lambda: self._on_stream_end(generation))
            logger.info(f"[SESSION] {self._name}: started generation {generation}: {path}")
            return generation

    def stop(self, reason: StopReason) -> bool:
        """
        Stop the live stream and emit its finished notification.

        Idempotent: stopping an already-stopped session is a no-op.

        Returns:
            True if a stream was stopped, False if nothing was playing
        """
        with self._lock:
            if self._stream is None:
                logger.debug(f"[SESSION] {self._name}: stop({reason.value}) while idle ignored")
                return False
            return self._stop_locked(reason)

    def pause(self) -> bool:
        """Pause the live stream. No-op unless PLAYING."""
        with self._lock:
            if self._state is not SessionState.PLAYING:
                logger.debug(f"[SESSION] {self._name}: pause() in state {self._state.value} ignored")
                return False
            self._stream.pause()
            self._state = SessionState.PAUSED
            return True

    def resume(self) -> bool:
        """Resume a paused stream. No-op unless PAUSED."""
        with self._lock:
            if self._state is not SessionState.PAUSED:
                logger.debug(f"[SESSION] {self._name}: resume() in state {self._state.value} ignored")
                return False
            self._stream.resume()
            self._state = SessionState.PLAYING
            return True

    # ------------------------------------------------------------------
    # Volume
    # ------------------------------------------------------------------

    def set_volume(self, level: float) -> float:
        """
        Set the volume instantly. Cancels any in-flight ramp.

        Raises:
            InvalidArgument: If level is outside [0, 2]
        """
        level = validate_volume(level)
        with self._lock:
            self._cancel_ramp_locked()
            self._volume = level
            if self._stream is not None:
                self._stream.set_volume(level)
            return level

    def ramp_volume(self, target: float, steps: int = 20, step_interval_ms: int = 10) -> Optional[VolumeRamp]:
        """
        Move the volume to target over `steps` ticks.

        The ramp starts from the locally tracked volume. Any in-flight ramp
        is cancelled first. With no live stream the target is applied
        immediately and no ramp runs.

        Returns:
            The running VolumeRamp, or None if applied immediately

        Raises:
            InvalidArgument: If target is outside [0, 2] or steps <= 0
        """
        target = validate_volume(target)
        if isinstance(steps, bool) or not isinstance(steps, int) or steps <= 0:
            raise InvalidArgument(f"ramp steps must be a positive integer (got {steps!r})")
        with self._lock:
            self._cancel_ramp_locked()
            if self._stream is None:
                self._volume = target
                return None
            ramp = VolumeRamp(self._volume, target, self._apply_ramp_tick, steps, step_interval_ms)
            self._ramp = ramp
            ramp.start()
            logger.debug(f"[SESSION] {self._name}: ramping volume {ramp.base:.2f} -> {target:.2f}")
            return ramp

    def _apply_ramp_tick(self, ramp: VolumeRamp, value: float) -> bool:
        with self._lock:
            if ramp is not self._ramp or ramp.cancelled or self._stream is None:
                logger.debug(f"[RAMP] {self._name}: dropped tick from inactive ramp")
                return False
            self._volume = value
            self._stream.set_volume(value)
            return True

    def _cancel_ramp_locked(self) -> None:
        if self._ramp is not None:
            self._ramp.cancel()
            self._ramp = None

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _on_stream_end(self, generation: int) -> None:
        """Native end-of-media event from the output, possibly on another thread."""
        with self._lock:
            if generation != self._generation or generation <= self._finished_generation:
                logger.debug(
                    f"[SESSION] {self._name}: dropped late end event for generation {generation} "
                    f"(current={self._generation})"
                )
                return
            self._stop_locked(StopReason.NATURAL_END)

    def _stop_locked(self, reason: StopReason) -> bool:
        if self._stream is None:
            return False
        self._cancel_ramp_locked()
        stream, path = self._stream, self._stream_path
        generation = self._generation

        self._stream = None
        self._stream_path = None
        self._state = SessionState.IDLE
        self._finished_generation = generation

        try:
            stream.stop()
        except Exception as e:
            logger.warning(f"[SESSION] {self._name}: error stopping stream for generation {generation}: {e}")

        logger.info(f"[SESSION] {self._name}: generation {generation} finished ({reason.value})")
        notification = FinishedNotification(generation=generation, reason=reason, path=path)
        if self._on_finished:
            try:
                self._on_finished(notification)
            except Exception as e:
                logger.error(f"[SESSION] {self._name}: error in finished callback: {e}", exc_info=True)
        return True
