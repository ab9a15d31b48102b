"""
Output capability interfaces for the Jukebox playback engine.

The engine never decodes or mixes audio. It treats "play this file" as an
opaque primitive provided by an output capability:

    OutputCapability.join(target) -> OutputHandle
    OutputHandle.play(path, volume) -> StreamHandle
    StreamHandle.on_finished(callback), pause(), resume(), set_volume(), stop()
    OutputHandle.leave()
"""

from abc import ABC, abstractmethod
from typing import Callable


class StreamHandle(ABC):
    """
    A single playback in progress.

    The finished callback fires at most once, when the stream reaches the
    end of its media. An explicit stop() may or may not fire it; consumers
    must tolerate both.
    """

    @abstractmethod
    def on_finished(self, callback: Callable[[], None]) -> None:
        """
        Register the end-of-media callback.

        Args:
            callback: Called with no arguments, possibly from another thread
        """
        ...

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def resume(self) -> None:
        ...

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        """
        Set the stream volume.

        Args:
            volume: Linear gain in [0, 2]
        """
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop playback and release stream resources. Safe to call twice."""
        ...


class OutputHandle(ABC):
    """A joined output destination (e.g. a voice channel connection)."""

    @abstractmethod
    def play(self, path: str, volume: float = 1.0) -> StreamHandle:
        """
        Start playing a local file.

        Returns immediately; completion is signalled through the stream's
        finished callback.

        Args:
            path: Local audio file path
            volume: Initial linear gain in [0, 2]
        """
        ...

    @abstractmethod
    def leave(self) -> None:
        """Release the output destination."""
        ...


class OutputCapability(ABC):
    """Factory for output handles."""

    @abstractmethod
    def join(self, target: str) -> OutputHandle:
        """
        Join an output destination.

        Args:
            target: Destination identifier (voice channel, audio device, ...)

        Raises:
            JoinFailed: If the target is missing or the join is rejected
        """
        ...
