"""
Error taxonomy for the Jukebox playback engine.

Components raise JukeboxError subclasses; PlaylistController converts them
into CommandResult values at its public boundary so that no exception
crosses into the command layer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    """Failure categories reported to the user."""
    INVALID_ARGUMENT = "invalid_argument"
    DOWNLOAD_FAILED = "download_failed"
    JOIN_FAILED = "join_failed"
    NO_OUTPUT_TARGET = "no_output_target"
    NO_RESULTS = "no_results"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class JukeboxError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind = ErrorKind.INTERNAL


class InvalidArgument(JukeboxError):
    """Bad command argument (volume out of range, unknown repeat mode, ...)."""

    kind = ErrorKind.INVALID_ARGUMENT


class IndexOutOfRange(InvalidArgument):
    """Playlist index does not exist. Reported as INVALID_ARGUMENT."""


class DownloadFailed(JukeboxError):
    """Fetching a remote media reference into the cache failed."""

    kind = ErrorKind.DOWNLOAD_FAILED


class JoinFailed(JukeboxError):
    """No output target available, or joining it was rejected."""

    kind = ErrorKind.JOIN_FAILED


class NoOutputTarget(JukeboxError):
    """Playback requested while no output destination is bound."""

    kind = ErrorKind.NO_OUTPUT_TARGET


class NoResults(JukeboxError):
    """A search query yielded nothing."""

    kind = ErrorKind.NO_RESULTS


class NotFound(JukeboxError):
    """A saved playlist does not exist."""

    kind = ErrorKind.NOT_FOUND


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of a command, usable for user-facing text.

    Attributes:
        ok: True if the command succeeded
        message: Text to show the user
        error: Failure category when ok is False
        data: Optional structured payload (listing lines, volume, ...)
        pending: True if the command is still running and its outcome will be
            reported when it finishes
    """
    ok: bool
    message: str
    error: Optional[ErrorKind] = None
    data: Any = None
    pending: bool = False

    @classmethod
    def success(cls, message: str, data: Any = None) -> "CommandResult":
        return cls(ok=True, message=message, data=data)

    @classmethod
    def failure(cls, error: JukeboxError) -> "CommandResult":
        return cls(ok=False, message=str(error), error=error.kind)
