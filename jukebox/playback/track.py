"""
Track model for the Jukebox playback engine.

A Track is either a ready local file or a remote media reference that
must be materialized through MediaCache before it can play.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from jukebox.playback.errors import InvalidArgument


@dataclass(frozen=True)
class Track:
    """
    Represents a single playable entry in a playlist.

    Exactly one of local_path and remote_ref is set.

    Attributes:
        local_path: Path to a local audio file
        remote_ref: Remote media URL (e.g. a YouTube watch URL)
        title: Display title, if known
    """
    local_path: Optional[str] = None
    remote_ref: Optional[str] = None
    title: Optional[str] = None

    def __post_init__(self):
        if bool(self.local_path) == bool(self.remote_ref):
            raise InvalidArgument("a track needs exactly one of a local path or a remote reference")

    @property
    def ref(self) -> str:
        """The local path or remote reference, whichever is set."""
        return self.local_path or self.remote_ref

    @property
    def is_remote(self) -> bool:
        return self.remote_ref is not None

    def display_title(self) -> str:
        return self.title or self.ref

    def to_dict(self) -> Dict[str, Any]:
        return {
            "local_path": self.local_path,
            "remote_ref": self.remote_ref,
            "title": self.title,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        return cls(
            local_path=data.get("local_path"),
            remote_ref=data.get("remote_ref"),
            title=data.get("title"),
        )
