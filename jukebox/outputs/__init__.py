"""
Outputs module for the Jukebox playback engine.

This package contains output capabilities that turn "play this file" into
sound (or discard it).
"""

from .base_output import OutputCapability, OutputHandle, StreamHandle
from .null_output import NullOutput
from .ffplay_output import FFplayOutput
from .factory import create_output

__all__ = [
    "OutputCapability",
    "OutputHandle",
    "StreamHandle",
    "NullOutput",
    "FFplayOutput",
    "create_output",
]
