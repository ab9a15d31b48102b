"""
Jukebox: a per-guild playback engine with a shared download cache.
"""

__version__ = "1.0.0"
