"""
Playback module for the Jukebox playback engine.

This package contains the playlist model, the playback session that owns
the exclusive output, and the per-guild controller that serializes work
against it.
"""
