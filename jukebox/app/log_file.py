"""
File logging for the Jukebox playback engine.

Log files are written through WatchedFileHandler so external rotation
(logrotate truncating or renaming the file) is picked up without a restart.
"""

import logging
import logging.handlers
import os


def attach_log_file(logger: logging.Logger, path: str, level: int = logging.DEBUG) -> bool:
    """
    Attach a rotation-tolerant file handler to a logger.

    Logging failures degrade silently: a missing or unwritable log
    directory leaves the logger untouched, and write errors after
    attachment are dropped.

    Args:
        logger: Logger to attach the handler to
        path: Log file path
        level: Handler level (default DEBUG)

    Returns:
        True if a handler is attached for the path, False otherwise
    """
    # Prevent duplicate handlers on repeated setup
    if any(isinstance(h, logging.handlers.WatchedFileHandler)
           and getattr(h, 'baseFilename', None) == os.path.abspath(path)
           for h in logger.handlers):
        return True

    try:
        handler = logging.handlers.WatchedFileHandler(path, mode='a')
    except OSError:
        return False

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s'))

    # Wrap emit to handle write failures gracefully
    original_emit = handler.emit

    def safe_emit(record):
        try:
            original_emit(record)
        except (IOError, OSError):
            pass

    handler.emit = safe_emit
    logger.addHandler(handler)
    return True
