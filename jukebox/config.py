"""
Configuration management for the Jukebox playback engine.

Reads configuration from a .env file and environment variables with sensible defaults.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Default .env file location
DEFAULT_ENV_FILE = Path("/etc/jukebox/jukebox.env")

OUTPUT_MODES = ("null", "ffplay")

logger = logging.getLogger(__name__)


def _load_env_file():
    """Load environment variables from .env file if it exists."""
    env_file = os.getenv("JUKEBOX_ENV_FILE", str(DEFAULT_ENV_FILE))
    env_path = Path(env_file)

    if env_path.exists():
        load_dotenv(env_path, override=False)  # Don't override existing env vars


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}: {raw} (must be an integer)")


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}: {raw} (must be a number)")


@dataclass
class JukeboxConfig:
    """Jukebox configuration loaded from .env file and environment variables."""

    # Storage
    cache_dir: str = "./cache"
    db_path: str = "./playlists/playlists.sqlite"

    # Output
    output_mode: str = "null"
    output_target: str = "default"

    # Volume
    default_volume: float = 1.0
    ramp_steps: int = 20
    ramp_interval_ms: int = 10

    # Concurrency
    download_workers: int = 4
    command_timeout_sec: float = 120.0

    # Reporting
    webhook_url: Optional[str] = None

    # Logging
    log_file: str = "/var/log/jukebox/jukebox.log"
    log_level: str = "INFO"

    @classmethod
    def load_config(cls) -> "JukeboxConfig":
        """
        Load configuration from environment variables.

        Returns:
            JukeboxConfig instance with loaded values

        Raises:
            ValueError: If configuration is invalid
        """
        # Load .env file first (if it exists)
        _load_env_file()

        webhook_url = os.getenv("JUKEBOX_WEBHOOK_URL")
        if webhook_url == "":
            webhook_url = None

        config = cls(
            cache_dir=os.getenv("JUKEBOX_CACHE_DIR", "./cache"),
            db_path=os.getenv("JUKEBOX_DB_PATH", "./playlists/playlists.sqlite"),
            output_mode=os.getenv("JUKEBOX_OUTPUT_MODE", "null").lower(),
            output_target=os.getenv("JUKEBOX_OUTPUT_TARGET", "default"),
            default_volume=_env_float("JUKEBOX_DEFAULT_VOLUME", "1.0"),
            ramp_steps=_env_int("JUKEBOX_RAMP_STEPS", "20"),
            ramp_interval_ms=_env_int("JUKEBOX_RAMP_INTERVAL_MS", "10"),
            download_workers=_env_int("JUKEBOX_DOWNLOAD_WORKERS", "4"),
            command_timeout_sec=_env_float("JUKEBOX_COMMAND_TIMEOUT_SEC", "120"),
            webhook_url=webhook_url,
            log_file=os.getenv("JUKEBOX_LOG_FILE", "/var/log/jukebox/jukebox.log"),
            log_level=os.getenv("JUKEBOX_LOG_LEVEL", "INFO"),
        )

        # Validate configuration
        config.validate()

        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.output_mode not in OUTPUT_MODES:
            raise ValueError(
                f"Invalid JUKEBOX_OUTPUT_MODE: {self.output_mode} "
                f"(must be one of: {', '.join(OUTPUT_MODES)})"
            )

        if not 0.0 <= self.default_volume <= 2.0:
            raise ValueError(f"Invalid default volume: {self.default_volume} (must be 0-2)")

        if self.ramp_steps <= 0:
            raise ValueError(f"Invalid ramp steps: {self.ramp_steps} (must be > 0)")

        if self.ramp_interval_ms < 0:
            raise ValueError(f"Invalid ramp interval: {self.ramp_interval_ms} (must be >= 0)")

        if self.download_workers <= 0:
            raise ValueError(f"Invalid download worker count: {self.download_workers} (must be > 0)")

        if self.command_timeout_sec <= 0:
            raise ValueError(f"Invalid command timeout: {self.command_timeout_sec} (must be > 0)")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_log_levels:
            raise ValueError(
                f"Invalid log level: {self.log_level} "
                f"(must be one of: {', '.join(valid_log_levels)})"
            )


def load_config() -> JukeboxConfig:
    """
    Load and validate Jukebox configuration from environment variables.

    Returns:
        JukeboxConfig instance with loaded and validated values

    Raises:
        ValueError: If configuration is invalid
    """
    try:
        return JukeboxConfig.load_config()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        raise
