"""
User-facing reporting sinks for the Jukebox playback engine.

The controller reports state changes ("Audio downloaded. Enjoy!",
"End of playlist.") through notify(scope, text). Reporting is
fire-and-forget: failures are logged and never reach the engine.
"""

import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class Reporter(Protocol):
    """Anything with notify(scope, text)."""

    def notify(self, scope, text: str) -> None:
        ...


class LogReporter:
    """Writes reports to the log (console runs, no chat platform)."""

    def notify(self, scope, text: str) -> None:
        channel = getattr(scope, "channel_id", scope)
        logger.info(f"[REPORT] #{channel}: {text}")


class WebhookReporter:
    """
    Posts reports to a chat webhook (Discord-compatible {"content": ...} body).

    Stateless and transport-only: it sends whatever it is asked to send.
    """

    def __init__(self, webhook_url: str, timeout: float = 2.0):
        self.webhook_url = webhook_url
        self.timeout = timeout

        # Suppress httpx INFO level logging (one line per report)
        logging.getLogger("httpx").setLevel(logging.WARNING)

    def notify(self, scope, text: str) -> bool:
        try:
            response = httpx.post(self.webhook_url, json={"content": text}, timeout=self.timeout)
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning(f"[REPORT] Failed to deliver report: {e}")
            return False
        except Exception as e:
            logger.error(f"[REPORT] Unexpected error delivering report: {e}")
            return False
