"""
Custom logging filters and configuration.

Provides the application-wide logging setup and a filter that keeps
the content of sensitive notes out of log output.
"""

from __future__ import annotations

import logging

from notegraph.core.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
REDACTED = "[redacted]"


class SensitiveContentFilter(logging.Filter):
    """Redact the content preview of records logged for sensitive notes."""

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Replace the trailing message argument of sensitive records.

        Callers opt in with ``extra={"sensitive": True}`` and pass the
        content preview as the last formatting argument.

        Args:
            record: The log record to filter

        Returns:
            Always True; records are rewritten, never dropped
        """
        if getattr(record, "sensitive", False) and isinstance(record.args, tuple):
            if record.args:
                record.args = (*record.args[:-1], REDACTED)
        return True


def configure_logging(level: str | int | None = None) -> None:
    """
    Configure root logging for the application.

    Args:
        level: Logging level name or number (defaults to settings.log_level)
    """
    if level is None:
        level = get_settings().log_level.upper()
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(SensitiveContentFilter())
