"""
Structured JSON logger for the reaper.

Provides CloudWatch Logs compatible JSON output with essential fields.
"""

import logging
import json
import os
import sys
from datetime import datetime, timezone
from typing import Any


class JsonFormatter(logging.Formatter):
    """
    Custom formatter that outputs log records as JSON.

    Each log entry includes:
    - timestamp: ISO 8601 format with timezone
    - level: Log level name (INFO, ERROR, etc.)
    - name: Logger name
    - message: Log message
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()

        log_entry = {
            "timestamp": timestamp,
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "extra_fields") and record.extra_fields:
            log_entry.update(record.extra_fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # default=str keeps datetimes and enums in extra fields serializable
        return json.dumps(log_entry, default=str)


class StructuredLogger:
    """
    Wrapper around Python's logging.Logger with JSON output.

    Provides the standard logging methods (info, warning, error, debug)
    with automatic JSON formatting. A logger can carry bound context
    fields (e.g. region, resource kind) that are merged into every entry.
    """

    def __init__(
        self,
        name: str,
        level: int = logging.INFO,
        context: dict[str, Any] | None = None,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name (typically module name)
            level: Logging level (default: INFO)
            context: Fields merged into every log entry
        """
        self._logger = logging.getLogger(name)
        self._logger.setLevel(level)
        self._context = dict(context or {})

        # Only add handler if not already present (avoid duplicates)
        if not self._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(JsonFormatter())
            self._logger.addHandler(handler)

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **fields: Any) -> "StructuredLogger":
        """Return a logger sharing this one's output with extra bound fields."""
        merged = {**self._context, **fields}
        return StructuredLogger(self._logger.name, self._logger.level, merged)

    def _prepare_extra(self, extra: dict[str, Any] | None) -> dict[str, Any]:
        fields = {**self._context, **(extra or {})}
        if fields:
            return {"extra_fields": fields}
        return {}

    def info(self, msg: str, extra: dict[str, Any] | None = None) -> None:
        self._logger.info(msg, extra=self._prepare_extra(extra))

    def warning(self, msg: str, extra: dict[str, Any] | None = None) -> None:
        self._logger.warning(msg, extra=self._prepare_extra(extra))

    def error(
        self,
        msg: str,
        extra: dict[str, Any] | None = None,
        exc_info: bool = False,
    ) -> None:
        """
        Log an error message.

        Args:
            msg: Log message
            extra: Optional dict of additional fields to include in JSON output
            exc_info: If True, include exception traceback (default: False)
        """
        self._logger.error(msg, extra=self._prepare_extra(extra), exc_info=exc_info)

    def debug(self, msg: str, extra: dict[str, Any] | None = None) -> None:
        self._logger.debug(msg, extra=self._prepare_extra(extra))


def setup_logger(
    name: str = "aws-reaper",
    level: int | None = None,
) -> StructuredLogger:
    """
    Create and configure a structured logger.

    Reads REAPER_LOG_LEVEL (then LOG_LEVEL) from the environment if level
    is not provided.

    Args:
        name: Logger name (default: "aws-reaper")
        level: Logging level (default: from environment, fallback to INFO)

    Returns:
        StructuredLogger instance ready to use

    Example:
        >>> logger = setup_logger("aws_reaper.discovery")
        >>> logger.bind(region="us-east-1").info("Listing instances")
        {"timestamp": "...", "level": "INFO", "region": "us-east-1", ...}
    """
    if level is None:
        level_name = os.getenv("REAPER_LOG_LEVEL") or os.getenv("LOG_LEVEL", "INFO")
        level = getattr(logging, level_name.upper(), logging.INFO)

    return StructuredLogger(name, level)
