"""Structured logging configuration for rateprowler.

Every probe logs through a context adapter carrying its endpoint name and
URL, and failure logs carry the backoff wait and step. Both formatters pick
those fields up from the record:

    2026-01-02 15:04:05.123 [WARNING ] [probe     ] [endpoint=api url=https://...] Error on first request ...
    {"timestamp": "...", "level": "DEBUG", "component": "probe", "thread": "rateprowler-probe_0",
     "message": "...", "endpoint": "api", "wait_seconds": 2, "backoff_step": 2}
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import UTC, datetime
from typing import Any

# Identify which endpoint a record belongs to
CONTEXT_FIELDS = ("endpoint", "url")
# Describe the backoff applied after a failure
BACKOFF_FIELDS = ("wait_seconds", "backoff_step")


def _component(record: logging.LogRecord) -> str:
    """Last segment of the logger name, e.g. "rateprowler.probe" -> "probe"."""
    return record.name.rpartition(".")[2]


def _present_fields(record: logging.LogRecord, names: tuple[str, ...]) -> dict[str, Any]:
    return {name: getattr(record, name) for name in names if hasattr(record, name)}


class StructuredFormatter(logging.Formatter):
    """Single-line human-readable formatter.

    Endpoint context is rendered in brackets before the message and backoff
    fields in parentheses after it.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=UTC).strftime("%Y-%m-%d %H:%M:%S.%f")
        parts = [timestamp[:-3], f"[{record.levelname:8}]", f"[{_component(record):10}]"]

        context = _present_fields(record, CONTEXT_FIELDS)
        if context:
            parts.append("[" + " ".join(f"{key}={value}" for key, value in context.items()) + "]")

        parts.append(record.getMessage())

        backoff = _present_fields(record, BACKOFF_FIELDS)
        if backoff:
            parts.append("(" + " ".join(f"{key}={value}" for key, value in backoff.items()) + ")")

        if record.exc_info:
            parts.append(self.formatException(record.exc_info))

        return " ".join(parts)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers.

    The worker thread name is included so records from concurrent probes can
    be told apart even without endpoint context.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "component": _component(record),
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        log_data.update(_present_fields(record, CONTEXT_FIELDS + BACKOFF_FIELDS))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ContextAdapter(logging.LoggerAdapter[logging.Logger]):
    """Adapter that stamps an endpoint's context onto every record.

    Fields passed through ``extra`` at the call site take precedence over the
    adapter's context, and the caller's dict is never modified.

    Usage:
        log = get_logger(__name__).with_context(endpoint="api", url="https://api.example.com")
        log.debug("Request failed", extra={"wait_seconds": 2})
    """

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


class ProwlerLogger(logging.Logger):
    """Custom logger with context support."""

    def with_context(self, **context: Any) -> ContextAdapter:
        """Create a logger adapter with additional context.

        Args:
            **context: Context fields to add to all log messages.

        Returns:
            ContextAdapter with the specified context.
        """
        return ContextAdapter(self, context)


# Register our custom logger class
logging.setLoggerClass(ProwlerLogger)


def get_logger(name: str) -> ProwlerLogger:
    """Get a logger with the custom ProwlerLogger class.

    Args:
        name: Logger name (typically __name__).

    Returns:
        ProwlerLogger instance.
    """
    return logging.getLogger(name)  # type: ignore[return-value]


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    replace_handlers: bool = True,
) -> None:
    """Configure logging for the application.

    Log records go to stderr so that reporter lines on stdout stay readable.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR).
        json_format: If True, output JSON-formatted logs.
        replace_handlers: If True, remove existing handlers before adding new ones.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    if replace_handlers:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(StructuredFormatter())

    root_logger.addHandler(handler)

    logging.getLogger("rateprowler").setLevel(numeric_level)
    # httpx logs every request at INFO, which would drown out the probes
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))
