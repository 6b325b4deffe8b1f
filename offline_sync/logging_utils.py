"""
Structured JSON logging utilities.

Sync passes usually run unattended in the background, so their logs end
up in a collector rather than a terminal. Records are emitted as single
JSON lines; queue item context attached through SyncLoggerAdapter is
grouped under a ``sync`` key so collectors can index it uniformly.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import QueueItem

PACKAGE_LOGGER = "offline_sync"

# Context keys grouped under "sync" in JSON output
SYNC_CONTEXT_KEYS = ("item_id", "table", "operation", "retry_count")

# Third-party loggers that log every HTTP request at INFO
TRANSPORT_LOGGERS = ("aiohttp.access", "azure.core.pipeline.policies.http_logging_policy")

_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats records as single-line JSON objects.

    Fields:
    - timestamp: ISO 8601 in UTC
    - level, logger, message
    - sync: queue item context (item_id, table, operation, retry_count), if any
    - exception: formatted traceback, if any
    - any other ``extra`` fields at top level
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            if key in SYNC_CONTEXT_KEYS:
                context[key] = _jsonable(value)
            else:
                entry[key] = _jsonable(value)
        if context:
            entry["sync"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = PACKAGE_LOGGER,
    stream: IO[str] | None = None,
    quiet_transports: bool = True,
) -> logging.Logger:
    """
    Send a logger's output to a stream as JSON lines.

    Args:
        level: Logging level
        logger_name: Logger to configure (the package logger by default)
        stream: Output stream (stdout if None)
        quiet_transports: Raise HTTP client request loggers to WARNING

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)

    if quiet_transports:
        for name in TRANSPORT_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_sync_logger(name: str) -> logging.Logger:
    """Logger for a sync component, named ``offline_sync.<name>``."""
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


class SyncLoggerAdapter(logging.LoggerAdapter):
    """Adds queue item context to every record it logs."""

    @classmethod
    def for_item(cls, logger: logging.Logger, item: QueueItem) -> SyncLoggerAdapter:
        """Adapter carrying the context of one queue item."""
        return cls(
            logger,
            {
                "item_id": item.id,
                "table": item.table,
                "operation": item.operation.value,
                "retry_count": item.retry_count,
            },
        )

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        # Per-call extra wins over the adapter's context
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs
