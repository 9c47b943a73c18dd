"""
Structured JSON logging for the ledger core.

Every logger lives under ``mizan``.  A record is rendered as one JSON
object per line: ts, level, logger, message, then the fields bound with
``LogContext.bind`` (correlation, actor, document, bank line, piece), then
any ``extra`` keys.  Exceptions carrying structured attributes (MizanError
subclasses) are flattened to ``exc_<attr>`` next to ``exc_code``.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "mizan"

_CONTEXT_FIELDS = ("correlation_id", "actor_id", "document_id", "bank_id", "piece_id")

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"mizan_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


class LogContext:
    """Request-scoped fields copied onto every record."""

    @staticmethod
    def get_all() -> dict[str, str]:
        values = {name: var.get() for name, var in _context.items()}
        return {name: value for name, value in values.items() if value is not None}

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """Set fields for the duration of the block.  None values are skipped."""
        unknown = sorted(set(fields) - set(_CONTEXT_FIELDS))
        if unknown:
            raise TypeError(f"Unknown log context field(s): {unknown}")
        tokens = [
            (_context[name], _context[name].set(value))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord carries; anything else came in through ``extra``.
_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            for key, val in vars(exc).items():
                if not key.startswith("_") and key != "code":
                    payload[f"exc_{key}"] = val
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the mizan namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def _is_installed(handler: logging.Handler) -> bool:
    return getattr(handler, "_mizan_installed", False)


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach the JSON handler to the ``mizan`` logger.

    Idempotent: once a handler has been installed, later calls change
    nothing until ``reset_logging()``.
    """
    logger = logging.getLogger(_LOGGER_PREFIX)
    if any(_is_installed(h) for h in logger.handlers):
        return

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    h._mizan_installed = True
    logger.setLevel(level)
    logger.propagate = False
    logger.addHandler(h)


def reset_logging() -> None:
    """Detach every handler from the ``mizan`` logger. FOR TESTING ONLY."""
    logger = logging.getLogger(_LOGGER_PREFIX)
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.setLevel(logging.WARNING)
