"""
Structured JSON logging for the pricing engine.

Every record is written as one JSON object:

* envelope: ``ts``, ``level``, ``logger``, ``message`` (the event name,
  e.g. ``adjustment_applied``);
* request context bound through LogContext: ``operation``, ``actor_id``,
  ``adjustment_id``, ``material``;
* the ``extra`` fields given at the call site (prices and totals arrive as
  Decimal and are written as strings, never floats);
* ``error`` when the record carries an exception.  For a PricingKernelError
  it holds the code, HTTP-style status, retriable flag and the structured
  details (``stage`` for ApplyFailedError, ``month`` for
  MissingIndexDataError, ...).
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

from pricing_kernel.exceptions import PricingKernelError

CONTEXT_FIELDS = ("operation", "actor_id", "adjustment_id", "material")

_context: ContextVar[dict[str, str] | None] = ContextVar("pricing_log_context", default=None)


def _context_values(fields: dict[str, Any]) -> dict[str, str]:
    unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
    if unknown:
        raise ValueError(f"Unknown log context fields: {', '.join(unknown)}")
    return {name: str(value) for name, value in fields.items() if value is not None}


class LogContext:
    """
    Request-scoped fields merged into every record.

    Backed by a ContextVar, so each thread and asyncio task sees its own
    values.  Only the names in CONTEXT_FIELDS are accepted.
    """

    @classmethod
    def current(cls) -> dict[str, str]:
        return dict(_context.get() or {})

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Add or replace fields for the rest of the current context."""
        _context.set({**cls.current(), **_context_values(fields)})

    @classmethod
    def clear(cls) -> None:
        _context.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Add fields for the duration of a ``with`` block; None values are skipped."""
        token = _context.set({**cls.current(), **_context_values(fields)})
        try:
            yield
        finally:
            _context.reset(token)


# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.current())

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = self.error_fields(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)

    @staticmethod
    def error_fields(exc: BaseException) -> dict[str, Any]:
        error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
        if isinstance(exc, PricingKernelError):
            error["code"] = exc.code
            error["status"] = exc.status
            error["retriable"] = exc.retriable
            error["details"] = exc.details()
        return error


_ROOT_LOGGER = "pricing_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger under the pricing_kernel hierarchy, e.g. ``services.parts_catalog``."""
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


_installed: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install one JSON handler on the ``pricing_kernel`` logger.

    Idempotent: once a handler is installed, later calls return it and
    change nothing.  ``level`` accepts a number or a name ("DEBUG").
    """
    global _installed
    with _lock:
        if _installed is not None:
            return _installed

        root = logging.getLogger(_ROOT_LOGGER)
        root.setLevel(level)
        root.propagate = False

        installed = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        installed.setFormatter(StructuredFormatter())
        root.addHandler(installed)
        _installed = installed
        return installed


def reset_logging() -> None:
    """Remove every handler from the pricing_kernel logger. FOR TESTING ONLY."""
    global _installed
    with _lock:
        _installed = None
        root = logging.getLogger(_ROOT_LOGGER)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
