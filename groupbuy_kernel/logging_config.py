"""
Structured JSON logging for the group-buy kernel.

Every record under the ``groupbuy_kernel`` logger tree is written as one
JSON object per line.  Four request-scoped fields ride along on every
record of an operation without being passed around explicitly:

    correlation_id  one id per ledger call (or the caller's own)
    operation       ledger method name, e.g. ``register_order``
    actor_id        user performing the operation
    group_buy_id    round being acted on, when known

They live in ContextVars, so concurrent threads and tasks never see each
other's values.
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
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = ("correlation_id", "operation", "actor_id", "group_buy_id")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"groupbuy_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - set(_CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")


class LogContext:
    """Request-scoped log fields, safe across threads and asyncio tasks."""

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set context fields.  ``None`` values leave the field unchanged."""
        _check_fields(fields)
        for name, value in fields.items():
            if value is not None:
                _context_vars[name].set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        """Return the fields that currently have a value."""
        return {
            name: value
            for name, var in _context_vars.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        _check_fields(fields)
        tokens = [
            (_context_vars[name], _context_vars[name].set(value))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_RESERVED_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # GroupBuyKernelError subclasses carry their context as attributes
    for key, value in vars(exc).items():
        if not key.startswith("_") and key != "code":
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "groupbuy_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the groupbuy_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the groupbuy_kernel logger tree.

    Only the first call has an effect; later calls (for example a second
    GroupBuyLedger.from_settings in the same process) leave the existing
    handler and level alone.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root_logger.addHandler(target)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.handlers.clear()
    root_logger.setLevel(logging.WARNING)
