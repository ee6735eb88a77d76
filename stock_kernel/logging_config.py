"""
Structured JSON logging for the stock kernel.

Every record is written as one JSON object per line.  Request-scoped
fields (correlation, actor, period, location) are carried in a context
variable and merged into each record; ``extra={...}`` fields are emitted
as top-level keys.

    configure_logging(level=logging.INFO)
    logger = get_logger("services.delivery")
    with LogContext.bind(location_id=str(location_id)):
        logger.info("delivery_posted", extra={"delivery_no": "DEL-2025-001"})
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

ROOT_LOGGER_NAME = "stock_kernel"

_HANDLER_MARKER = "_stock_kernel_handler"


class LogContext:
    """Request-scoped log fields; safe across threads and asyncio tasks."""

    FIELDS: tuple[str, ...] = ("correlation_id", "actor_id", "period_id", "location_id")

    _values: ContextVar[Mapping[str, str]] = ContextVar("stock_log_context", default={})

    @classmethod
    def _merged(cls, fields: Mapping[str, Any]) -> dict[str, str]:
        unknown = set(fields) - set(cls.FIELDS)
        if unknown:
            raise KeyError(f"unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(cls._values.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set fields for the rest of the current context.  None leaves a field as is."""
        cls._values.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._values.get())

    @classmethod
    def clear(cls) -> None:
        cls._values.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields inside a ``with`` block; the previous values come back on exit."""
        token = cls._values.set(cls._merged(fields))
        try:
            yield cls
        finally:
            cls._values.reset(token)


# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.makeLogRecord({})).keys()
) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # Decimal, UUID and anything else without a JSON form
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {"exc_type": type(exc).__name__}
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_"):
            fields[f"exc_{name}"] = value
    fields["exc_message"] = str(exc)
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON line per record: envelope, context fields, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(LogContext.get_all())
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in entry
        )

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``stock_kernel`` namespace."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def _installed_handler(root: logging.Logger) -> logging.Handler | None:
    for handler in root.handlers:
        if getattr(handler, _HANDLER_MARKER, False):
            return handler
    return None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``stock_kernel`` logger.

    Idempotent: a second call only adjusts the level.  Records do not
    propagate to the root logger.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.propagate = False
    if _installed_handler(root) is not None:
        return

    installed = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    installed.setFormatter(StructuredFormatter())
    setattr(installed, _HANDLER_MARKER, True)
    root.addHandler(installed)


def reset_logging() -> None:
    """Remove every handler from the ``stock_kernel`` logger.  Tests only."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)
    root.propagate = True
