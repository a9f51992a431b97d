"""
Structured logging for the stock ledger.

Every record leaves the ``stock_kernel`` logger tree as one JSON object per
line: the fixed keys ``ts``, ``level``, ``logger`` and ``message``, then the
ambient stock context (actor, location, document, correlation and trace
ids), then whatever the caller passed through ``extra``.

Services bind the ambient context once per operation::

    with LogContext.bind(actor_id=actor_id, location_id=location_id):
        logger.info("sale_recorded", extra={"document_id": trx.sequence_id})

Ledger exceptions logged with ``exc_info`` contribute their machine code and
public attributes as ``exc_*`` keys, so a failed stock-out can be searched
by ``exc_code`` and ``exc_available`` without parsing the traceback.
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
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

ROOT_LOGGER = "stock_kernel"


class LogContext:
    """Ambient fields stamped onto every record logged in the current context."""

    FIELDS = ("correlation_id", "actor_id", "document_id", "location_id", "trace_id")

    _current: ContextVar[dict[str, str]] = ContextVar("stock_log_context", default={})

    @classmethod
    def _merged(cls, values: dict[str, Any]) -> dict[str, str]:
        merged = dict(cls._current.get())
        for name, value in values.items():
            if name in cls.FIELDS and value is not None:
                merged[name] = str(value)
        return merged

    @classmethod
    def set(cls, **values: Any) -> None:
        """Update the named fields; None leaves a field untouched."""
        cls._current.set(cls._merged(values))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._current.get())

    @classmethod
    def clear(cls) -> None:
        cls._current.set({})

    @classmethod
    def bind(cls, **values: Any) -> "_Binding":
        """Scope the given fields to a ``with`` block, restoring on exit."""
        return _Binding(values)


class _Binding:

    def __init__(self, values: dict[str, Any]):
        self._values = values
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = LogContext._current.set(LogContext._merged(self._values))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        LogContext._current.reset(self._token)


# Attributes every LogRecord carries; anything else on a record came from ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    fields.update(
        (f"exc_{name}", value)
        for name, value in vars(exc).items()
        if not name.startswith("_") and name not in ("args", "code")
    )
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON line per record."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                line.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            line.update(_exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, default=_jsonable)


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` inside the stock ledger tree, e.g. ``services.transfer``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_setup_lock = threading.Lock()
_installed = False


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the stock ledger logger tree.

    Only the first call takes effect until ``reset_logging``. Records do not
    propagate to the root logger, so host applications keep their own output.
    """
    global _installed
    with _setup_lock:
        if _installed:
            return
        _installed = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    tree = logging.getLogger(ROOT_LOGGER)
    tree.setLevel(level)
    tree.propagate = False
    tree.addHandler(handler)


def reset_logging() -> None:
    """Detach handlers so the next ``configure_logging`` applies. Test helper."""
    global _installed
    with _setup_lock:
        _installed = False
    tree = logging.getLogger(ROOT_LOGGER)
    tree.handlers.clear()
    tree.setLevel(logging.WARNING)
