"""
Structured JSON logging for the stock kernel.

Every record is one JSON line whose message is a snake_case event name
(``stock_movement_appended``, ``job_deduction_line_failed``...).  Services
bind their LedgerContext plus the job or purchase order being worked on, so
each line of a batch carries the ids needed to trace it back to the batch.

Kernel exceptions logged with ``exc_info`` are flattened into ``exc_*``
fields.  A PartialFailureError is reported as line counts plus
``exc_failures`` (line id and code of each failed line) rather than the
whole BatchResult.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "LedgerLogFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import dataclasses
import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

from stock_kernel.exceptions import PartialFailureError, StockKernelError

_LOGGER_PREFIX = "stock_kernel"
_HANDLER_MARK = "_stock_kernel_handler"

CONTEXT_FIELDS = ("tenant_id", "actor_id", "correlation_id", "job_id", "purchase_order_id")

_bound: ContextVar[dict[str, str] | None] = ContextVar("stock_kernel_log_context", default=None)


class LogContext:
    """Operation-scoped ids stamped on every kernel log line."""

    @staticmethod
    def current() -> dict[str, str]:
        return dict(_bound.get() or {})

    @staticmethod
    def clear() -> None:
        _bound.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Layer ``fields`` over the current context until the block exits.

        None values are skipped so optional ids can be passed straight
        through; anything else is stored as ``str``.  Names outside
        CONTEXT_FIELDS raise TypeError.
        """
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")

        merged = LogContext.current()
        merged.update({key: str(value) for key, value in fields.items() if value is not None})
        token = _bound.set(merged)
        try:
            yield
        finally:
            _bound.reset(token)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if not isinstance(exc, StockKernelError):
        return fields

    fields["exc_code"] = exc.code
    if isinstance(exc, PartialFailureError):
        result = exc.result
        fields.update(
            exc_operation=result.operation,
            exc_reference_id=result.reference_id,
            exc_succeeded_count=len(result.succeeded),
            exc_skipped_count=len(result.skipped),
            exc_failed_count=len(result.failed),
            exc_failures=[{"line_id": f.line_id, "code": f.code} for f in result.failed],
        )
        return fields

    for key, value in vars(exc).items():
        if not key.startswith("_"):
            fields[f"exc_{key}"] = value
    return fields


class LedgerLogFormatter(logging.Formatter):
    """Render a record as one JSON object: envelope, bound ids, extras, exception."""

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
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the stock_kernel namespace, e.g. ``services.stock_ledger``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_lock = threading.Lock()


def _kernel_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if getattr(h, _HANDLER_MARK, False)]


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Attach the JSON handler to the ``stock_kernel`` logger.

    Idempotent: if a kernel handler is already attached it is returned as
    is and ``level`` is left alone.  Handlers added by other code (test
    capture, application handlers) are never touched.
    """
    root_logger = logging.getLogger(_LOGGER_PREFIX)
    with _lock:
        existing = _kernel_handlers(root_logger)
        if existing:
            return existing[0]

        installed = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        installed.setFormatter(LedgerLogFormatter())
        setattr(installed, _HANDLER_MARK, True)
        root_logger.addHandler(installed)
        root_logger.setLevel(level)
        root_logger.propagate = False
    return installed


def reset_logging() -> None:
    """Detach kernel handlers and restore defaults. FOR TESTING ONLY."""
    root_logger = logging.getLogger(_LOGGER_PREFIX)
    with _lock:
        for h in _kernel_handlers(root_logger):
            root_logger.removeHandler(h)
        root_logger.setLevel(logging.WARNING)
        root_logger.propagate = True
