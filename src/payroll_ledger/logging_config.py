"""Logging setup for the payroll ledger.

Modules log through ``logging.getLogger(__name__)``; this module only decides
how the ``payroll_ledger`` logger hierarchy is rendered.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

_LOGGER_NAME = "payroll_ledger"

_actor: ContextVar[str | None] = ContextVar("payroll_ledger_actor", default=None)
_payment_id: ContextVar[str | None] = ContextVar("payroll_ledger_payment_id", default=None)

_STDLIB_KEYS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class LogContext:
    """Async-safe holder for request-scoped log fields."""

    @staticmethod
    def get_all() -> dict[str, str]:
        ctx: dict[str, str] = {}
        if (actor := _actor.get()) is not None:
            ctx["actor"] = actor
        if (payment_id := _payment_id.get()) is not None:
            ctx["payment_id"] = payment_id
        return ctx

    @staticmethod
    @contextmanager
    def bind(
        actor: str | None = None, payment_id: UUID | str | None = None
    ) -> Iterator[None]:
        """Set context fields for the duration of the block."""
        tokens = []
        if actor is not None:
            tokens.append((_actor, _actor.set(actor)))
        if payment_id is not None:
            tokens.append((_payment_id, _payment_id.set(str(payment_id))))
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with context and ``extra`` fields merged."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
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
            if hasattr(exc, "to_dict"):
                payload["error"] = exc.to_dict()
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        ctx = LogContext.get_all()
        record.ctx = " ".join(f"{k}={v}" for k, v in ctx.items())
        return True


TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s %(ctx)s"


def configure_logging(
    level: str | int = "INFO",
    fmt: str = "text",
    stream: Any = None,
) -> logging.Logger:
    """Configure the payroll_ledger logger. Safe to call more than once."""
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    elif fmt == "text":
        handler.addFilter(_ContextFilter())
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        raise ValueError(f"Unknown log format {fmt!r}; expected 'text' or 'json'")
    logger.addHandler(handler)
    return logger
