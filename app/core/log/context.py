"""Request-scoped identifiers appended to every log line."""
from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import Iterator

_fields: contextvars.ContextVar[dict[str, object]] = contextvars.ContextVar(
    "log_context", default={}
)


class LogContext:
    """Carry user, realm and period identifiers into nested calls' log lines."""

    @contextmanager
    def scope(self, **values: object) -> Iterator[None]:
        """Bind ``values`` (``None`` values are skipped) for the block, then restore."""

        bound = {k: v for k, v in values.items() if v is not None}
        token = _fields.set({**_fields.get(), **bound})
        try:
            yield
        finally:
            _fields.reset(token)


class ContextFilter(logging.Filter):
    """Render the bound identifiers into ``record.context``.

    A record that already carries a context keeps it, so records rendered on
    the caller's thread survive the hop to the queue listener thread.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "context"):
            fields = _fields.get()
            record.context = "".join(f"{k}={v} " for k, v in fields.items())
        return True


log_context = LogContext()
