"""Console logging for orgauthz.

Each record becomes one line: UTC timestamp, level, logger name, the bound
correlation id, the message, and then whatever the caller passed through
``extra`` as ``key=value`` pairs. Authorization events use dotted messages
(``rbac.decide.deny``, ``rbac.assignment.created``) so they can be grepped
without a log shipper.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from orgauthz.settings import Settings

__all__ = [
    "ConsoleLogFormatter",
    "bind_request_context",
    "clear_request_context",
    "log_context",
    "setup_logging",
]

_correlation_id: ContextVar[str | None] = ContextVar("orgauthz_correlation_id", default=None)

# Whatever a bare LogRecord carries is bookkeeping; anything else arrived via ``extra``.
_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "correlation_id",
    "color_message",
}

_HANDLER_NAME = "orgauthz.console"
_LIBRARY_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "alembic", "sqlalchemy")


class ConsoleLogFormatter(logging.Formatter):
    """``2026-10-18T02:57:00.302Z INFO orgauthz.request [cid=ab12] request.complete status_code=200``"""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-5s %(name)s [cid=%(correlation_id)s] %(message)s")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        stamp = datetime.fromtimestamp(record.created, tz=UTC)
        return f"{stamp.strftime(datefmt or '%Y-%m-%dT%H:%M:%S')}.{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:
        record.correlation_id = getattr(record, "correlation_id", None) or _correlation_id.get() or "-"
        pairs = [f"{key}={_render(value)}" for key, value in _extra_fields(record)]
        return " ".join([super().format(record), *pairs])


def _extra_fields(record: logging.LogRecord) -> Iterator[tuple[str, Any]]:
    for key, value in record.__dict__.items():
        if key in _RECORD_FIELDS or key.startswith("_"):
            continue
        yield key, value


def _render(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, (set, frozenset, list, tuple)):
        # Role sets are unordered; sort so identical decisions log identically.
        return ",".join(sorted(str(item) for item in value)) or "[]"
    return str(value)


def setup_logging(settings: Settings) -> None:
    """Send every logger through one console handler at ``settings.logging_level``.

    The API factory and each CLI invocation call this, so repeat calls only
    adjust the level. Handlers installed by other tools (pytest's capture
    handlers, for instance) are left alone.
    """

    root = logging.getLogger()
    root.setLevel(settings.logging_level)
    if any(handler.get_name() == _HANDLER_NAME for handler in root.handlers):
        return

    for handler in list(root.handlers):
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)

    console = logging.StreamHandler()
    console.set_name(_HANDLER_NAME)
    console.setFormatter(ConsoleLogFormatter())
    root.addHandler(console)

    for name in _LIBRARY_LOGGERS:
        library_logger = logging.getLogger(name)
        library_logger.handlers.clear()
        library_logger.propagate = True


def bind_request_context(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


def clear_request_context() -> None:
    _correlation_id.set(None)


def log_context(
    *,
    user_id: UUID | str | None = None,
    organization_id: UUID | str | None = None,
    role: str | None = None,
    operation_id: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build an ``extra`` mapping for authorization logs.

    The named identifiers are dropped when missing and stringified otherwise;
    free-form ``extra`` keys pass through untouched.
    """

    named = {
        "user_id": user_id,
        "organization_id": organization_id,
        "role": role,
        "operation_id": operation_id,
    }
    context: dict[str, Any] = {
        key: str(value) if isinstance(value, UUID) else value
        for key, value in named.items()
        if value is not None
    }
    context.update(extra)
    return context
