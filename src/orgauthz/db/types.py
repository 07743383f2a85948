"""Column types that behave the same on SQLite and PostgreSQL.

User, organization and assignment ids are UUIDs everywhere in the RBAC
tables; SQLite keeps them as 36-character text so the policy SQL can compare
them against bound string parameters.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import Dialect
from sqlalchemy.types import CHAR, DateTime, TypeDecorator

__all__ = ["UTCDateTime", "UUIDType"]


def _as_uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class UUIDType(TypeDecorator):
    """``UUID`` on PostgreSQL, ``CHAR(36)`` elsewhere; always ``uuid.UUID`` in Python."""

    impl = CHAR(36)
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value: Any, dialect: Dialect):
        if value is None:
            return None
        parsed = _as_uuid(value)
        return parsed if dialect.name == "postgresql" else str(parsed)

    def process_result_value(self, value: Any, dialect: Dialect):
        return None if value is None else _as_uuid(value)

    @property
    def python_type(self) -> type[uuid.UUID]:
        return uuid.UUID


def _to_utc(value: Any) -> Any:
    if not isinstance(value, datetime):
        return value
    # SQLite drops the offset, so naive values read back are already UTC.
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


class UTCDateTime(TypeDecorator):
    """Aware datetimes in, aware UTC datetimes out."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect):
        return _to_utc(value)

    def process_result_value(self, value: Any, dialect: Dialect):
        return _to_utc(value)
