"""Declarative base for the RBAC tables.

Every constraint gets a deterministic name (``role_assignments_pkey``,
``roles_name_key``) so the hand-written migrations and the policy functions
can refer to them on both SQLite and PostgreSQL.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .types import UTCDateTime, UUIDType

__all__ = ["CONSTRAINT_NAMES", "AuditedMixin", "Base", "IdentifiedMixin", "metadata", "utc_now"]

CONSTRAINT_NAMES: dict[str, str] = {
    "pk": "%(table_name)s_pkey",
    "fk": "%(table_name)s_%(column_0_name)s_fkey",
    "uq": "%(table_name)s_%(column_0_name)s_key",
    "ix": "%(table_name)s_%(column_0_name)s_idx",
    "ck": "%(table_name)s_%(constraint_name)s_check",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=CONSTRAINT_NAMES)
    type_annotation_map = {uuid.UUID: UUIDType(), datetime: UTCDateTime()}


metadata = Base.metadata


def utc_now() -> datetime:
    return datetime.now(UTC)


class IdentifiedMixin:
    """Surrogate key generated in Python so rows have ids before flush."""

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


class AuditedMixin:
    # Timestamps are set by the ORM; neither backend needs triggers.
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)
