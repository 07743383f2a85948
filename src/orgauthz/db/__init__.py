"""Persistence layer: declarative base, engine/session lifecycle, policy SQL."""

from .base import CONSTRAINT_NAMES, AuditedMixin, Base, IdentifiedMixin, metadata, utc_now
from .database import (
    Database,
    DatabaseConfig,
    build_async_url,
    build_sync_url,
    db,
    get_db_session,
    session_scope,
)
from .types import UTCDateTime, UUIDType

__all__ = [
    "AuditedMixin",
    "Base",
    "CONSTRAINT_NAMES",
    "Database",
    "DatabaseConfig",
    "IdentifiedMixin",
    "UTCDateTime",
    "UUIDType",
    "build_async_url",
    "build_sync_url",
    "db",
    "get_db_session",
    "metadata",
    "session_scope",
    "utc_now",
]
