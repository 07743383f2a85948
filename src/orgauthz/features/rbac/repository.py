"""Role assignment storage."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import Select, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orgauthz.common.logging import log_context
from orgauthz.core.rbac.errors import (
    AssignmentWriteError,
    DuplicateAssignmentError,
    ResolutionError,
    UnknownRoleError,
)
from orgauthz.core.rbac.types import RoleScope
from orgauthz.models import Role, RoleAssignment

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (SQLAlchemyError, TimeoutError, OSError)


@dataclass(frozen=True)
class RoleAssignmentRecord:
    """Detached view of one assignment row."""

    id: UUID
    user_id: UUID
    role_name: str
    organization_id: UUID | None
    assigned_by: UUID | None = None
    created_at: datetime | None = None

    @property
    def scope(self) -> RoleScope:
        return RoleScope.GLOBAL if self.organization_id is None else RoleScope.ORGANIZATION

    @classmethod
    def from_model(cls, assignment: RoleAssignment) -> RoleAssignmentRecord:
        return cls(
            id=assignment.id,
            user_id=assignment.user_id,
            role_name=assignment.role.name,
            organization_id=assignment.organization_id,
            assigned_by=assignment.assigned_by,
            created_at=assignment.created_at,
        )


@runtime_checkable
class RoleAssignmentStore(Protocol):
    """Persistence contract for role assignments.

    ``find_assignments`` returns global rows plus, only when an organization is
    given, that organization's rows. Read failures raise ``ResolutionError``.
    """

    async def find_assignments(
        self,
        user_id: UUID,
        organization_id: UUID | None = None,
    ) -> Sequence[RoleAssignmentRecord]: ...

    async def get_assignment(
        self,
        user_id: UUID,
        role_name: str,
        organization_id: UUID | None,
    ) -> RoleAssignmentRecord | None: ...

    async def create_assignment(
        self,
        user_id: UUID,
        role_name: str,
        organization_id: UUID | None,
        assigned_by: UUID | None = None,
    ) -> RoleAssignmentRecord: ...

    async def delete_assignment(
        self,
        user_id: UUID,
        role_name: str,
        organization_id: UUID | None,
    ) -> bool: ...


def _organization_filter(organization_id: UUID | None):
    if organization_id is None:
        return RoleAssignment.organization_id.is_(None)
    return RoleAssignment.organization_id == organization_id


class SqlRoleAssignmentStore:
    """SQLAlchemy-backed :class:`RoleAssignmentStore`."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    def _base_query(self) -> Select[tuple[RoleAssignment]]:
        return select(RoleAssignment).join(Role, Role.id == RoleAssignment.role_id)

    async def find_assignments(
        self,
        user_id: UUID,
        organization_id: UUID | None = None,
    ) -> list[RoleAssignmentRecord]:
        stmt = self._base_query().where(RoleAssignment.user_id == user_id)
        if organization_id is None:
            stmt = stmt.where(RoleAssignment.organization_id.is_(None))
        else:
            stmt = stmt.where(
                or_(
                    RoleAssignment.organization_id.is_(None),
                    RoleAssignment.organization_id == organization_id,
                )
            )
        stmt = stmt.order_by(Role.hierarchy_level)

        try:
            result = await self._session.execute(stmt)
            rows = result.unique().scalars().all()
        except STORAGE_ERRORS as exc:
            logger.warning(
                "rbac.store.read_failed",
                extra=log_context(user_id=user_id, organization_id=organization_id, error=str(exc)),
            )
            raise ResolutionError("Unable to read role assignments") from exc
        return [RoleAssignmentRecord.from_model(row) for row in rows]

    async def _get_model(
        self,
        user_id: UUID,
        role_name: str,
        organization_id: UUID | None,
    ) -> RoleAssignment | None:
        stmt = (
            self._base_query()
            .where(
                RoleAssignment.user_id == user_id,
                Role.name == role_name,
                _organization_filter(organization_id),
            )
            .limit(1)
        )
        try:
            result = await self._session.execute(stmt)
        except STORAGE_ERRORS as exc:
            raise ResolutionError("Unable to read role assignments") from exc
        return result.unique().scalar_one_or_none()

    async def get_assignment(
        self,
        user_id: UUID,
        role_name: str,
        organization_id: UUID | None,
    ) -> RoleAssignmentRecord | None:
        assignment = await self._get_model(user_id, role_name, organization_id)
        return RoleAssignmentRecord.from_model(assignment) if assignment else None

    async def _role_by_name(self, role_name: str) -> Role:
        result = await self._session.execute(select(Role).where(Role.name == role_name).limit(1))
        role = result.scalar_one_or_none()
        if role is None:
            raise UnknownRoleError(role_name)
        return role

    async def create_assignment(
        self,
        user_id: UUID,
        role_name: str,
        organization_id: UUID | None,
        assigned_by: UUID | None = None,
    ) -> RoleAssignmentRecord:
        role = await self._role_by_name(role_name)
        assignment = RoleAssignment(
            user_id=user_id,
            role_id=role.id,
            organization_id=organization_id,
            scope=RoleScope.GLOBAL if organization_id is None else RoleScope.ORGANIZATION,
            assigned_by=assigned_by,
        )
        assignment.role = role

        async with self._session.begin_nested():
            self._session.add(assignment)
            try:
                await self._session.flush([assignment])
            except IntegrityError as exc:
                logger.debug(
                    "rbac.assign.conflict",
                    extra=log_context(
                        user_id=user_id,
                        organization_id=organization_id,
                        role=role_name,
                    ),
                )
                raise DuplicateAssignmentError(
                    user_id=user_id,
                    role=role_name,
                    organization_id=organization_id,
                ) from exc
            except SQLAlchemyError as exc:
                logger.warning(
                    "rbac.assign.write_failed",
                    extra=log_context(
                        user_id=user_id,
                        organization_id=organization_id,
                        role=role_name,
                        error=str(exc),
                    ),
                )
                raise AssignmentWriteError("Unable to store the role assignment") from exc
        return RoleAssignmentRecord.from_model(assignment)

    async def delete_assignment(
        self,
        user_id: UUID,
        role_name: str,
        organization_id: UUID | None,
    ) -> bool:
        assignment = await self._get_model(user_id, role_name, organization_id)
        if assignment is None:
            return False
        await self._session.delete(assignment)
        await self._session.flush()
        return True

    async def list_assignments(
        self,
        *,
        organization_id: UUID | None = None,
        user_id: UUID | None = None,
    ) -> list[RoleAssignmentRecord]:
        """Administrative listing; unlike ``find_assignments`` it filters exactly."""
        stmt = self._base_query()
        if user_id is not None:
            stmt = stmt.where(RoleAssignment.user_id == user_id)
        stmt = stmt.where(_organization_filter(organization_id))
        stmt = stmt.order_by(Role.hierarchy_level, RoleAssignment.created_at)
        result = await self._session.execute(stmt)
        return [RoleAssignmentRecord.from_model(row) for row in result.unique().scalars().all()]


__all__ = [
    "STORAGE_ERRORS",
    "RoleAssignmentRecord",
    "RoleAssignmentStore",
    "SqlRoleAssignmentStore",
]
