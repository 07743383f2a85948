"""In-memory doubles for the assignment store."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from uuid import UUID, uuid4

from orgauthz.core.rbac.errors import DuplicateAssignmentError, ResolutionError
from orgauthz.features.rbac.repository import RoleAssignmentRecord


class FakeAssignmentStore:
    def __init__(self) -> None:
        self.records: list[RoleAssignmentRecord] = []
        self.reads = 0

    def add(self, user_id: UUID, role_name: str, organization_id: UUID | None = None) -> None:
        self.records.append(
            RoleAssignmentRecord(
                id=uuid4(),
                user_id=user_id,
                role_name=role_name,
                organization_id=organization_id,
            )
        )

    async def find_assignments(
        self,
        user_id: UUID,
        organization_id: UUID | None = None,
    ) -> Sequence[RoleAssignmentRecord]:
        self.reads += 1
        return [
            record
            for record in self.records
            if record.user_id == user_id
            and (record.organization_id is None or record.organization_id == organization_id)
        ]

    async def get_assignment(self, user_id, role_name, organization_id):
        for record in self.records:
            if (record.user_id, record.role_name, record.organization_id) == (
                user_id,
                role_name,
                organization_id,
            ):
                return record
        return None

    async def create_assignment(self, user_id, role_name, organization_id, assigned_by=None):
        if await self.get_assignment(user_id, role_name, organization_id) is not None:
            raise DuplicateAssignmentError(
                user_id=user_id, role=role_name, organization_id=organization_id
            )
        self.add(user_id, role_name, organization_id)
        return self.records[-1]

    async def delete_assignment(self, user_id, role_name, organization_id):
        record = await self.get_assignment(user_id, role_name, organization_id)
        if record is None:
            return False
        self.records.remove(record)
        return True


class FailingAssignmentStore(FakeAssignmentStore):
    async def find_assignments(self, user_id, organization_id=None):
        raise ResolutionError("storage unavailable")


class CancelledAssignmentStore(FakeAssignmentStore):
    async def find_assignments(self, user_id, organization_id=None):
        raise asyncio.CancelledError()
