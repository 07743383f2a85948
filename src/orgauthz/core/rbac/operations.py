"""Operation registry: which roles each protected operation requires.

Requirements are plain data validated against the hierarchy once, at build
time, so a typo in a role name fails startup instead of denying every request.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

from .errors import UnknownOperationError
from .hierarchy import HierarchyModel


class OperationRegistry:
    """Map operation identifiers to the role sets that may perform them."""

    def __init__(self, requirements: Mapping[str, Iterable[str]] | None = None) -> None:
        self._requirements: dict[str, frozenset[str]] = {}
        for operation_id, roles in (requirements or {}).items():
            self.register(operation_id, roles)

    def register(self, operation_id: str, roles: Iterable[str]) -> None:
        key = operation_id.strip()
        if not key:
            raise ValueError("Operation identifier cannot be blank")
        self._requirements[key] = frozenset(roles)

    def required_roles(self, operation_id: str) -> frozenset[str]:
        try:
            return self._requirements[operation_id]
        except KeyError:
            raise UnknownOperationError(operation_id) from None

    def validate(self, hierarchy: HierarchyModel) -> OperationRegistry:
        """Raise :class:`UnknownRoleError` for any role the hierarchy lacks."""
        for roles in self._requirements.values():
            hierarchy.validate_roles(roles)
        return self

    def __contains__(self, operation_id: object) -> bool:
        return operation_id in self._requirements

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._requirements))

    def __len__(self) -> int:
        return len(self._requirements)


_MEMBERS = ("colaborador", "gestor", "admin")
_MANAGERS = ("gestor", "admin")
_ADMINS = ("admin",)

DEFAULT_OPERATIONS: dict[str, tuple[str, ...]] = {
    # Emotional check-ins
    "emociograma.submit": _MEMBERS,
    "emociograma.list_own": _MEMBERS,
    "emociograma.read_submission": _MEMBERS,
    "emociograma.export": _MANAGERS,
    # Alerts
    "alerts.dashboard": _MANAGERS,
    "alerts.list": _MANAGERS,
    "alerts.read": _MANAGERS,
    "alerts.resolve": _MANAGERS,
    # Categories
    "categories.create": _ADMINS,
    "categories.update": _ADMINS,
    "categories.delete": _ADMINS,
    # Data subject rights (LGPD)
    "users.data_export": _MEMBERS,
    "users.data_anonymize": _MEMBERS,
    "users.data_deletion": _MEMBERS,
    "users.audit_trail": _MEMBERS,
    # Administration
    "roles.assign": _ADMINS,
    "roles.revoke": _ADMINS,
    "organizations.create": ("super_admin",),
}


def default_registry(hierarchy: HierarchyModel | None = None) -> OperationRegistry:
    registry = OperationRegistry(DEFAULT_OPERATIONS)
    return registry.validate(hierarchy or HierarchyModel.default())


__all__ = ["DEFAULT_OPERATIONS", "OperationRegistry", "default_registry"]
