"""Role hierarchy: the single source of "more privileged than" semantics.

Lower ``hierarchy_level`` means more privileged. The storage-level policy
functions in :mod:`orgauthz.db.policy_sql` encode the same comparisons and
must stay in lockstep with this module.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

from .errors import RoleCatalogError, UnknownRoleError
from .types import RoleDefinition, RoleScope


class HierarchyModel:
    """Immutable role table with pure comparison predicates."""

    __slots__ = ("_roles", "_super_role")

    def __init__(self, definitions: Iterable[RoleDefinition]) -> None:
        roles: dict[str, RoleDefinition] = {}
        levels: dict[int, str] = {}
        for definition in definitions:
            if definition.name in roles:
                raise RoleCatalogError(f"Duplicate role name '{definition.name}'")
            if definition.hierarchy_level in levels:
                raise RoleCatalogError(
                    f"Roles '{levels[definition.hierarchy_level]}' and '{definition.name}' "
                    f"share hierarchy level {definition.hierarchy_level}"
                )
            roles[definition.name] = definition
            levels[definition.hierarchy_level] = definition.name
        if not roles:
            raise RoleCatalogError("A hierarchy needs at least one role")

        self._roles: Mapping[str, RoleDefinition] = roles
        top = roles[levels[min(levels)]]
        # Only a GLOBAL role at the very top bypasses organization context.
        self._super_role: str | None = top.name if top.scope is RoleScope.GLOBAL else None

    @classmethod
    def default(cls) -> HierarchyModel:
        from .registry import SYSTEM_ROLES

        return cls(SYSTEM_ROLES)

    # ------------- lookups -----------------------

    def __contains__(self, role: object) -> bool:
        return role in self._roles

    def __iter__(self) -> Iterator[RoleDefinition]:
        return iter(sorted(self._roles.values(), key=lambda item: item.hierarchy_level))

    def __len__(self) -> int:
        return len(self._roles)

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self._roles)

    @property
    def super_role(self) -> str | None:
        return self._super_role

    def definition(self, role: str) -> RoleDefinition:
        try:
            return self._roles[role]
        except KeyError:
            raise UnknownRoleError(role) from None

    def level_of(self, role: str) -> int:
        return self.definition(role).hierarchy_level

    def is_global(self, role: str) -> bool:
        return self.definition(role).scope is RoleScope.GLOBAL

    def is_super_role(self, role: str) -> bool:
        self.definition(role)
        return role == self._super_role

    # ------------- comparisons -------------------

    def satisfies(self, effective_role: str, required_role: str) -> bool:
        """True when ``effective_role`` is as privileged as ``required_role`` or more."""
        return self.level_of(effective_role) <= self.level_of(required_role)

    def best_level(self, roles: Iterable[str]) -> int | None:
        """Return the most privileged (minimum) level among ``roles``."""
        levels = [self.level_of(role) for role in roles]
        return min(levels) if levels else None

    def roles_at_or_above(self, role: str) -> tuple[str, ...]:
        """Roles that satisfy ``role``, most privileged first."""
        ceiling = self.level_of(role)
        return tuple(item.name for item in self if item.hierarchy_level <= ceiling)

    def validate_roles(self, roles: Iterable[str]) -> frozenset[str]:
        """Return ``roles`` as a frozenset, raising for any unregistered name."""
        normalized = frozenset(roles)
        for role in normalized:
            self.definition(role)
        return normalized

    def __repr__(self) -> str:
        ordered = ", ".join(f"{item.name}:{item.hierarchy_level}" for item in self)
        return f"HierarchyModel({ordered})"


__all__ = ["HierarchyModel"]
