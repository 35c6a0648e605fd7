"""
Role-based capability map.

Roles are held in an explicit mapping of role name to the set of principals
holding it. Every entry point checks its capability through
``RoleRegistry.require_role`` instead of inheriting mutable role state.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from ..core.errors import InputValidationError, unauthorized_account
from .type_aliases import ZERO_ADDRESS, Address, RoleName

DEFAULT_ADMIN_ROLE: RoleName = "DEFAULT_ADMIN_ROLE"
PROPOSER_ROLE: RoleName = "PROPOSER_ROLE"
EXECUTOR_ROLE: RoleName = "EXECUTOR_ROLE"
CANCELLER_ROLE: RoleName = "CANCELLER_ROLE"
GOVERNOR_ROLE: RoleName = "GOVERNOR_ROLE"
AI_CONTROLLER_ROLE: RoleName = "AI_CONTROLLER_ROLE"

# Granting a role to the zero address opens it to every caller.
OPEN_ROLE_HOLDER: Address = ZERO_ADDRESS


@dataclass(frozen=True, slots=True)
class RoleRegistry:
    """Immutable role -> principals capability map."""

    members: Mapping[RoleName, frozenset[Address]] = field(default_factory=dict)

    @classmethod
    def with_grants(
        cls, grants: Iterable[tuple[RoleName, Address]]
    ) -> RoleRegistry:
        """Build a registry from (role, account) pairs."""
        members: dict[RoleName, set[Address]] = {}
        for role, account in grants:
            members.setdefault(role, set()).add(account)
        return cls(members={role: frozenset(accts) for role, accts in members.items()})

    def has_role(self, role: RoleName, account: Address) -> bool:
        holders = self.members.get(role, frozenset())
        return account in holders or OPEN_ROLE_HOLDER in holders

    def require_role(self, role: RoleName, account: Address) -> None:
        if not self.has_role(role, account):
            raise unauthorized_account(account, role)

    def role_members(self, role: RoleName) -> frozenset[Address]:
        return self.members.get(role, frozenset())

    def grant(self, role: RoleName, account: Address) -> RoleRegistry:
        """Return a registry with ``account`` added to ``role``."""
        if not account:
            raise InputValidationError("Account cannot be empty")
        new_members = dict(self.members)
        new_members[role] = self.role_members(role) | {account}
        return RoleRegistry(members=new_members)

    def revoke(self, role: RoleName, account: Address) -> RoleRegistry:
        """Return a registry with ``account`` removed from ``role``."""
        new_members = dict(self.members)
        new_members[role] = self.role_members(role) - {account}
        return RoleRegistry(members=new_members)

    def grant_role(
        self, caller: Address, role: RoleName, account: Address
    ) -> RoleRegistry:
        """Grant a role on behalf of ``caller``, who must hold the admin role."""
        self.require_role(DEFAULT_ADMIN_ROLE, caller)
        return self.grant(role, account)

    def revoke_role(
        self, caller: Address, role: RoleName, account: Address
    ) -> RoleRegistry:
        """Revoke a role on behalf of ``caller``, who must hold the admin role."""
        self.require_role(DEFAULT_ADMIN_ROLE, caller)
        return self.revoke(role, account)

    def to_dict(self) -> dict[str, list[str]]:
        return {role: sorted(holders) for role, holders in self.members.items()}
