"""Tests for the role capability map."""

import pytest

from govtreasury.core.errors import AuthorizationError, InputValidationError
from govtreasury.datastructures.access_control import (
    DEFAULT_ADMIN_ROLE,
    EXECUTOR_ROLE,
    GOVERNOR_ROLE,
    OPEN_ROLE_HOLDER,
    RoleRegistry,
)


class TestRoleRegistry:
    """Test explicit role membership and admin checks."""

    def test_with_grants(self):
        registry = RoleRegistry.with_grants(
            [(GOVERNOR_ROLE, "0xtimelock"), (GOVERNOR_ROLE, "0xdeployer")]
        )
        assert registry.role_members(GOVERNOR_ROLE) == {"0xtimelock", "0xdeployer"}
        assert registry.has_role(GOVERNOR_ROLE, "0xtimelock")
        assert not registry.has_role(DEFAULT_ADMIN_ROLE, "0xtimelock")

    def test_require_role_names_account_and_role(self):
        registry = RoleRegistry()
        with pytest.raises(AuthorizationError) as excinfo:
            registry.require_role(GOVERNOR_ROLE, "0xmallory")
        assert str(excinfo.value) == (
            "AccessControlUnauthorizedAccount: account 0xmallory is missing role GOVERNOR_ROLE"
        )

    def test_grant_role_requires_admin(self):
        registry = RoleRegistry.with_grants([(DEFAULT_ADMIN_ROLE, "0xadmin")])
        registry = registry.grant_role("0xadmin", GOVERNOR_ROLE, "0xbob")
        assert registry.has_role(GOVERNOR_ROLE, "0xbob")
        with pytest.raises(AuthorizationError):
            registry.grant_role("0xbob", GOVERNOR_ROLE, "0xcarol")

    def test_revoke_requires_admin(self):
        registry = RoleRegistry.with_grants(
            [(DEFAULT_ADMIN_ROLE, "0xadmin"), (GOVERNOR_ROLE, "0xbob")]
        )
        assert not registry.revoke_role("0xadmin", GOVERNOR_ROLE, "0xbob").has_role(
            GOVERNOR_ROLE, "0xbob"
        )
        with pytest.raises(AuthorizationError, match="missing role DEFAULT_ADMIN_ROLE"):
            registry.revoke_role("0xbob", GOVERNOR_ROLE, "0xbob")

    def test_open_role(self):
        registry = RoleRegistry.with_grants([(EXECUTOR_ROLE, OPEN_ROLE_HOLDER)])
        assert registry.has_role(EXECUTOR_ROLE, "0xanyone")
        assert not registry.has_role(GOVERNOR_ROLE, "0xanyone")

    def test_registry_is_immutable(self):
        registry = RoleRegistry()
        registry.grant(GOVERNOR_ROLE, "0xbob")
        assert not registry.has_role(GOVERNOR_ROLE, "0xbob")
        with pytest.raises(InputValidationError):
            registry.grant(GOVERNOR_ROLE, "")
