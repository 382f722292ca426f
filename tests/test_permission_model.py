"""
Tests for the role permission map.
"""
import pytest

from app.core.errors import ConfigurationError
from app.features.acl.models import ObjectPermission
from app.features.permissions.models import (
    ROLE_PERMISSIONS,
    Permission,
    Role,
    has_permission,
    operation_for,
    permissions_for,
    requires_mfa,
    validate_role_permissions,
)


class TestPermissionsFor:
    @pytest.mark.parametrize("role", list(Role))
    def test_every_role_has_permissions(self, role):
        assert permissions_for(role)

    @pytest.mark.parametrize("role", list(Role))
    def test_stable_across_calls(self, role):
        assert permissions_for(role) == permissions_for(role)

    def test_accepts_role_value(self):
        assert permissions_for("courier") == ROLE_PERMISSIONS[Role.COURIER]

    def test_unknown_role_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            permissions_for("janitor")

    def test_admin_has_every_permission(self):
        assert permissions_for(Role.ADMIN) == frozenset(Permission)


class TestHasPermission:
    def test_granted(self):
        assert has_permission(Role.QUALITY_STAFF, Permission.RESOLVE_QA_ALERTS)

    def test_not_granted(self):
        assert not has_permission(Role.COURIER, Permission.VIEW_AUDIT_LOGS)

    @pytest.mark.parametrize("role", list(Role))
    def test_every_pair_answers_without_raising(self, role):
        for permission in Permission:
            assert has_permission(role, permission) == (permission in ROLE_PERMISSIONS[role])

    def test_unknown_role_is_false(self):
        assert has_permission("janitor", Permission.VIEW_DOCUMENTS) is False

    def test_unknown_permission_is_false(self):
        assert has_permission(Role.ADMIN, "launch_rockets") is False


class TestRoleMapValidation:
    def test_missing_role_rejected(self):
        partial = {role: perms for role, perms in ROLE_PERMISSIONS.items() if role != Role.COURIER}
        with pytest.raises(ConfigurationError, match="courier"):
            validate_role_permissions(partial)

    def test_empty_role_rejected(self):
        broken = dict(ROLE_PERMISSIONS)
        broken[Role.LAB_STAFF] = frozenset()
        with pytest.raises(ConfigurationError, match="lab_staff"):
            validate_role_permissions(broken)


def test_view_permissions_read_objects():
    assert operation_for(Permission.VIEW_DOCUMENTS) == ObjectPermission.READ
    assert operation_for(Permission.UPLOAD_DOCUMENTS) == ObjectPermission.WRITE
    assert operation_for(Permission.RESOLVE_QA_ALERTS) == ObjectPermission.WRITE


def test_mfa_roles():
    assert requires_mfa(Role.SURGEON)
    assert not requires_mfa(Role.COURIER)
