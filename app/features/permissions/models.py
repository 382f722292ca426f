"""
Role and permission definitions for organ/tissue traceability workflows.

Roles and permissions are closed enumerations fixed at deploy time. The
role-to-permission map must stay total: adding a Role without an entry
in ROLE_PERMISSIONS fails at import time.
"""
from enum import Enum
from typing import Mapping, FrozenSet

from app.core.errors import ConfigurationError
from app.features.acl.models import ObjectPermission


class Role(str, Enum):
    """User roles."""
    ADMIN = "admin"
    OPO_COORDINATOR = "opo_coordinator"
    RECOVERY_COORDINATOR = "recovery_coordinator"
    TRIAGE_COORDINATOR = "triage_coordinator"
    SURGEON = "surgeon"
    QUALITY_STAFF = "quality_staff"
    LAB_STAFF = "lab_staff"
    COURIER = "courier"


class Permission(str, Enum):
    """Capabilities that can be granted to a role."""
    # Case Passport
    VIEW_CASE_PASSPORTS = "view_case_passports"
    CREATE_CASE_PASSPORTS = "create_case_passports"
    EDIT_CASE_PASSPORTS = "edit_case_passports"
    CLOSE_CASE_PASSPORTS = "close_case_passports"

    # Documents & Lab
    VIEW_DOCUMENTS = "view_documents"
    UPLOAD_DOCUMENTS = "upload_documents"
    DELETE_DOCUMENTS = "delete_documents"
    UPLOAD_LAB_RESULTS = "upload_lab_results"
    VIEW_LAB_RESULTS = "view_lab_results"

    # QA / Compliance
    VIEW_QA_ALERTS = "view_qa_alerts"
    CREATE_QA_ALERTS = "create_qa_alerts"
    RESOLVE_QA_ALERTS = "resolve_qa_alerts"
    APPROVE_FOUR_EYES = "approve_four_eyes"

    # Chain of Custody
    VIEW_CHAIN_OF_CUSTODY = "view_chain_of_custody"
    UPDATE_CHAIN_OF_CUSTODY = "update_chain_of_custody"

    # Admin / System
    MANAGE_USERS = "manage_users"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    SYSTEM_CONFIGURATION = "system_configuration"
    MANAGE_CONNECTORS = "manage_connectors"
    TENANT_MANAGEMENT = "tenant_management"
    MANAGE_CONSENTS = "manage_consents"


# ============================================================================
# Role -> Permissions Mapping
# ============================================================================

ROLE_PERMISSIONS: Mapping[Role, FrozenSet[Permission]] = {
    Role.ADMIN: frozenset(Permission),
    Role.OPO_COORDINATOR: frozenset({
        Permission.VIEW_CASE_PASSPORTS,
        Permission.CREATE_CASE_PASSPORTS,
        Permission.EDIT_CASE_PASSPORTS,
        Permission.VIEW_DOCUMENTS,
        Permission.UPLOAD_DOCUMENTS,
        Permission.VIEW_QA_ALERTS,
        Permission.CREATE_QA_ALERTS,
        Permission.VIEW_CHAIN_OF_CUSTODY,
        Permission.UPDATE_CHAIN_OF_CUSTODY,
    }),
    Role.RECOVERY_COORDINATOR: frozenset({
        Permission.VIEW_CASE_PASSPORTS,
        Permission.EDIT_CASE_PASSPORTS,
        Permission.VIEW_DOCUMENTS,
        Permission.UPLOAD_DOCUMENTS,
        Permission.VIEW_CHAIN_OF_CUSTODY,
        Permission.UPDATE_CHAIN_OF_CUSTODY,
    }),
    Role.TRIAGE_COORDINATOR: frozenset({
        Permission.VIEW_CASE_PASSPORTS,
        Permission.EDIT_CASE_PASSPORTS,
        Permission.VIEW_QA_ALERTS,
        Permission.CREATE_QA_ALERTS,
        Permission.VIEW_CHAIN_OF_CUSTODY,
    }),
    Role.SURGEON: frozenset({
        Permission.VIEW_CASE_PASSPORTS,
        Permission.CLOSE_CASE_PASSPORTS,
        Permission.VIEW_DOCUMENTS,
        Permission.VIEW_LAB_RESULTS,
        Permission.VIEW_CHAIN_OF_CUSTODY,
        Permission.APPROVE_FOUR_EYES,
    }),
    Role.QUALITY_STAFF: frozenset({
        Permission.VIEW_QA_ALERTS,
        Permission.CREATE_QA_ALERTS,
        Permission.RESOLVE_QA_ALERTS,
        Permission.APPROVE_FOUR_EYES,
        Permission.VIEW_AUDIT_LOGS,
    }),
    Role.LAB_STAFF: frozenset({
        Permission.UPLOAD_LAB_RESULTS,
        Permission.VIEW_LAB_RESULTS,
        Permission.VIEW_DOCUMENTS,
        Permission.UPLOAD_DOCUMENTS,
        Permission.VIEW_CASE_PASSPORTS,
    }),
    Role.COURIER: frozenset({
        Permission.VIEW_CHAIN_OF_CUSTODY,
        Permission.UPDATE_CHAIN_OF_CUSTODY,
    }),
}

_READ_PREFIXES = ("view_",)

# Permissions that only read the object they target; everything else writes.
PERMISSION_OPERATIONS: Mapping[Permission, ObjectPermission] = {
    permission: (
        ObjectPermission.READ if permission.value.startswith(_READ_PREFIXES) else ObjectPermission.WRITE
    )
    for permission in Permission
}

# Roles that must complete multi-factor authentication
MFA_REQUIRED_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN, Role.SURGEON, Role.OPO_COORDINATOR})


def validate_role_permissions(mapping: Mapping[Role, FrozenSet[Permission]]) -> None:
    """
    Check that a role map is total and that no role maps to an empty set.

    Raises:
        ConfigurationError: naming the offending roles
    """
    missing = [role.value for role in Role if role not in mapping]
    if missing:
        raise ConfigurationError(f"Roles missing from permission map: {', '.join(missing)}")
    empty = [role.value for role, permissions in mapping.items() if not permissions]
    if empty:
        raise ConfigurationError(f"Roles with no permissions: {', '.join(empty)}")


validate_role_permissions(ROLE_PERMISSIONS)


def _coerce_role(role: "Role | str") -> Role:
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        raise ConfigurationError(f"Unknown role: {role!r}") from None


def permissions_for(role: "Role | str") -> FrozenSet[Permission]:
    """
    Get all permissions for a role.

    Raises:
        ConfigurationError: if the role is not defined
    """
    resolved = _coerce_role(role)
    try:
        return ROLE_PERMISSIONS[resolved]
    except KeyError:
        raise ConfigurationError(f"Role {resolved.value!r} has no permission entry") from None


def has_permission(role: "Role | str", permission: "Permission | str") -> bool:
    """Check if a role has a specific permission. Never raises."""
    try:
        granted = permissions_for(role)
    except ConfigurationError:
        return False
    try:
        return Permission(permission) in granted
    except ValueError:
        return False


def operation_for(permission: Permission) -> ObjectPermission:
    """Object operation implied by a permission."""
    return PERMISSION_OPERATIONS[permission]


def requires_mfa(role: Role) -> bool:
    """Check if a role must use multi-factor authentication."""
    return role in MFA_REQUIRED_ROLES
