"""
Pydantic schemas for access decisions.

Actors, decisions, and request/response models for the permission endpoints.
"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from app.core.errors import DenyReason
from app.features.permissions.models import Permission, Role


# ============================================================================
# Actor / Decision
# ============================================================================

class Actor(BaseModel):
    """Authenticated caller, resolved upstream from the session token."""
    identity: str = Field(..., min_length=1, description="User identity")
    role: Role
    email: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Decision(BaseModel):
    """Outcome of an access check."""
    allowed: bool
    reason: Optional[DenyReason] = None
    permission: Optional[str] = None
    resource: Optional[str] = None
    detail: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def allow(cls, permission: Optional[str] = None, resource: Optional[str] = None) -> "Decision":
        return cls(allowed=True, permission=permission, resource=resource)

    @classmethod
    def deny(
        cls,
        reason: DenyReason,
        permission: Optional[str] = None,
        resource: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> "Decision":
        return cls(allowed=False, reason=reason, permission=permission, resource=resource, detail=detail)


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking if the current actor may perform an action."""
    permission: Permission = Field(..., description="Permission to check")
    resource: Optional[str] = Field(None, description="Stored object reference for fine-grained checks")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    allowed: bool
    reason: Optional[str] = None
    code: Optional[str] = None


class RolePermissionsResponse(BaseModel):
    """Schema for the permissions granted to a role."""
    role: Role
    permissions: List[Permission]
    requires_mfa: bool
