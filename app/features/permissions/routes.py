"""
Permission API routes.

Read-only views of the role permission map and a check endpoint for
clients that want to hide actions the caller cannot perform.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Request

from app.core.context import AccessContext, get_access_context
from app.core.errors import AccessDeniedError
from app.features.permissions.models import Role, permissions_for, requires_mfa
from app.features.permissions.schemas import (
    Actor,
    PermissionCheckRequest,
    PermissionCheckResponse,
    RolePermissionsResponse,
)
from app.features.users.dependencies import get_current_actor, get_request_meta
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


def _role_view(role: Role) -> RolePermissionsResponse:
    return RolePermissionsResponse(
        role=role,
        permissions=sorted(permissions_for(role), key=lambda p: p.value),
        requires_mfa=requires_mfa(role),
    )


@router.get("/roles", response_model=List[RolePermissionsResponse])
async def list_roles():
    """List every role with the permissions it grants."""
    return [_role_view(role) for role in Role]


@router.get("/roles/{role}", response_model=RolePermissionsResponse)
async def get_role(role: str):
    """Get the permissions granted to one role."""
    try:
        return _role_view(Role(role))
    except ValueError:
        raise HTTPException(status_code=404, detail="Role not found")


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check: PermissionCheckRequest,
    request: Request,
    actor: Annotated[Optional[Actor], Depends(get_current_actor)],
    access: Annotated[AccessContext, Depends(get_access_context)],
):
    """
    Check whether the current actor may use a permission.

    The answer is a decision, not an error: a denied check returns 200
    with allowed=false. The check itself is audited.
    """
    decision = await access.decisions.authorize(
        actor, check.permission, check.resource, request_meta=get_request_meta(request)
    )
    return PermissionCheckResponse(
        allowed=decision.allowed,
        reason=decision.reason.value if decision.reason else None,
        code=decision.reason.code if decision.reason else None,
    )


@router.get("/me", response_model=RolePermissionsResponse)
async def my_permissions(
    request: Request,
    actor: Annotated[Optional[Actor], Depends(get_current_actor)],
    access: Annotated[AccessContext, Depends(get_access_context)],
):
    """Permissions of the authenticated caller."""
    decision = await access.decisions.require_any_role(actor, Role, request_meta=get_request_meta(request))
    if not decision.allowed:
        raise AccessDeniedError(decision)
    return _role_view(actor.role)
