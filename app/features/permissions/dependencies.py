"""
FastAPI dependencies for route protection.

Every check goes through the access decision engine, so allowed and
denied requests alike leave an audit entry before the handler runs.
"""
from typing import Annotated, Any, Dict, Optional
from fastapi import Depends, Request

from app.core.context import AccessContext, get_access_context
from app.core.errors import AccessDeniedError
from app.features.permissions.models import Permission, Role
from app.features.permissions.schemas import Actor
from app.features.users.dependencies import get_current_actor, get_request_meta


def require_permission(permission: Permission, resource_param: Optional[str] = None):
    """
    FastAPI dependency to require a permission, optionally on a stored object.

    Usage:
        @router.get("/objects/{object_ref:path}/acl")
        async def read_acl(
            actor: Actor = Depends(require_permission(Permission.VIEW_DOCUMENTS, "object_ref"))
        ):
            ...

    Args:
        permission: Permission the actor's role must grant
        resource_param: Name of the path parameter holding the object reference;
            when given, the object's ACL must also allow the implied operation

    Returns:
        Dependency function that returns the current actor if access is allowed

    Raises:
        AccessDeniedError: 401 for unauthenticated callers, 403 otherwise
    """
    async def permission_dependency(
        request: Request,
        actor: Annotated[Optional[Actor], Depends(get_current_actor)],
        access: Annotated[AccessContext, Depends(get_access_context)],
    ) -> Actor:
        resource = request.path_params.get(resource_param) if resource_param else None
        decision = await access.decisions.authorize(
            actor, permission, resource, request_meta=get_request_meta(request)
        )
        if not decision.allowed:
            raise AccessDeniedError(decision)
        return actor

    return permission_dependency


def require_any_role(*roles: Role):
    """FastAPI dependency allowing only actors holding one of `roles`."""
    async def role_dependency(
        request: Request,
        actor: Annotated[Optional[Actor], Depends(get_current_actor)],
        access: Annotated[AccessContext, Depends(get_access_context)],
    ) -> Actor:
        decision = await access.decisions.require_any_role(
            actor, roles, request_meta=get_request_meta(request)
        )
        if not decision.allowed:
            raise AccessDeniedError(decision)
        return actor

    return role_dependency


def require_consent(consent_type: str):
    """
    FastAPI dependency requiring current consent of `consent_type`.

    Raises:
        AccessDeniedError: when the consent gate denies
    """
    async def consent_dependency(
        request: Request,
        actor: Annotated[Optional[Actor], Depends(get_current_actor)],
        access: Annotated[AccessContext, Depends(get_access_context)],
    ) -> Actor:
        meta: Dict[str, Any] = get_request_meta(request)
        decision = await access.consent_gate.require_consent(
            actor,
            consent_type,
            client_ip=meta["client_ip"],
            user_agent=meta["user_agent"],
        )
        if not decision.allowed:
            raise AccessDeniedError(decision)
        return actor

    return consent_dependency
