"""
Object ACL API routes.

Object references may contain slashes, so they are matched as paths.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.core.context import AccessContext, get_access_context
from app.core.errors import AccessDeniedError
from app.features.acl.models import AclPolicy
from app.features.acl.schemas import ObjectCreate, ObjectResponse
from app.features.audit.schemas import AuditEvent
from app.features.permissions.dependencies import require_permission
from app.features.permissions.models import Permission
from app.features.permissions.schemas import Actor
from app.features.users.dependencies import get_request_meta
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


@router.post("", response_model=ObjectResponse, status_code=status.HTTP_201_CREATED)
async def register_object(
    payload: ObjectCreate,
    request: Request,
    access: Annotated[AccessContext, Depends(get_access_context)],
    actor: Actor = Depends(require_permission(Permission.UPLOAD_DOCUMENTS)),
):
    """Register an object with an initial policy owned by the caller."""
    if await access.policies.get_object(payload.object_ref) is not None:
        raise HTTPException(status_code=409, detail="Object already registered")

    policy = AclPolicy(owner=actor.identity, visibility=payload.visibility, acl_rules=payload.acl_rules)
    stored = await access.policies.register_object(
        payload.object_ref,
        policy=policy,
        bucket=payload.bucket,
        content_type=payload.content_type,
    )
    meta = get_request_meta(request)
    await access.audit.append(
        AuditEvent(
            action="object:register",
            actor_id=actor.identity,
            actor_role=actor.role.value,
            resource=stored.object_ref,
            details={"visibility": policy.visibility.value, "rules": len(policy.acl_rules)},
            client_ip=meta["client_ip"],
            user_agent=meta["user_agent"],
        )
    )
    return ObjectResponse(
        object_ref=stored.object_ref,
        bucket=stored.bucket,
        content_type=stored.content_type,
        policy=policy,
    )


@router.get("/{object_ref:path}/acl", response_model=AclPolicy)
async def get_object_acl(
    object_ref: str,
    access: Annotated[AccessContext, Depends(get_access_context)],
    actor: Actor = Depends(require_permission(Permission.VIEW_DOCUMENTS, "object_ref")),
):
    """Get the ACL policy of an object the caller may read."""
    policy = await access.policies.get_policy(object_ref)
    if policy is None:
        # Access was already granted, so the policy vanished in between
        raise HTTPException(status_code=404, detail="Policy not found")
    return policy


@router.put("/{object_ref:path}/acl", response_model=AclPolicy)
async def update_object_acl(
    object_ref: str,
    policy: AclPolicy,
    request: Request,
    access: Annotated[AccessContext, Depends(get_access_context)],
    actor: Actor = Depends(require_permission(Permission.UPLOAD_DOCUMENTS, "object_ref")),
):
    """
    Replace the ACL policy of an object the caller may write.

    Changing the owner additionally requires being the owner.
    """
    meta = get_request_meta(request)
    current = await access.policies.get_policy(object_ref)
    if current is not None and policy.owner != current.owner:
        decision = await access.decisions.authorize_ownership_transfer(
            actor, object_ref, current.owner, request_meta=meta
        )
        if not decision.allowed:
            raise AccessDeniedError(decision)

    await access.policies.set_policy(object_ref, policy)
    await access.audit.append(
        AuditEvent(
            action="acl:update",
            actor_id=actor.identity,
            actor_role=actor.role.value,
            resource=object_ref,
            details={
                "owner": policy.owner,
                "visibility": policy.visibility.value,
                "rules": [
                    {"group": f"{rule.group.type}:{rule.group.id}", "permission": rule.permission.value}
                    for rule in policy.acl_rules
                ],
            },
            client_ip=meta["client_ip"],
            user_agent=meta["user_agent"],
        )
    )
    log.info(f"ACL updated on {object_ref} by {actor.identity}")
    return policy
