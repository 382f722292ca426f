"""
Access decision engine.

Combines the role permission map (coarse) with per-object ACL policies
(fine). Every decision, allow or deny, is appended to the audit log before
it is returned; if the append fails the StorageError propagates and the
caller must treat the action as refused.
"""
from typing import Any, Dict, Iterable, Optional

from app.core.errors import DenyReason, StorageError
from app.features.acl.resolver import ObjectAclResolver
from app.features.acl.store import PolicyStore
from app.features.audit.service import ImmutableAuditLog
from app.features.permissions.models import Permission, Role, has_permission, operation_for
from app.features.permissions.schemas import Actor, Decision
from app.utils import get_logger


log = get_logger(__name__)
security_log = get_logger("security")


class AccessDecisionEngine:
    """
    Decide whether an actor may use a permission, optionally on a stored object.

    Holds no mutable state of its own; concurrent calls are independent.
    """

    def __init__(self, resolver: ObjectAclResolver, policies: PolicyStore, audit: ImmutableAuditLog):
        self.resolver = resolver
        self.policies = policies
        self.audit = audit

    async def authorize(
        self,
        actor: Optional[Actor],
        permission: Permission,
        resource: Optional[str] = None,
        *,
        request_meta: Optional[Dict[str, Any]] = None,
    ) -> Decision:
        """
        Evaluate a request.

        1. no actor -> Deny(unauthenticated)
        2. role lacks the permission -> Deny(forbidden)
        3. resource given and its ACL refuses the implied operation -> Deny(forbidden)
        4. otherwise Allow

        Raises:
            StorageError: if the decision could not be audited
        """
        details: Dict[str, Any] = {}
        decision = await self._decide(actor, permission, resource, details)
        await self._record(actor, decision, details, request_meta or {})
        return decision

    async def _decide(
        self,
        actor: Optional[Actor],
        permission: Permission,
        resource: Optional[str],
        details: Dict[str, Any],
    ) -> Decision:
        if actor is None:
            return Decision.deny(DenyReason.UNAUTHENTICATED, permission.value, resource)

        if not has_permission(actor.role, permission):
            return Decision.deny(
                DenyReason.FORBIDDEN, permission.value, resource, detail="Role lacks permission"
            )

        if resource is not None:
            requested = operation_for(permission)
            details["requested_operation"] = requested.value
            try:
                policy = await self.policies.get_policy(resource)
            except StorageError as e:
                log.error(f"Policy lookup failed for {resource}, denying: {e}")
                details["policy_error"] = str(e)
                return Decision.deny(
                    DenyReason.FORBIDDEN, permission.value, resource, detail="Policy unavailable"
                )
            if not await self.resolver.can_access(actor.identity, policy, requested):
                return Decision.deny(
                    DenyReason.FORBIDDEN, permission.value, resource, detail="Object ACL denied"
                )

        return Decision.allow(permission.value, resource)

    async def require_any_role(
        self,
        actor: Optional[Actor],
        roles: Iterable[Role],
        *,
        request_meta: Optional[Dict[str, Any]] = None,
    ) -> Decision:
        """Allow only actors holding one of the given roles."""
        allowed_roles = sorted(role.value for role in roles)
        label = "role:" + "|".join(allowed_roles)
        if actor is None:
            decision = Decision.deny(DenyReason.UNAUTHENTICATED, label)
        elif actor.role.value not in allowed_roles:
            decision = Decision.deny(DenyReason.FORBIDDEN, label, detail="Role access denied")
        else:
            decision = Decision.allow(label)
        await self._record(actor, decision, {"required_roles": allowed_roles}, request_meta or {})
        return decision

    async def authorize_ownership_transfer(
        self,
        actor: Optional[Actor],
        object_ref: str,
        current_owner: str,
        *,
        request_meta: Optional[Dict[str, Any]] = None,
    ) -> Decision:
        """
        Allow changing an object's owner only for the current owner or a
        role holding system_configuration. A write grant is not enough.
        """
        label = "transfer_ownership"
        if actor is None:
            decision = Decision.deny(DenyReason.UNAUTHENTICATED, label, object_ref)
        elif actor.identity == current_owner or has_permission(actor.role, Permission.SYSTEM_CONFIGURATION):
            decision = Decision.allow(label, object_ref)
        else:
            decision = Decision.deny(
                DenyReason.FORBIDDEN, label, object_ref, detail="Only the owner may transfer ownership"
            )
        await self._record(actor, decision, {"current_owner": current_owner}, request_meta or {})
        return decision

    async def _record(
        self,
        actor: Optional[Actor],
        decision: Decision,
        details: Dict[str, Any],
        request_meta: Dict[str, Any],
    ) -> None:
        if decision.detail:
            details["detail"] = decision.detail
        if request_meta.get("path"):
            details["path"] = request_meta["path"]
        if request_meta.get("method"):
            details["method"] = request_meta["method"]

        await self.audit.decision(
            action=f"authorize:{decision.permission}",
            allowed=decision.allowed,
            actor_id=actor.identity if actor else None,
            actor_role=actor.role.value if actor else None,
            resource=decision.resource,
            reason=decision.reason.value if decision.reason else None,
            details=details or None,
            client_ip=request_meta.get("client_ip"),
            user_agent=request_meta.get("user_agent"),
        )

        who = actor.identity if actor else "anonymous"
        if decision.allowed:
            security_log.info(f"RBAC: Permission granted: {who} {decision.permission} {decision.resource or ''}")
        else:
            security_log.warning(
                f"RBAC: Access denied ({decision.reason.value}): {who} {decision.permission} {decision.resource or ''}"
            )
