"""
Fine-grained access evaluation for stored objects.
"""
from typing import Optional

from app.features.acl.groups import MembershipDirectory
from app.features.acl.models import AclPolicy, AclRule, ObjectPermission, Visibility, is_permission_allowed
from app.utils import get_logger


log = get_logger(__name__)


class ObjectAclResolver:
    """
    Decide whether an identity may read or write an object.

    Membership is looked up on every call; results are never cached
    because membership can change between requests.
    """

    def __init__(self, directory: MembershipDirectory):
        self.directory = directory

    async def can_access(
        self,
        identity: Optional[str],
        policy: Optional[AclPolicy],
        requested: ObjectPermission,
    ) -> bool:
        """
        Evaluate a policy, short-circuiting in this order:

        1. no policy -> deny
        2. public and read -> allow
        3. no identity -> deny
        4. owner -> allow
        5. a rule whose group contains the identity and whose permission
           covers the request -> allow
        6. otherwise deny
        """
        if policy is None:
            return False

        if policy.visibility == Visibility.PUBLIC and requested == ObjectPermission.READ:
            return True

        if not identity:
            return False

        if identity == policy.owner:
            return True

        for rule in policy.acl_rules:
            if not is_permission_allowed(requested, rule.permission):
                continue
            if await self._is_member(rule, identity):
                return True

        return False

    async def _is_member(self, rule: AclRule, identity: str) -> bool:
        # A failed lookup counts as "not a member"
        try:
            return bool(await self.directory.is_member(rule.group, identity))
        except Exception as e:
            log.warning(
                f"Membership lookup failed for group {rule.group.type}:{rule.group.id}, "
                f"treating {identity} as non-member: {e}"
            )
            return False
