"""
Group membership resolution for ACL rules.

The resolver only depends on the MembershipDirectory protocol. A real
identity directory is an external collaborator; PlaceholderDirectory keeps
the string-matching rules used before one is wired in, and StaticDirectory
serves explicit membership data.
"""
from typing import Awaitable, Callable, Dict, Iterable, Mapping, Protocol, Set, Tuple

from app.features.acl.models import (
    AccessGroup,
    AccessGroupType,
    EmailDomainGroup,
    GroupMemberGroup,
    SubscriberGroup,
    UserListGroup,
)
from app.utils import get_logger


log = get_logger(__name__)

PLACEHOLDER_EMAIL_DOMAIN = "example.com"


class MembershipDirectory(Protocol):
    """Answers "is this identity a member of that group"."""

    async def is_member(self, group: AccessGroup, identity: str) -> bool:
        ...


# ============================================================================
# Placeholder membership rules, one per group type
# ============================================================================

def _email_for(identity: str) -> str:
    if "@" in identity:
        return identity
    return f"{identity}@{PLACEHOLDER_EMAIL_DOMAIN}"


async def _user_list_member(group: UserListGroup, identity: str) -> bool:
    return identity == group.id


async def _email_domain_member(group: EmailDomainGroup, identity: str) -> bool:
    return _email_for(identity).lower().endswith(f"@{group.id.lower()}")


async def _group_member(group: GroupMemberGroup, identity: str) -> bool:
    return identity.startswith(group.id)


async def _subscriber_member(group: SubscriberGroup, identity: str) -> bool:
    return group.id in identity


_PLACEHOLDER_RULES: Dict[AccessGroupType, Callable[..., Awaitable[bool]]] = {
    AccessGroupType.USER_LIST: _user_list_member,
    AccessGroupType.EMAIL_DOMAIN: _email_domain_member,
    AccessGroupType.GROUP_MEMBER: _group_member,
    AccessGroupType.SUBSCRIBER: _subscriber_member,
}


class PlaceholderDirectory:
    """Membership by string matching on the identity."""

    async def is_member(self, group: AccessGroup, identity: str) -> bool:
        try:
            rule = _PLACEHOLDER_RULES[AccessGroupType(group.type)]
        except (KeyError, ValueError):
            raise ValueError(f"Unknown access group type: {group.type}") from None
        return await rule(group, identity)


class StaticDirectory:
    """
    Membership from an explicit mapping.

    Keys are (group type, group id) pairs; values are the member identities.
    Groups absent from the mapping have no members.
    """

    def __init__(self, members: Mapping[Tuple[AccessGroupType, str], Iterable[str]]):
        self._members: Dict[Tuple[AccessGroupType, str], Set[str]] = {
            (AccessGroupType(kind), group_id): set(identities)
            for (kind, group_id), identities in members.items()
        }

    async def is_member(self, group: AccessGroup, identity: str) -> bool:
        key = (AccessGroupType(group.type), group.id)
        found = identity in self._members.get(key, set())
        log.debug(f"Membership lookup {key[0].value}:{key[1]} for {identity}: {found}")
        return found
