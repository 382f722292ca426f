"""
ACL policy types stored on objects in the blob store.

Access groups are a tagged union over the group kind; each kind is
evaluated by its own membership function (see groups.py).
"""
from enum import Enum
from typing import Annotated, List, Literal, Union
from pydantic import BaseModel, ConfigDict, Field


ACL_POLICY_METADATA_KEY = "custom:aclPolicy"


class ObjectPermission(str, Enum):
    READ = "read"
    WRITE = "write"


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class AccessGroupType(str, Enum):
    """Types of logical access groups."""
    USER_LIST = "user_list"
    EMAIL_DOMAIN = "email_domain"
    GROUP_MEMBER = "group_member"
    SUBSCRIBER = "subscriber"


class _AccessGroupBase(BaseModel):
    id: str = Field(..., min_length=1, description="Group identifier interpreted by the group type")

    model_config = ConfigDict(frozen=True)


class UserListGroup(_AccessGroupBase):
    """Explicit list of users."""
    type: Literal["user_list"] = "user_list"


class EmailDomainGroup(_AccessGroupBase):
    """Everyone with an email address in a domain."""
    type: Literal["email_domain"] = "email_domain"


class GroupMemberGroup(_AccessGroupBase):
    """Members of a named directory group."""
    type: Literal["group_member"] = "group_member"


class SubscriberGroup(_AccessGroupBase):
    """Subscribers of a feed or case."""
    type: Literal["subscriber"] = "subscriber"


AccessGroup = Annotated[
    Union[UserListGroup, EmailDomainGroup, GroupMemberGroup, SubscriberGroup],
    Field(discriminator="type"),
]


class AclRule(BaseModel):
    """Grants a permission to every member of a group."""
    group: AccessGroup
    permission: ObjectPermission

    model_config = ConfigDict(frozen=True)


class AclPolicy(BaseModel):
    """
    ACL policy stored in object metadata.

    The owner always has full access, whatever the rule list says.
    Public visibility grants read to everyone, never write.
    """
    owner: str = Field(..., min_length=1)
    visibility: Visibility = Visibility.PRIVATE
    acl_rules: List[AclRule] = Field(default_factory=list, alias="aclRules")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


def is_permission_allowed(requested: ObjectPermission, granted: ObjectPermission) -> bool:
    """Write implies read; read never implies write."""
    if requested == ObjectPermission.READ:
        return granted in (ObjectPermission.READ, ObjectPermission.WRITE)
    return granted == ObjectPermission.WRITE
