"""
Pydantic schemas for the object ACL endpoints.
"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from app.features.acl.models import AclPolicy, AclRule, Visibility


class ObjectCreate(BaseModel):
    """Schema for registering an object. The caller becomes its owner."""
    object_ref: str = Field(..., min_length=1, max_length=500, description="Object key in the blob store")
    bucket: Optional[str] = Field(None, max_length=255)
    content_type: Optional[str] = Field(None, max_length=255)
    visibility: Visibility = Visibility.PRIVATE
    acl_rules: List[AclRule] = Field(default_factory=list, alias="aclRules")

    model_config = ConfigDict(populate_by_name=True)


class ObjectResponse(BaseModel):
    """Schema for a registered object with its policy."""
    object_ref: str
    bucket: Optional[str]
    content_type: Optional[str]
    policy: Optional[AclPolicy] = None
