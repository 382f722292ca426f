"""
Pydantic schemas for the audit log.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class Classification(str, Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"


class AuditDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    NONE = "none"  # mutations that are not access decisions


class AuditEvent(BaseModel):
    """Something that happened and must be recorded."""
    action: str = Field(..., min_length=1, max_length=255)
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    decision: AuditDecision = AuditDecision.NONE
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    classification: Classification = Classification.CONFIDENTIAL
    retention_years: int = Field(7, ge=1)
    legal_hold: bool = False


class AuditFilter(BaseModel):
    """Filters for reading the audit log. All are optional and combined with AND."""
    actor_id: Optional[str] = None
    resource: Optional[str] = None
    action: Optional[str] = None
    decision: Optional[AuditDecision] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: Optional[int] = Field(None, ge=1)


class AuditEntryResponse(BaseModel):
    """Schema for audit entry response."""
    seq: int
    id: str
    timestamp: datetime
    actor_id: Optional[str]
    actor_role: Optional[str]
    action: str
    resource: Optional[str]
    resource_id: Optional[str]
    decision: str
    reason: Optional[str]
    details: Optional[Dict[str, Any]]
    client_ip: Optional[str]
    user_agent: Optional[str]
    classification: str
    retention_years: int
    legal_hold: bool
    previous_hash: str
    hash: str

    model_config = ConfigDict(from_attributes=True)


class AuditEntryListResponse(BaseModel):
    items: List[AuditEntryResponse]
    count: int


class ChainVerificationResponse(BaseModel):
    valid: bool
    checked: int
    broken_at: Optional[int] = None
