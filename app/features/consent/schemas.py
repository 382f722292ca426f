"""
Pydantic schemas for consent management.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalize_consent_type(value: str) -> str:
    """Consent types are compared lowercased and stripped."""
    return value.strip().lower()


class ConsentCreate(BaseModel):
    """Schema for recording a new consent."""
    user_id: str = Field(..., min_length=1, description="User the consent belongs to")
    consent_type: str = Field(..., min_length=1, max_length=100, description="e.g. gdpr_data_processing")
    granted_by: Optional[str] = Field(None, max_length=255, description="Person granting consent")

    @field_validator("consent_type")
    @classmethod
    def consent_type_format(cls, v: str) -> str:
        """Normalise and validate consent type."""
        v = normalize_consent_type(v)
        if not v.replace("_", "").replace("-", "").isalnum():
            raise ValueError("Consent type must contain only alphanumeric characters, underscores, and hyphens")
        return v


class ConsentResponse(BaseModel):
    """Schema for consent response. `granted_by` is never returned in clear."""
    id: str
    user_id: str
    consent_type: str
    granted_at: datetime
    withdrawn: bool
    withdrawn_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class ConsentListResponse(BaseModel):
    success: bool = True
    data: List[ConsentResponse]


class ConsentStatusResponse(BaseModel):
    user_id: str
    consent_type: str
    has_current_consent: bool
