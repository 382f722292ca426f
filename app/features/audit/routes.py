"""
Audit log API routes.

Reading the log is itself audited.
"""
from datetime import datetime
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query

from app.core.context import AccessContext, get_access_context
from app.features.audit.schemas import (
    AuditDecision,
    AuditEntryListResponse,
    AuditEntryResponse,
    AuditFilter,
    ChainVerificationResponse,
)
from app.features.permissions.dependencies import require_permission
from app.features.permissions.models import Permission
from app.features.permissions.schemas import Actor
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


@router.get("/entries", response_model=AuditEntryListResponse)
async def list_entries(
    access: Annotated[AccessContext, Depends(get_access_context)],
    actor: Actor = Depends(require_permission(Permission.VIEW_AUDIT_LOGS)),
    actor_id: Optional[str] = None,
    resource: Optional[str] = None,
    action: Optional[str] = None,
    decision: Optional[AuditDecision] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=1000),
):
    """List audit entries in chain order."""
    filters = AuditFilter(
        actor_id=actor_id,
        resource=resource,
        action=action,
        decision=decision,
        start=start,
        end=end,
        limit=limit,
    )
    items = [
        AuditEntryResponse.model_validate(entry)
        async for entry in access.audit.query(filters, reader=actor)
    ]
    return AuditEntryListResponse(items=items, count=len(items))


@router.get("/verify", response_model=ChainVerificationResponse)
async def verify_chain(
    access: Annotated[AccessContext, Depends(get_access_context)],
    actor: Actor = Depends(require_permission(Permission.VIEW_AUDIT_LOGS)),
    start_seq: Optional[int] = Query(None, ge=1),
    end_seq: Optional[int] = Query(None, ge=1),
):
    """Recompute hashes, links and signatures over a range of the chain."""
    outcome = await access.audit.verify_chain(start_seq, end_seq)
    if not outcome.valid:
        log.error(f"Chain verification requested by {actor.identity} failed at seq={outcome.broken_at}")
    return ChainVerificationResponse(valid=outcome.valid, checked=outcome.checked, broken_at=outcome.broken_at)
