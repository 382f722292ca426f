"""
Consent API routes.

Callers manage their own consent records; acting on anyone else's
requires the manage_consents permission.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query, Request, status

from app.core.context import AccessContext, get_access_context
from app.core.errors import AccessDeniedError, ObjectNotFoundError
from app.features.consent.schemas import (
    ConsentCreate,
    ConsentListResponse,
    ConsentResponse,
    ConsentStatusResponse,
    normalize_consent_type,
)
from app.features.permissions.models import Permission, Role
from app.features.permissions.schemas import Actor
from app.features.users.dependencies import get_current_actor, get_request_meta
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _authorize_for_user(
    access: AccessContext,
    actor: Optional[Actor],
    user_id: str,
    request: Request,
) -> Actor:
    """Allow the subject of the records, or anyone holding manage_consents."""
    meta = get_request_meta(request)
    if actor is not None and actor.identity == user_id:
        decision = await access.decisions.require_any_role(actor, Role, request_meta=meta)
    else:
        decision = await access.decisions.authorize(
            actor, Permission.MANAGE_CONSENTS, request_meta=meta
        )
    if not decision.allowed:
        raise AccessDeniedError(decision)
    return actor


@router.get("", response_model=ConsentListResponse)
async def list_consents(
    request: Request,
    access: Annotated[AccessContext, Depends(get_access_context)],
    actor: Annotated[Optional[Actor], Depends(get_current_actor)],
    user_id: str = Query(..., min_length=1),
    consent_type: Optional[str] = None,
):
    """Consent history for a user, withdrawn records included."""
    await _authorize_for_user(access, actor, user_id, request)
    records = await access.consents.history(user_id, consent_type)
    return ConsentListResponse(data=[ConsentResponse.model_validate(r) for r in records])


@router.get("/status", response_model=ConsentStatusResponse)
async def consent_status(
    request: Request,
    access: Annotated[AccessContext, Depends(get_access_context)],
    actor: Annotated[Optional[Actor], Depends(get_current_actor)],
    user_id: str = Query(..., min_length=1),
    consent_type: str = Query(..., min_length=1),
):
    """Whether a user currently holds a consent."""
    await _authorize_for_user(access, actor, user_id, request)
    consent_type = normalize_consent_type(consent_type)
    return ConsentStatusResponse(
        user_id=user_id,
        consent_type=consent_type,
        has_current_consent=await access.consents.has_current_consent(user_id, consent_type),
    )


@router.post("", response_model=ConsentResponse, status_code=status.HTTP_201_CREATED)
async def grant_consent(
    payload: ConsentCreate,
    request: Request,
    access: Annotated[AccessContext, Depends(get_access_context)],
    actor: Annotated[Optional[Actor], Depends(get_current_actor)],
):
    """Record a consent."""
    actor = await _authorize_for_user(access, actor, payload.user_id, request)
    record = await access.consents.grant(
        payload.user_id, payload.consent_type, granted_by=payload.granted_by, actor=actor
    )
    return record


@router.delete("/{consent_id}", response_model=ConsentResponse)
async def withdraw_consent(
    consent_id: str,
    request: Request,
    access: Annotated[AccessContext, Depends(get_access_context)],
    actor: Annotated[Optional[Actor], Depends(get_current_actor)],
):
    """Withdraw a consent. The record is kept and marked withdrawn."""
    if actor is None:
        # Unauthenticated callers learn nothing about which IDs exist
        await _authorize_for_user(access, actor, "", request)
    record = await access.consents.get(consent_id)
    if record is None:
        raise ObjectNotFoundError(f"Consent not found: {consent_id}")
    await _authorize_for_user(access, actor, record.user_id, request)
    return await access.consents.withdraw(consent_id, actor=actor)
