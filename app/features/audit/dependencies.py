"""
Break-glass access recording.

A clinician acting under emergency conditions sends the
X-Break-Glass-Reason header. The request is still authorized normally;
the header only makes sure the access is recorded with restricted
classification and legal hold.
"""
from typing import Annotated, Optional
from fastapi import Depends, Request

from app.core.context import AccessContext, get_access_context
from app.features.permissions.schemas import Actor
from app.features.users.dependencies import get_current_actor
from app.utils import get_logger


log = get_logger(__name__)
security_log = get_logger("security")

BREAK_GLASS_HEADER = "X-Break-Glass-Reason"


async def record_break_glass(
    request: Request,
    actor: Annotated[Optional[Actor], Depends(get_current_actor)],
    access: Annotated[AccessContext, Depends(get_access_context)],
) -> bool:
    """
    App-wide dependency logging emergency access.

    Returns:
        True if the request was recorded as break-glass access
    """
    reason = request.headers.get(BREAK_GLASS_HEADER)
    if reason is None:
        return False
    if actor is None:
        log.warning(f"Ignoring break-glass header on unauthenticated request to {request.url.path}")
        return False

    await access.audit.log_emergency_access(actor.identity, request.url.path, reason.strip() or None)
    security_log.warning(f"Break-glass access: {actor.identity} ({actor.role.value}) {request.url.path}")
    return True
