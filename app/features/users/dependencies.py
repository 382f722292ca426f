"""
FastAPI dependencies for resolving the current actor.
"""
from typing import Annotated, Any, Dict, Optional
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.context import AccessContext, get_access_context
from app.features.permissions.schemas import Actor
from app.features.users.auth import verify_session_token


# auto_error=False: a missing header means "unauthenticated", decided by the engine
security = HTTPBearer(auto_error=False)


async def get_current_actor(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    access: Annotated[AccessContext, Depends(get_access_context)],
) -> Optional[Actor]:
    """
    Get the current actor from the bearer session token.

    Returns None when no valid token is presented; authorization turns
    that into an audited Deny(unauthenticated).
    """
    if credentials is None:
        return None
    return verify_session_token(credentials.credentials, access.session_secret)


def get_request_meta(request: Request) -> Dict[str, Any]:
    """Request attributes recorded alongside access decisions."""
    return {
        "path": request.url.path,
        "method": request.method,
        "client_ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
