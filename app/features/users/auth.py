"""
Session token helpers.

Tokens carry the actor (identity, role, email) resolved at login by the
upstream identity provider.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from app.features.permissions.models import Role
from app.features.permissions.schemas import Actor
from app.utils import get_logger


log = get_logger(__name__)

ALGORITHM = "HS256"


def create_session_token(actor: Actor, secret: str, expiry_hours: int = 24) -> str:
    """Generate a signed session token for an authenticated actor."""
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": actor.identity,
        "role": actor.role.value,
        "iat": now,
        "exp": now + timedelta(hours=expiry_hours),
    }
    if actor.email:
        payload["email"] = actor.email
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify_session_token(token: str, secret: str) -> Optional[Actor]:
    """
    Verify a session token and return its actor.

    Returns:
        The actor, or None if the token is invalid, expired, or names an unknown role
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        log.info("Session token expired")
        return None
    except jwt.InvalidTokenError as e:
        log.info(f"Invalid session token: {e}")
        return None

    identity = payload.get("sub")
    if not identity:
        log.info("Session token without subject")
        return None

    try:
        role = Role(payload.get("role"))
    except ValueError:
        log.warning(f"Session token for {identity} carries unknown role {payload.get('role')!r}")
        return None

    return Actor(identity=identity, role=role, email=payload.get("email"))
