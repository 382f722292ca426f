"""
Tests for session tokens.
"""
from datetime import datetime, timedelta, timezone

import jwt

from app.features.permissions.models import Role
from app.features.permissions.schemas import Actor
from app.features.users.auth import ALGORITHM, create_session_token, verify_session_token


SECRET = "token-secret"


def test_round_trip():
    actor = Actor(identity="surgeon-bob", role=Role.SURGEON, email="bob@hospital.example")
    assert verify_session_token(create_session_token(actor, SECRET), SECRET) == actor


def test_expired_token():
    actor = Actor(identity="surgeon-bob", role=Role.SURGEON)
    assert verify_session_token(create_session_token(actor, SECRET, expiry_hours=-1), SECRET) is None


def test_wrong_secret():
    actor = Actor(identity="surgeon-bob", role=Role.SURGEON)
    assert verify_session_token(create_session_token(actor, SECRET), "other-secret") is None


def test_garbage_token():
    assert verify_session_token("not.a.token", SECRET) is None


def test_unknown_role_is_unauthenticated():
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"sub": "mallory", "role": "superuser", "iat": now, "exp": now + timedelta(hours=1)},
        SECRET,
        algorithm=ALGORITHM,
    )
    assert verify_session_token(token, SECRET) is None


def test_missing_subject():
    now = datetime.now(timezone.utc)
    token = jwt.encode({"role": "admin", "exp": now + timedelta(hours=1)}, SECRET, algorithm=ALGORITHM)
    assert verify_session_token(token, SECRET) is None
