"""
Pytest configuration and fixtures.
"""
import pytest
import pytest_asyncio

from app.core.context import build_context
from app.features.permissions.models import Role
from app.features.permissions.schemas import Actor


TEST_ENCRYPTION_KEY = "test-encryption-key"
TEST_SIGNING_KEY = "test-audit-signing-key"
TEST_SESSION_SECRET = "test-session-secret"
MEMORY_DB = "sqlite+aiosqlite:///:memory:"


def make_context(**overrides):
    """Build an isolated access context on a private in-memory database."""
    options = dict(
        database_url=MEMORY_DB,
        encryption_key=TEST_ENCRYPTION_KEY,
        audit_signing_key=TEST_SIGNING_KEY,
        session_secret=TEST_SESSION_SECRET,
    )
    options.update(overrides)
    return build_context(**options)


@pytest_asyncio.fixture
async def access():
    """Access context with tables and triggers created."""
    ctx = make_context()
    await ctx.init_db()
    yield ctx
    await ctx.close()


@pytest.fixture
def quality_staff():
    return Actor(identity="qa-team-alice", role=Role.QUALITY_STAFF, email="alice@hospital.example")


@pytest.fixture
def surgeon():
    return Actor(identity="surgeon-bob", role=Role.SURGEON)


@pytest.fixture
def admin():
    return Actor(identity="admin-carol", role=Role.ADMIN)
