"""
Application context: every collaborator of the access core, built once.

Components receive what they need from here instead of importing shared
module-level instances, so tests can build isolated contexts.
"""
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core import config
from app.core.database.engine import create_engine, create_session_factory, init_db
from app.core.error_sink import ErrorSink, NullErrorSink, build_error_sink
from app.core.errors import ConfigurationError
from app.features.acl.groups import MembershipDirectory, PlaceholderDirectory
from app.features.acl.resolver import ObjectAclResolver
from app.features.acl.store import PolicyStore
from app.features.audit.service import ImmutableAuditLog
from app.features.consent.service import ConsentGate, ConsentService
from app.features.encryption.service import FieldEncryptionService
from app.features.permissions.engine import AccessDecisionEngine


@dataclass
class AccessContext:
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    encryption: FieldEncryptionService
    audit: ImmutableAuditLog
    policies: PolicyStore
    resolver: ObjectAclResolver
    decisions: AccessDecisionEngine
    consents: ConsentService
    consent_gate: ConsentGate
    error_sink: ErrorSink
    session_secret: str

    async def init_db(self) -> None:
        await init_db(self.engine)

    async def close(self) -> None:
        await self.engine.dispose()


def build_context(
    *,
    database_url: str,
    encryption_key: Optional[str],
    audit_signing_key: Optional[str],
    session_secret: Optional[str],
    old_encryption_keys: Iterable[str] = (),
    hash_salt: str = "aorta-mesh-salt",
    directory: Optional[MembershipDirectory] = None,
    error_sink: Optional[ErrorSink] = None,
) -> AccessContext:
    """
    Wire the access core together.

    Raises:
        ConfigurationError: if a required secret is missing
    """
    if not encryption_key:
        raise ConfigurationError("ENCRYPTION_KEY is not set")
    if not audit_signing_key:
        raise ConfigurationError("AUDIT_SIGNING_KEY is not set")
    if not session_secret:
        raise ConfigurationError("SESSION_SECRET is not set")

    engine = create_engine(database_url)
    session_factory = create_session_factory(engine)
    encryption = FieldEncryptionService(encryption_key, old_encryption_keys, hash_salt=hash_salt)
    audit = ImmutableAuditLog(session_factory, audit_signing_key)
    policies = PolicyStore(session_factory)
    resolver = ObjectAclResolver(directory or PlaceholderDirectory())
    consents = ConsentService(session_factory, encryption, audit)
    return AccessContext(
        engine=engine,
        session_factory=session_factory,
        encryption=encryption,
        audit=audit,
        policies=policies,
        resolver=resolver,
        decisions=AccessDecisionEngine(resolver, policies, audit),
        consents=consents,
        consent_gate=ConsentGate(consents, audit),
        error_sink=error_sink or NullErrorSink(),
        session_secret=session_secret,
    )


def build_context_from_settings() -> AccessContext:
    """Build the context from environment configuration."""
    config.validate_settings()
    return build_context(
        database_url=config.SQLALCHEMY_DATABASE_URL,
        encryption_key=config.ENCRYPTION_KEY,
        audit_signing_key=config.AUDIT_SIGNING_KEY,
        session_secret=config.SESSION_SECRET,
        old_encryption_keys=config.ENCRYPTION_OLD_KEYS,
        hash_salt=config.HASH_SALT,
        error_sink=build_error_sink(config.SENTRY_DSN, config.SENTRY_ENVIRONMENT),
    )


def get_access_context(request: Request) -> AccessContext:
    """FastAPI dependency returning the context built at startup."""
    return request.app.state.access
