"""
Consent records and the consent gate.
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database.base import utcnow
from app.core.errors import DenyReason, ObjectNotFoundError, StorageError
from app.features.audit.schemas import AuditEvent
from app.features.audit.service import ImmutableAuditLog
from app.features.consent.models import ConsentRecord
from app.features.consent.schemas import normalize_consent_type
from app.features.encryption.service import FieldEncryptionService
from app.features.permissions.schemas import Actor, Decision
from app.utils import get_logger


log = get_logger(__name__)


class ConsentService:
    """
    Grant, withdraw and look up consent records.

    Every grant and withdrawal is audited.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        encryption: FieldEncryptionService,
        audit: ImmutableAuditLog,
    ):
        self.session_factory = session_factory
        self.encryption = encryption
        self.audit = audit

    async def grant(
        self,
        user_id: str,
        consent_type: str,
        granted_by: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> ConsentRecord:
        """Record a new consent. Earlier records for the same type are kept."""
        consent_type = normalize_consent_type(consent_type)
        record = ConsentRecord(
            user_id=user_id,
            consent_type=consent_type,
            granted_at=utcnow(),
            withdrawn=False,
            granted_by=self.encryption.encrypt(granted_by) if granted_by else None,
        )
        try:
            async with self.session_factory() as session:
                session.add(record)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to record consent: {e}") from e

        await self.audit.append(
            AuditEvent(
                action="consent:grant",
                actor_id=actor.identity if actor else user_id,
                actor_role=actor.role.value if actor else None,
                resource="consent_records",
                resource_id=record.id,
                details={"user_id": user_id, "consent_type": consent_type},
            )
        )
        log.info(f"Consent granted: user={user_id} type={consent_type} id={record.id}")
        return record

    async def withdraw(self, record_id: str, actor: Optional[Actor] = None) -> ConsentRecord:
        """
        Withdraw consent by ID (soft: sets withdrawn, never deletes).

        Withdrawing an already withdrawn record changes nothing and is not audited again.

        Raises:
            ObjectNotFoundError: if no record has this ID
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(ConsentRecord).where(ConsentRecord.id == record_id))
                record = result.scalar_one_or_none()
                if record is None:
                    raise ObjectNotFoundError(f"Consent not found: {record_id}")
                if record.withdrawn:
                    log.info(f"Consent {record_id} already withdrawn")
                    return record
                record.withdrawn = True
                record.withdrawn_at = utcnow()
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to withdraw consent: {e}") from e

        await self.audit.append(
            AuditEvent(
                action="consent:withdraw",
                actor_id=actor.identity if actor else record.user_id,
                actor_role=actor.role.value if actor else None,
                resource="consent_records",
                resource_id=record.id,
                details={"user_id": record.user_id, "consent_type": record.consent_type},
            )
        )
        log.info(f"Consent withdrawn: user={record.user_id} type={record.consent_type} id={record.id}")
        return record

    async def get(self, record_id: str) -> Optional[ConsentRecord]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(ConsentRecord).where(ConsentRecord.id == record_id))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read consent: {e}") from e

    async def history(self, user_id: str, consent_type: Optional[str] = None) -> List[ConsentRecord]:
        """All records for a user, withdrawn ones included, oldest first."""
        stmt = select(ConsentRecord).where(ConsentRecord.user_id == user_id)
        if consent_type:
            stmt = stmt.where(ConsentRecord.consent_type == normalize_consent_type(consent_type))
        stmt = stmt.order_by(ConsentRecord.granted_at, ConsentRecord.id)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read consents: {e}") from e

    async def has_current_consent(self, user_id: str, consent_type: str) -> bool:
        """True iff a non-withdrawn record exists for (user, type)."""
        stmt = (
            select(ConsentRecord.id)
            .where(
                ConsentRecord.user_id == user_id,
                ConsentRecord.consent_type == normalize_consent_type(consent_type),
                ConsentRecord.withdrawn.is_(False),
            )
            .limit(1)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return result.first() is not None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to check consent: {e}") from e

    def reveal_granted_by(self, record: ConsentRecord) -> Optional[str]:
        """Decrypt the name of the person who granted the consent."""
        if not record.granted_by:
            return None
        return self.encryption.decrypt(record.granted_by)


class ConsentGate:
    """Guard requiring current consent before an action class runs."""

    def __init__(self, consents: ConsentService, audit: ImmutableAuditLog):
        self.consents = consents
        self.audit = audit

    async def require_consent(
        self,
        actor: Optional[Actor],
        consent_type: str,
        *,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Decision:
        """
        Allow only when the actor holds current consent of this type.

        The decision is audited either way.
        """
        consent_type = normalize_consent_type(consent_type)
        label = f"consent:{consent_type}"
        if actor is None:
            decision = Decision.deny(DenyReason.UNAUTHENTICATED, label)
        elif await self.consents.has_current_consent(actor.identity, consent_type):
            decision = Decision.allow(label)
        else:
            decision = Decision.deny(DenyReason.CONSENT_REQUIRED, label, detail=f"Consent required: {consent_type}")

        await self.audit.decision(
            action=label,
            allowed=decision.allowed,
            actor_id=actor.identity if actor else None,
            actor_role=actor.role.value if actor else None,
            reason=decision.reason.value if decision.reason else None,
            client_ip=client_ip,
            user_agent=user_agent,
        )
        if not decision.allowed:
            log.warning(f"Consent check failed: {actor.identity if actor else 'anonymous'} lacks {consent_type}")
        return decision
