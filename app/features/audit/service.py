"""
Immutable audit log service.

All appends go through one asyncio lock so the hash chain stays strictly
ordered. An append is shielded from cancellation: once started it either
commits completely or fails with StorageError, never half-written.
"""
import asyncio
import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING, AsyncIterator, Optional

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database.base import generate_ulid, utcnow
from app.core.errors import StorageError
from app.features.audit.chain import ChainVerification, scrub_sensitive_data, seal, verify_entries
from app.features.audit.models import AuditEntry
from app.features.audit.schemas import AuditDecision, AuditEvent, AuditFilter, Classification
from app.utils import get_logger

if TYPE_CHECKING:
    from app.features.permissions.schemas import Actor


log = get_logger(__name__)

READ_BATCH_SIZE = 500


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ImmutableAuditLog:
    """
    Append-only, hash-chained audit log backed by the audit_entries table.

    Usage:
        audit = ImmutableAuditLog(session_factory, signing_key="...")
        await audit.append(AuditEvent(action="authorize:view_documents", actor_id="u1"))
        async for entry in audit.query(AuditFilter(actor_id="u1")):
            ...
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], signing_key: str):
        self.session_factory = session_factory
        self._signing_key = signing_key.encode("utf-8")
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def append(self, event: AuditEvent) -> AuditEntry:
        """
        Append an event to the chain and return the stored entry.

        Raises:
            StorageError: if the entry could not be made durable
        """
        return await asyncio.shield(self._append(event))

    async def _append(self, event: AuditEvent) -> AuditEntry:
        entry = self._build_entry(event)
        async with self._lock:
            try:
                async with self.session_factory() as session:
                    previous_hash = await self._head_hash(session)
                    seal(entry, previous_hash, self._signing_key)
                    session.add(entry)
                    await session.commit()
            except SQLAlchemyError as e:
                log.error(f"Audit append failed for action={event.action}: {e}")
                raise StorageError(f"Audit store unavailable: {e}") from e

        log.info(
            f"Audit: actor={entry.actor_id} role={entry.actor_role} action={entry.action} "
            f"resource={entry.resource} decision={entry.decision}"
        )
        return entry

    def _build_entry(self, event: AuditEvent) -> AuditEntry:
        # Round-trip details through JSON so the hashed form equals the stored form
        details = None
        if event.details is not None:
            details = json.loads(json.dumps(scrub_sensitive_data(event.details), default=str))
        return AuditEntry(
            id=generate_ulid(),
            timestamp=utcnow(),
            actor_id=event.actor_id,
            actor_role=event.actor_role,
            action=event.action,
            resource=event.resource[:500] if event.resource else None,
            resource_id=event.resource_id,
            decision=event.decision.value,
            reason=event.reason,
            details=details,
            client_ip=event.client_ip,
            user_agent=event.user_agent[:255] if event.user_agent else None,
            classification=event.classification.value,
            retention_years=event.retention_years,
            legal_hold=event.legal_hold,
        )

    async def _head_hash(self, session: AsyncSession) -> str:
        result = await session.execute(
            select(AuditEntry.hash).order_by(AuditEntry.seq.desc()).limit(1)
        )
        return result.scalar_one_or_none() or ""

    async def log_emergency_access(self, actor_id: str, path: str, reason: Optional[str]) -> AuditEntry:
        """Record break-glass access with restricted classification and legal hold."""
        return await self.append(
            AuditEvent(
                action="emergency_access",
                actor_id=actor_id,
                actor_role="emergency",
                resource=path,
                details={"reason": reason or "No justification"},
                classification=Classification.RESTRICTED,
                retention_years=10,
                legal_hold=True,
            )
        )

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _filtered(self, filters: AuditFilter) -> Select:
        stmt = select(AuditEntry)
        if filters.actor_id:
            stmt = stmt.where(AuditEntry.actor_id == filters.actor_id)
        if filters.resource:
            stmt = stmt.where(AuditEntry.resource == filters.resource)
        if filters.action:
            stmt = stmt.where(AuditEntry.action == filters.action)
        if filters.decision:
            stmt = stmt.where(AuditEntry.decision == filters.decision.value)
        if filters.start:
            stmt = stmt.where(AuditEntry.timestamp >= _as_utc(filters.start))
        if filters.end:
            stmt = stmt.where(AuditEntry.timestamp <= _as_utc(filters.end))
        return stmt

    async def _batches(self, stmt: Select, after_seq: int = 0, until_seq: Optional[int] = None):
        last_seq = after_seq
        while True:
            page = stmt.where(AuditEntry.seq > last_seq)
            if until_seq is not None:
                page = page.where(AuditEntry.seq <= until_seq)
            page = page.order_by(AuditEntry.seq).limit(READ_BATCH_SIZE)
            try:
                async with self.session_factory() as session:
                    result = await session.execute(page)
                    rows = list(result.scalars().all())
            except SQLAlchemyError as e:
                raise StorageError(f"Audit store unavailable: {e}") from e
            if not rows:
                return
            yield rows
            if len(rows) < READ_BATCH_SIZE:
                return
            last_seq = rows[-1].seq

    async def query(
        self,
        filters: Optional[AuditFilter] = None,
        reader: Optional["Actor"] = None,
    ) -> AsyncIterator[AuditEntry]:
        """
        Lazily read entries in chain order.

        When `reader` is given the read is itself audited before the
        first entry is produced.
        """
        filters = filters or AuditFilter()
        if reader is not None:
            await self.append(
                AuditEvent(
                    action="audit:read",
                    actor_id=reader.identity,
                    actor_role=reader.role.value,
                    resource="audit_entries",
                    details=filters.model_dump(mode="json", exclude_none=True),
                )
            )

        produced = 0
        async for rows in self._batches(self._filtered(filters)):
            for entry in rows:
                yield entry
                produced += 1
                if filters.limit and produced >= filters.limit:
                    return

    async def export(self, start: datetime, end: datetime, reader: Optional["Actor"] = None) -> list[AuditEntry]:
        """All entries within a time window."""
        return [entry async for entry in self.query(AuditFilter(start=start, end=end), reader=reader)]

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify_chain(
        self,
        start_seq: Optional[int] = None,
        end_seq: Optional[int] = None,
    ) -> ChainVerification:
        """
        Recompute hashes and links for entries with start_seq <= seq <= end_seq.

        Returns:
            ChainVerification with the seq of the first broken entry, if any
        """
        after_seq = (start_seq - 1) if start_seq and start_seq > 1 else 0
        previous_hash = ""
        if after_seq:
            try:
                async with self.session_factory() as session:
                    result = await session.execute(
                        select(AuditEntry.hash)
                        .where(AuditEntry.seq <= after_seq)
                        .order_by(AuditEntry.seq.desc())
                        .limit(1)
                    )
                    previous_hash = result.scalar_one_or_none() or ""
            except SQLAlchemyError as e:
                raise StorageError(f"Audit store unavailable: {e}") from e

        checked = 0
        async for rows in self._batches(select(AuditEntry), after_seq=after_seq, until_seq=end_seq):
            outcome = verify_entries(rows, self._signing_key, previous_hash)
            checked += outcome.checked
            if not outcome.valid:
                log.error(f"Audit chain broken at seq={outcome.broken_at}")
                return ChainVerification(valid=False, checked=checked, broken_at=outcome.broken_at)
            previous_hash = rows[-1].hash

        return ChainVerification(valid=True, checked=checked)

    async def decision(
        self,
        *,
        action: str,
        allowed: bool,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
        resource: Optional[str] = None,
        reason: Optional[str] = None,
        details: Optional[dict] = None,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditEntry:
        """Shorthand for appending an access decision."""
        return await self.append(
            AuditEvent(
                action=action,
                actor_id=actor_id,
                actor_role=actor_role,
                resource=resource,
                decision=AuditDecision.ALLOW if allowed else AuditDecision.DENY,
                reason=reason,
                details=details,
                client_ip=client_ip,
                user_agent=user_agent,
            )
        )
