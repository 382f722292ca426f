"""
Tests for the hash-chained audit log.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import delete, text, update
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import StorageError
from app.features.audit.chain import REDACTED, scrub_sensitive_data, verify_entries
from app.features.audit.models import AuditEntry
from app.features.audit.schemas import AuditDecision, AuditEvent, AuditFilter, Classification
from app.features.audit.service import ImmutableAuditLog
from tests.conftest import TEST_SIGNING_KEY


async def append_many(audit, count, **fields):
    entries = []
    for i in range(count):
        entries.append(await audit.append(AuditEvent(action=f"test:{i}", actor_id=f"user-{i % 3}", **fields)))
    return entries


async def read_all(audit, filters=None):
    return [entry async for entry in audit.query(filters)]


class TestAppend:
    @pytest.mark.asyncio
    async def test_first_entry_starts_chain(self, access):
        entry = await access.audit.append(AuditEvent(action="test:first"))
        assert entry.seq == 1
        assert entry.previous_hash == ""
        assert len(entry.hash) == 64

    @pytest.mark.asyncio
    async def test_entries_link_to_predecessor(self, access):
        first, second = await append_many(access.audit, 2)
        assert second.previous_hash == first.hash

    @pytest.mark.asyncio
    async def test_sensitive_details_scrubbed(self, access):
        entry = await access.audit.append(
            AuditEvent(action="test:phi", details={"patient_mrn": "123", "nested": {"email": "a@b.c"}, "ok": 1})
        )
        stored = (await read_all(access.audit))[0]
        assert stored.details == {"patient_mrn": REDACTED, "nested": {"email": REDACTED}, "ok": 1}
        assert stored.hash == entry.hash

    @pytest.mark.asyncio
    async def test_concurrent_appends_form_one_chain(self, access):
        await asyncio.gather(
            *(access.audit.append(AuditEvent(action=f"test:{i}")) for i in range(25))
        )
        outcome = await access.audit.verify_chain()
        assert outcome.valid
        assert outcome.checked == 25

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self, access):
        async with access.engine.begin() as conn:
            await conn.execute(text("DROP TABLE audit_entries"))
        with pytest.raises(StorageError):
            await access.audit.append(AuditEvent(action="test:lost"))

    @pytest.mark.asyncio
    async def test_emergency_access(self, access):
        entry = await access.audit.log_emergency_access("surgeon-bob", "/cases/42", "donor arrived early")
        assert entry.classification == Classification.RESTRICTED.value
        assert entry.retention_years == 10
        assert entry.legal_hold is True

    @pytest.mark.asyncio
    async def test_long_resource_truncated(self, access):
        entry = await access.audit.append(AuditEvent(action="test:long", resource="r" * 800))
        assert entry.resource == "r" * 500
        assert (await access.audit.verify_chain()).valid


class TestStorageImmutability:
    @pytest.mark.asyncio
    async def test_update_rejected(self, access):
        await append_many(access.audit, 1)
        async with access.session_factory() as session:
            with pytest.raises(SQLAlchemyError):
                await session.execute(update(AuditEntry).values(action="rewritten"))

    @pytest.mark.asyncio
    async def test_delete_rejected(self, access):
        await append_many(access.audit, 1)
        async with access.session_factory() as session:
            with pytest.raises(SQLAlchemyError):
                await session.execute(delete(AuditEntry))


class TestVerifyChain:
    @pytest.mark.asyncio
    async def test_intact_chain(self, access):
        await append_many(access.audit, 10)
        outcome = await access.audit.verify_chain()
        assert outcome.valid
        assert outcome.checked == 10
        assert outcome.broken_at is None

    @pytest.mark.asyncio
    async def test_empty_chain_is_valid(self, access):
        outcome = await access.audit.verify_chain()
        assert outcome.valid
        assert outcome.checked == 0

    @pytest.mark.asyncio
    async def test_stored_tampering_detected(self, access):
        await append_many(access.audit, 6)
        async with access.session_factory() as session:
            await session.execute(text("DROP TRIGGER audit_entries_no_update"))
            await session.execute(update(AuditEntry).where(AuditEntry.seq == 4).values(actor_id="mallory"))
            await session.commit()

        outcome = await access.audit.verify_chain()
        assert not outcome.valid
        assert outcome.broken_at == 4

    @pytest.mark.asyncio
    async def test_range_includes_link_to_prior_entry(self, access):
        await append_many(access.audit, 6)
        outcome = await access.audit.verify_chain(start_seq=3, end_seq=5)
        assert outcome.valid
        assert outcome.checked == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", range(5))
    async def test_in_memory_mutation_reports_first_broken_index(self, access, target):
        await append_many(access.audit, 5)
        entries = await read_all(access.audit)
        entries[target].action = "tampered"

        outcome = verify_entries(entries, TEST_SIGNING_KEY.encode("utf-8"))
        assert not outcome.valid
        assert outcome.broken_at == entries[target].seq

    @pytest.mark.asyncio
    async def test_wrong_signing_key_detected(self, access):
        await append_many(access.audit, 3)
        other = ImmutableAuditLog(access.session_factory, "some-other-key")
        outcome = await other.verify_chain()
        assert not outcome.valid
        assert outcome.broken_at == 1


class TestQuery:
    @pytest.mark.asyncio
    async def test_filters(self, access):
        await append_many(access.audit, 9)
        await access.audit.decision(action="authorize:view_documents", allowed=False, actor_id="user-1")

        by_actor = await read_all(access.audit, AuditFilter(actor_id="user-1"))
        assert len(by_actor) == 4
        denied = await read_all(access.audit, AuditFilter(decision=AuditDecision.DENY))
        assert [e.action for e in denied] == ["authorize:view_documents"]
        limited = await read_all(access.audit, AuditFilter(limit=2))
        assert [e.seq for e in limited] == [1, 2]

    @pytest.mark.asyncio
    async def test_time_window(self, access):
        await append_many(access.audit, 3)
        now = datetime.now(timezone.utc)
        assert len(await read_all(access.audit, AuditFilter(start=now - timedelta(minutes=5)))) == 3
        assert await read_all(access.audit, AuditFilter(start=now + timedelta(minutes=5))) == []
        window = await access.audit.export(now - timedelta(minutes=5), now + timedelta(minutes=5))
        assert len(window) == 3

    @pytest.mark.asyncio
    async def test_audited_read(self, access, quality_staff):
        await append_many(access.audit, 2)
        entries = [e async for e in access.audit.query(AuditFilter(), reader=quality_staff)]
        assert entries[-1].action == "audit:read"
        assert entries[-1].actor_id == quality_staff.identity

    @pytest.mark.asyncio
    async def test_reads_across_batches(self, access, monkeypatch):
        monkeypatch.setattr("app.features.audit.service.READ_BATCH_SIZE", 3)
        await append_many(access.audit, 8)
        assert [e.seq for e in await read_all(access.audit)] == list(range(1, 9))
        outcome = await access.audit.verify_chain()
        assert outcome.valid and outcome.checked == 8


def test_scrub_leaves_other_values():
    assert scrub_sensitive_data({"Phone_Number": "555", "items": [{"dob": "2000"}], "count": 2}) == {
        "Phone_Number": REDACTED,
        "items": [{"dob": REDACTED}],
        "count": 2,
    }
