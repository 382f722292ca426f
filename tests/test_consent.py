"""
Tests for consent records and the consent gate.
"""
import pytest
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import DenyReason, ObjectNotFoundError
from app.features.audit.schemas import AuditFilter
from app.features.consent.models import ConsentRecord


GDPR = "gdpr_data_processing"


async def actions(audit):
    return [entry.action async for entry in audit.query(AuditFilter())]


class TestConsentService:
    @pytest.mark.asyncio
    async def test_grant_withdraw_regrant(self, access):
        consents = access.consents
        assert not await consents.has_current_consent("donor-1", GDPR)

        first = await consents.grant("donor-1", GDPR)
        assert await consents.has_current_consent("donor-1", GDPR)

        await consents.withdraw(first.id)
        assert not await consents.has_current_consent("donor-1", GDPR)

        await consents.grant("donor-1", GDPR)
        assert await consents.has_current_consent("donor-1", GDPR)

        history = await consents.history("donor-1", GDPR)
        assert [record.withdrawn for record in history] == [True, False]
        assert history[0].withdrawn_at is not None
        assert await actions(access.audit) == ["consent:grant", "consent:withdraw", "consent:grant"]

    @pytest.mark.asyncio
    async def test_consent_is_per_type_and_user(self, access):
        await access.consents.grant("donor-1", GDPR)
        assert not await access.consents.has_current_consent("donor-1", "research_use")
        assert not await access.consents.has_current_consent("donor-2", GDPR)

    @pytest.mark.asyncio
    async def test_withdraw_is_idempotent(self, access):
        record = await access.consents.grant("donor-1", GDPR)
        await access.consents.withdraw(record.id)
        again = await access.consents.withdraw(record.id)
        assert again.withdrawn
        assert await actions(access.audit) == ["consent:grant", "consent:withdraw"]

    @pytest.mark.asyncio
    async def test_withdraw_unknown(self, access):
        with pytest.raises(ObjectNotFoundError):
            await access.consents.withdraw("01HZZZZZZZZZZZZZZZZZZZZZZZ")

    @pytest.mark.asyncio
    async def test_granted_by_encrypted_at_rest(self, access, surgeon):
        record = await access.consents.grant("donor-1", GDPR, granted_by="Dr. Jane Roe", actor=surgeon)
        stored = await access.consents.get(record.id)
        assert stored.granted_by != "Dr. Jane Roe"
        assert access.consents.reveal_granted_by(stored) == "Dr. Jane Roe"

    @pytest.mark.asyncio
    async def test_records_cannot_be_deleted(self, access):
        await access.consents.grant("donor-1", GDPR)
        async with access.session_factory() as session:
            with pytest.raises(SQLAlchemyError):
                await session.execute(delete(ConsentRecord))


class TestConsentGate:
    @pytest.mark.asyncio
    async def test_unauthenticated(self, access):
        decision = await access.consent_gate.require_consent(None, GDPR)
        assert not decision.allowed
        assert decision.reason == DenyReason.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_missing_consent(self, access, surgeon):
        decision = await access.consent_gate.require_consent(surgeon, GDPR)
        assert decision.reason == DenyReason.CONSENT_REQUIRED

    @pytest.mark.asyncio
    async def test_withdrawn_consent(self, access, surgeon):
        record = await access.consents.grant(surgeon.identity, GDPR)
        await access.consents.withdraw(record.id)
        decision = await access.consent_gate.require_consent(surgeon, GDPR)
        assert decision.reason == DenyReason.CONSENT_REQUIRED

    @pytest.mark.asyncio
    async def test_consent_type_is_case_insensitive(self, access, surgeon):
        await access.consents.grant(surgeon.identity, "research_use")
        decision = await access.consent_gate.require_consent(surgeon, " Research_Use ")
        assert decision.allowed

    @pytest.mark.asyncio
    async def test_current_consent_allows_and_every_outcome_is_audited(self, access, surgeon):
        await access.consent_gate.require_consent(surgeon, GDPR)
        await access.consents.grant(surgeon.identity, GDPR)
        decision = await access.consent_gate.require_consent(surgeon, GDPR)
        assert decision.allowed

        gate_entries = [
            entry async for entry in access.audit.query(AuditFilter(action=f"consent:{GDPR}"))
        ]
        assert [entry.decision for entry in gate_entries] == ["deny", "allow"]
