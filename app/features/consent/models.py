"""
Consent record model.

Records are never deleted: withdrawal sets `withdrawn` so the full grant
and withdrawal history stays available for audit.
"""
from datetime import datetime
from sqlalchemy import DDL, Boolean, DateTime, Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, generate_ulid, utcnow


class ConsentRecord(Base):
    """A user's consent of one type, granted at a point in time."""
    __tablename__ = "consent_records"
    __table_args__ = (
        Index("ix_consent_records_user_type", "user_id", "consent_type"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    consent_type: Mapped[str] = mapped_column(String(100), nullable=False)  # e.g. "gdpr_data_processing"
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    withdrawn: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    withdrawn_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Encrypted - name of person granting consent
    granted_by: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ConsentRecord(id={self.id}, user_id={self.user_id}, type={self.consent_type}, withdrawn={self.withdrawn})>"


event.listen(
    ConsentRecord.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER consent_records_no_delete BEFORE DELETE ON consent_records "
        "BEGIN SELECT RAISE(ABORT, 'consent_records are never deleted'); END"
    ).execute_if(dialect="sqlite"),
)
event.listen(
    ConsentRecord.__table__,
    "after_create",
    DDL(
        "CREATE OR REPLACE FUNCTION consent_records_no_delete() RETURNS trigger AS $$ "
        "BEGIN RAISE EXCEPTION 'consent_records are never deleted'; END; $$ LANGUAGE plpgsql"
    ).execute_if(dialect="postgresql"),
)
event.listen(
    ConsentRecord.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER consent_records_no_delete BEFORE DELETE ON consent_records "
        "FOR EACH ROW EXECUTE FUNCTION consent_records_no_delete()"
    ).execute_if(dialect="postgresql"),
)
