"""
Audit entry model.

Rows are append-only: triggers created together with the table reject
UPDATE and DELETE, so immutability does not rely on application code.
"""
from datetime import datetime
from typing import Any, Dict
from sqlalchemy import DDL, JSON, Boolean, DateTime, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, generate_ulid, utcnow


class AuditEntry(Base):
    """
    One audited event. Never updated or deleted.

    `seq` orders the chain; `previous_hash` links each entry to the one
    before it and `signature` is an HMAC over `hash`.
    """
    __tablename__ = "audit_entries"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(26), unique=True, nullable=False, default=generate_ulid)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    # Actor
    actor_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    actor_role: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Action details
    action: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    resource: Mapped[str | None] = mapped_column(String(500), nullable=True, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    decision: Mapped[str] = mapped_column(String(10), nullable=False, default="none", index=True)
    reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Context
    client_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Compliance
    classification: Mapped[str] = mapped_column(String(20), nullable=False, default="confidential")
    retention_years: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    legal_hold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Integrity
    previous_hash: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    signature: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEntry(seq={self.seq}, actor={self.actor_id}, action={self.action}, decision={self.decision})>"


# ============================================================================
# Append-only enforcement
# ============================================================================

for _operation in ("UPDATE", "DELETE"):
    event.listen(
        AuditEntry.__table__,
        "after_create",
        DDL(
            f"CREATE TRIGGER audit_entries_no_{_operation.lower()} "
            f"BEFORE {_operation} ON audit_entries "
            "BEGIN SELECT RAISE(ABORT, 'audit_entries is append-only'); END"
        ).execute_if(dialect="sqlite"),
    )

event.listen(
    AuditEntry.__table__,
    "after_create",
    DDL(
        "CREATE OR REPLACE FUNCTION audit_entries_append_only() RETURNS trigger AS $$ "
        "BEGIN RAISE EXCEPTION 'audit_entries is append-only'; END; $$ LANGUAGE plpgsql"
    ).execute_if(dialect="postgresql"),
)
event.listen(
    AuditEntry.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER audit_entries_no_mutation BEFORE UPDATE OR DELETE ON audit_entries "
        "FOR EACH ROW EXECUTE FUNCTION audit_entries_append_only()"
    ).execute_if(dialect="postgresql"),
)
