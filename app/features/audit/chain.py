"""
Hash chaining and signing for audit entries.
"""
import hashlib
import hmac
import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from app.features.audit.models import AuditEntry


HASHED_FIELDS = (
    "id",
    "timestamp",
    "actor_id",
    "actor_role",
    "action",
    "resource",
    "resource_id",
    "decision",
    "reason",
    "details",
    "client_ip",
    "user_agent",
    "classification",
    "retention_years",
    "legal_hold",
    "previous_hash",
)

_SENSITIVE_KEY = re.compile(r"ssn|social|mrn|dob|phone|email|address", re.IGNORECASE)
REDACTED = "[REDACTED]"


def scrub_sensitive_data(value: Any) -> Any:
    """Redact PHI/PII values by key name, recursively."""
    if isinstance(value, dict):
        return {
            key: REDACTED if _SENSITIVE_KEY.search(str(key)) else scrub_sensitive_data(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [scrub_sensitive_data(item) for item in value]
    return value


def canonical_timestamp(value: datetime) -> str:
    # SQLite hands back naive datetimes; they were written as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def canonical_payload(entry: AuditEntry) -> bytes:
    """Deterministic serialization of the hashed fields."""
    data = {}
    for field in HASHED_FIELDS:
        value = getattr(entry, field)
        if field == "timestamp":
            value = canonical_timestamp(value)
        data[field] = value
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def compute_hash(entry: AuditEntry) -> str:
    return hashlib.sha256(canonical_payload(entry)).hexdigest()


def sign(entry_hash: str, signing_key: bytes) -> str:
    return hmac.new(signing_key, entry_hash.encode("ascii"), hashlib.sha256).hexdigest()


def seal(entry: AuditEntry, previous_hash: str, signing_key: bytes) -> AuditEntry:
    """Link an entry to its predecessor and fill in hash and signature."""
    entry.previous_hash = previous_hash
    entry.hash = compute_hash(entry)
    entry.signature = sign(entry.hash, signing_key)
    return entry


@dataclass(frozen=True)
class ChainVerification:
    """Result of a chain check. `broken_at` is the seq of the first bad entry."""
    valid: bool
    checked: int
    broken_at: Optional[int] = None


def verify_entries(
    entries: Iterable[AuditEntry],
    signing_key: bytes,
    previous_hash: str = "",
) -> ChainVerification:
    """
    Verify a run of entries in seq order.

    Args:
        entries: entries ordered by seq
        signing_key: HMAC key used when the entries were sealed
        previous_hash: hash of the entry just before the run ("" at genesis)
    """
    checked = 0
    expected_previous = previous_hash
    for entry in entries:
        checked += 1
        if entry.previous_hash != expected_previous:
            return ChainVerification(valid=False, checked=checked, broken_at=entry.seq)
        if compute_hash(entry) != entry.hash:
            return ChainVerification(valid=False, checked=checked, broken_at=entry.seq)
        if not hmac.compare_digest(sign(entry.hash, signing_key), entry.signature or ""):
            return ChainVerification(valid=False, checked=checked, broken_at=entry.seq)
        expected_previous = entry.hash
    return ChainVerification(valid=True, checked=checked)
