"""
Error taxonomy for the access-control and audit core.

Authorization failures are expected and user-facing; they travel as a
Deny decision and only become exceptions at the HTTP boundary.
Configuration, integrity and storage errors are operator errors and
always propagate.
"""
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.features.permissions.schemas import Decision


class DenyReason(str, Enum):
    """Why an access decision was negative."""
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    CONSENT_REQUIRED = "consent_required"

    @property
    def status_code(self) -> int:
        return 401 if self is DenyReason.UNAUTHENTICATED else 403

    @property
    def code(self) -> str:
        return {
            DenyReason.UNAUTHENTICATED: "UNAUTHORIZED",
            DenyReason.FORBIDDEN: "FORBIDDEN",
            DenyReason.CONSENT_REQUIRED: "CONSENT_REQUIRED",
        }[self]

    @property
    def message(self) -> str:
        return {
            DenyReason.UNAUTHENTICATED: "Authentication required",
            DenyReason.FORBIDDEN: "Insufficient permissions",
            DenyReason.CONSENT_REQUIRED: "Consent required",
        }[self]


class AccessCoreError(Exception):
    """Base class for all access core errors."""


class ConfigurationError(AccessCoreError):
    """Unknown role or missing required configuration."""


class IntegrityError(AccessCoreError):
    """Ciphertext failed authentication or is malformed."""


class StorageError(AccessCoreError):
    """The audit store or the object metadata store is unavailable."""


class ObjectNotFoundError(StorageError):
    """The referenced stored object or record does not exist."""


class AccessDeniedError(AccessCoreError):
    """Raised at the HTTP boundary when a decision is Deny."""

    def __init__(self, decision: "Decision"):
        self.decision = decision
        super().__init__(f"{decision.reason.value if decision.reason else 'denied'}: {decision.permission}")

    @property
    def reason(self) -> DenyReason:
        return self.decision.reason or DenyReason.FORBIDDEN
