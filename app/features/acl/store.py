"""
Object metadata storage for ACL policies.

The blob bytes live in external object storage; this table mirrors the
object's metadata, where the ACL policy is kept under ACL_POLICY_METADATA_KEY.
"""
import json
from typing import Any, Dict, Optional
from pydantic import ValidationError
from sqlalchemy import JSON, String, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin
from app.core.errors import ObjectNotFoundError, StorageError
from app.features.acl.models import ACL_POLICY_METADATA_KEY, AclPolicy
from app.utils import get_logger


log = get_logger(__name__)


class StoredObject(Base, TimestampMixin):
    """Metadata record for an object held in the blob store."""
    __tablename__ = "stored_objects"

    object_ref: Mapped[str] = mapped_column(String(500), primary_key=True)
    bucket: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    object_metadata: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<StoredObject(object_ref={self.object_ref!r})>"


class PolicyStore:
    """
    Read and write ACL policies on stored objects.

    Database failures surface as StorageError.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def register_object(
        self,
        object_ref: str,
        policy: Optional[AclPolicy] = None,
        bucket: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> StoredObject:
        """Record a new object, optionally with its initial policy."""
        metadata: Dict[str, Any] = {}
        if policy is not None:
            metadata[ACL_POLICY_METADATA_KEY] = policy.model_dump_json(by_alias=True)
        stored = StoredObject(
            object_ref=object_ref,
            bucket=bucket,
            content_type=content_type,
            object_metadata=metadata,
        )
        try:
            async with self.session_factory() as session:
                session.add(stored)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to register object {object_ref}: {e}") from e
        log.info(f"Registered object {object_ref}")
        return stored

    async def get_object(self, object_ref: str) -> Optional[StoredObject]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(StoredObject).where(StoredObject.object_ref == object_ref)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read object {object_ref}: {e}") from e

    async def get_policy(self, object_ref: str) -> Optional[AclPolicy]:
        """
        Retrieve the ACL policy from object metadata.

        Returns None for unknown objects, objects without a policy, and
        unreadable policies, so callers fail closed.
        """
        stored = await self.get_object(object_ref)
        if stored is None:
            return None
        raw = (stored.object_metadata or {}).get(ACL_POLICY_METADATA_KEY)
        if not raw:
            return None
        try:
            return AclPolicy.model_validate(json.loads(raw) if isinstance(raw, str) else raw)
        except (ValueError, ValidationError) as e:
            log.warning(f"Unreadable ACL policy on {object_ref}, treating as absent: {e}")
            return None

    async def set_policy(self, object_ref: str, policy: AclPolicy) -> None:
        """
        Persist an ACL policy in object metadata.

        Raises:
            ObjectNotFoundError: if the object is not registered
            StorageError: on database failure
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(StoredObject).where(StoredObject.object_ref == object_ref)
                )
                stored = result.scalar_one_or_none()
                if stored is None:
                    raise ObjectNotFoundError(f"Object not found: {object_ref}")
                # Reassign so the JSON column is flagged dirty
                metadata = dict(stored.object_metadata or {})
                metadata[ACL_POLICY_METADATA_KEY] = policy.model_dump_json(by_alias=True)
                stored.object_metadata = metadata
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write policy for {object_ref}: {e}") from e
        log.info(f"ACL policy updated on {object_ref} (owner={policy.owner}, visibility={policy.visibility.value})")
