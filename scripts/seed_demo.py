"""
Seed script to register demo objects and print session tokens.

Run this script against a development database to create:
- A few stored objects with representative ACL policies
- One session token per demo actor, for calling the API by hand

Usage:
    uv run python -m scripts.seed_demo
"""
import asyncio

from app.core import config
from app.core.context import build_context_from_settings
from app.features.acl.models import (
    AclPolicy,
    AclRule,
    EmailDomainGroup,
    GroupMemberGroup,
    ObjectPermission,
    Visibility,
)
from app.features.permissions.models import Role
from app.features.permissions.schemas import Actor
from app.features.users.auth import create_session_token
from app.utils import get_logger


log = get_logger(__name__)


DEMO_ACTORS = [
    Actor(identity="admin-1", role=Role.ADMIN, email="admin@aorta.example"),
    Actor(identity="opo-coordinator-1", role=Role.OPO_COORDINATOR, email="opo@aorta.example"),
    Actor(identity="qa-team-lead", role=Role.QUALITY_STAFF, email="qa@aorta.example"),
    Actor(identity="surgeon-1", role=Role.SURGEON, email="surgeon@hospital.example"),
    Actor(identity="courier-1", role=Role.COURIER),
]

DEMO_OBJECTS = [
    (
        "cases/demo-case/consent-form.pdf",
        AclPolicy(
            owner="opo-coordinator-1",
            visibility=Visibility.PRIVATE,
            acl_rules=[AclRule(group=GroupMemberGroup(id="qa-team"), permission=ObjectPermission.WRITE)],
        ),
    ),
    (
        "cases/demo-case/lab-results.pdf",
        AclPolicy(
            owner="opo-coordinator-1",
            acl_rules=[AclRule(group=EmailDomainGroup(id="hospital.example"), permission=ObjectPermission.READ)],
        ),
    ),
    ("public/protocol-summary.pdf", AclPolicy(owner="admin-1", visibility=Visibility.PUBLIC)),
]


async def seed_objects(access) -> None:
    """Register demo objects that are not registered yet."""
    for object_ref, policy in DEMO_OBJECTS:
        if await access.policies.get_object(object_ref) is not None:
            log.info(f"Object {object_ref} already exists, skipping")
            continue
        await access.policies.register_object(object_ref, policy=policy, content_type="application/pdf")
        log.info(f"Created object: {object_ref} (owner={policy.owner}, visibility={policy.visibility.value})")


async def main():
    """Main function to seed demo data."""
    log.info("Starting demo seeding...")
    access = build_context_from_settings()
    try:
        log.info("Initializing database tables...")
        await access.init_db()
        await seed_objects(access)

        log.info("Demo seeding completed successfully!")
        log.info("")
        log.info("Session tokens:")
        for actor in DEMO_ACTORS:
            token = create_session_token(actor, access.session_secret, config.SESSION_TOKEN_EXPIRY_HOURS)
            log.info(f"  - {actor.identity} ({actor.role.value}): {token}")
    except Exception as e:
        log.error(f"Error seeding demo data: {e}", exc_info=True)
        raise
    finally:
        await access.close()


if __name__ == "__main__":
    asyncio.run(main())
