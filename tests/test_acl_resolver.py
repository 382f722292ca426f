"""
Tests for object ACL evaluation and group membership.
"""
import pytest

from app.features.acl.groups import PlaceholderDirectory, StaticDirectory
from app.features.acl.models import (
    AccessGroupType,
    AclPolicy,
    AclRule,
    EmailDomainGroup,
    GroupMemberGroup,
    ObjectPermission,
    SubscriberGroup,
    UserListGroup,
    Visibility,
    is_permission_allowed,
)
from app.features.acl.resolver import ObjectAclResolver


READ = ObjectPermission.READ
WRITE = ObjectPermission.WRITE


class FailingDirectory:
    async def is_member(self, group, identity):
        raise ConnectionError("directory unreachable")


@pytest.fixture
def resolver():
    return ObjectAclResolver(PlaceholderDirectory())


def rule(group, permission):
    return AclRule(group=group, permission=permission)


class TestPermissionCompatibility:
    def test_write_satisfies_read(self):
        assert is_permission_allowed(READ, WRITE)

    def test_read_does_not_satisfy_write(self):
        assert not is_permission_allowed(WRITE, READ)

    def test_same_permission(self):
        assert is_permission_allowed(READ, READ)
        assert is_permission_allowed(WRITE, WRITE)


class TestCanAccess:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("identity", [None, "u1", "owner", ""])
    @pytest.mark.parametrize("requested", [READ, WRITE])
    async def test_no_policy_denies(self, resolver, identity, requested):
        assert await resolver.can_access(identity, None, requested) is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("requested", [READ, WRITE])
    async def test_owner_always_allowed(self, resolver, requested):
        policy = AclPolicy(
            owner="u1",
            acl_rules=[rule(UserListGroup(id="someone-else"), READ)],
        )
        assert await resolver.can_access("u1", policy, requested) is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("identity", [None, "stranger"])
    async def test_public_read(self, resolver, identity):
        policy = AclPolicy(owner="u1", visibility=Visibility.PUBLIC)
        assert await resolver.can_access(identity, policy, READ) is True

    @pytest.mark.asyncio
    async def test_public_write_denied_without_rule(self, resolver):
        policy = AclPolicy(owner="u1", visibility=Visibility.PUBLIC)
        assert await resolver.can_access("stranger", policy, WRITE) is False

    @pytest.mark.asyncio
    async def test_public_write_with_explicit_rule(self, resolver):
        policy = AclPolicy(
            owner="u1",
            visibility=Visibility.PUBLIC,
            acl_rules=[rule(UserListGroup(id="editor"), WRITE)],
        )
        assert await resolver.can_access("editor", policy, WRITE) is True

    @pytest.mark.asyncio
    async def test_private_without_identity_denied(self, resolver):
        policy = AclPolicy(owner="u1", acl_rules=[rule(SubscriberGroup(id="case-42"), READ)])
        assert await resolver.can_access(None, policy, READ) is False

    @pytest.mark.asyncio
    async def test_read_rule_does_not_grant_write(self, resolver):
        policy = AclPolicy(owner="u1", acl_rules=[rule(GroupMemberGroup(id="qa-team"), READ)])
        assert await resolver.can_access("qa-team-alice", policy, READ) is True
        assert await resolver.can_access("qa-team-alice", policy, WRITE) is False

    @pytest.mark.asyncio
    async def test_write_rule_grants_read(self, resolver):
        policy = AclPolicy(owner="u1", acl_rules=[rule(GroupMemberGroup(id="qa-team"), WRITE)])
        assert await resolver.can_access("qa-team-alice", policy, READ) is True

    @pytest.mark.asyncio
    async def test_non_member_denied(self, resolver):
        policy = AclPolicy(owner="u1", acl_rules=[rule(GroupMemberGroup(id="qa-team"), WRITE)])
        assert await resolver.can_access("courier-dave", policy, READ) is False

    @pytest.mark.asyncio
    async def test_failing_lookup_fails_closed(self):
        resolver = ObjectAclResolver(FailingDirectory())
        policy = AclPolicy(owner="u1", acl_rules=[rule(UserListGroup(id="u2"), READ)])
        assert await resolver.can_access("u2", policy, READ) is False

    @pytest.mark.asyncio
    async def test_failing_lookup_keeps_owner_and_public(self):
        resolver = ObjectAclResolver(FailingDirectory())
        policy = AclPolicy(owner="u1", visibility=Visibility.PUBLIC)
        assert await resolver.can_access("u1", policy, WRITE) is True
        assert await resolver.can_access(None, policy, READ) is True


class TestPlaceholderDirectory:
    @pytest.mark.asyncio
    async def test_user_list(self):
        directory = PlaceholderDirectory()
        assert await directory.is_member(UserListGroup(id="u1"), "u1")
        assert not await directory.is_member(UserListGroup(id="u1"), "u10")

    @pytest.mark.asyncio
    async def test_email_domain(self):
        directory = PlaceholderDirectory()
        group = EmailDomainGroup(id="hospital.example")
        assert await directory.is_member(group, "alice@Hospital.Example")
        assert not await directory.is_member(group, "alice@other.example")
        assert await directory.is_member(EmailDomainGroup(id="example.com"), "bare-identity")

    @pytest.mark.asyncio
    async def test_group_member_and_subscriber(self):
        directory = PlaceholderDirectory()
        assert await directory.is_member(GroupMemberGroup(id="qa-team"), "qa-team-alice")
        assert not await directory.is_member(GroupMemberGroup(id="qa-team"), "alice-qa-team")
        assert await directory.is_member(SubscriberGroup(id="case-42"), "watcher-case-42-feed")


class TestStaticDirectory:
    @pytest.mark.asyncio
    async def test_explicit_members_only(self):
        directory = StaticDirectory({(AccessGroupType.GROUP_MEMBER, "qa-team"): ["alice"]})
        assert await directory.is_member(GroupMemberGroup(id="qa-team"), "alice")
        assert not await directory.is_member(GroupMemberGroup(id="qa-team"), "qa-team-bob")
        assert not await directory.is_member(UserListGroup(id="qa-team"), "alice")


class TestPolicyParsing:
    def test_discriminated_group_from_stored_json(self):
        policy = AclPolicy.model_validate(
            {
                "owner": "u1",
                "visibility": "private",
                "aclRules": [{"group": {"type": "email_domain", "id": "hospital.example"}, "permission": "read"}],
            }
        )
        assert isinstance(policy.acl_rules[0].group, EmailDomainGroup)

    def test_unknown_group_type_rejected(self):
        with pytest.raises(ValueError):
            AclPolicy.model_validate(
                {"owner": "u1", "aclRules": [{"group": {"type": "everyone", "id": "x"}, "permission": "read"}]}
            )
