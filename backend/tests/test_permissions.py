"""Role defaults, overrides and permission administration."""

from uuid import uuid4

import pytest

from taskflow.domain.permissions import (
    CAPABILITY_CATALOG,
    Capability,
    Role,
    default_capabilities,
    has_sufficient_role,
    parse_capabilities,
    parse_role,
    resolve,
)
from taskflow.errors import ForbiddenError, NotFoundError, ValidationError
from taskflow.services.permission import PermissionService


def test_legacy_role_aliases():
    assert parse_role("admin") is Role.DIRECTOR
    assert parse_role("Manager") is Role.LEADER
    assert parse_role("observer") is Role.GUEST
    with pytest.raises(ValidationError):
        parse_role("superuser")


def test_role_hierarchy():
    assert has_sufficient_role(Role.OWNER, Role.DIRECTOR)
    assert has_sufficient_role(Role.LEADER, Role.LEADER)
    assert not has_sufficient_role(Role.GUEST, Role.MEMBER)


def test_default_capability_sets():
    director = default_capabilities(Role.DIRECTOR)
    assert Capability.MANAGE_SETTINGS not in director
    assert Capability.DELETE_WORKSPACE not in director
    assert Capability.BROADCAST_MESSAGES in director
    assert default_capabilities(Role.GUEST) == {Capability.VIEW_WORKSPACE, Capability.COMMENT}
    assert Capability.CREATE_TASKS in default_capabilities(Role.MEMBER)


def test_owner_ignores_stored_override():
    resolved = resolve(uuid4(), uuid4(), Role.OWNER, ["COMMENT"])
    assert resolved.capabilities == CAPABILITY_CATALOG
    assert not resolved.has_override


def test_override_replaces_defaults_and_drops_unknown_values():
    resolved = resolve(uuid4(), uuid4(), Role.MEMBER, ["EXPORT_DATA", "FLY"])
    assert resolved.capabilities == {Capability.EXPORT_DATA}
    assert resolved.has_override


def test_parse_capabilities_lists_unknown_values():
    with pytest.raises(ValidationError) as exc:
        parse_capabilities(["COMMENT", "FLY", "SWIM"])
    assert "FLY" in exc.value.message and "SWIM" in exc.value.message


async def test_resolve_uses_role_defaults(permissions, seed):
    resolved = await permissions.resolve_permissions(seed.director, seed.workspace_id)
    assert resolved.role is Role.DIRECTOR
    assert resolved.capabilities == default_capabilities(Role.DIRECTOR)


async def test_non_member_is_not_found(permissions, seed):
    with pytest.raises(NotFoundError):
        await permissions.resolve_permissions(seed.outsider, seed.workspace_id)
    assert not await permissions.has_capability(
        seed.outsider, seed.workspace_id, Capability.VIEW_WORKSPACE
    )


async def test_only_owner_updates_permissions(permissions, seed):
    with pytest.raises(ForbiddenError):
        await permissions.update_user_permissions(
            seed.director, seed.alice, seed.workspace_id, ["COMMENT"]
        )


async def test_update_rejects_unknown_permission(permissions, seed):
    with pytest.raises(ValidationError):
        await permissions.update_user_permissions(
            seed.owner, seed.alice, seed.workspace_id, ["COMMENT", "TIME_TRAVEL"]
        )


async def test_owner_permissions_are_immutable(permissions, seed):
    with pytest.raises(ValidationError):
        await permissions.update_user_permissions(
            seed.owner, seed.owner, seed.workspace_id, ["COMMENT"]
        )


async def test_update_and_clear_override(permissions, seed):
    before = await permissions.resolve_permissions(seed.alice, seed.workspace_id)
    assert before.has(Capability.CREATE_TASKS)

    updated = await permissions.update_user_permissions(
        seed.owner, seed.alice, seed.workspace_id, ["COMMENT", "EXPORT_DATA"]
    )
    assert updated.has_override
    assert updated.sorted_capabilities() == ["COMMENT", "EXPORT_DATA"]
    # Cached value was invalidated
    assert not await permissions.has_capability(
        seed.alice, seed.workspace_id, Capability.CREATE_TASKS
    )

    cleared = await permissions.update_user_permissions(
        seed.owner, seed.alice, seed.workspace_id, None
    )
    assert not cleared.has_override
    assert cleared.capabilities == default_capabilities(Role.MEMBER)


async def test_override_is_visible_to_a_fresh_request(permissions, seed, session_factory):
    await permissions.update_user_permissions(
        seed.owner, seed.bob, seed.workspace_id, ["VIEW_WORKSPACE"]
    )
    async with session_factory() as other:
        resolved = await PermissionService(other).resolve_permissions(seed.bob, seed.workspace_id)
    assert resolved.sorted_capabilities() == ["VIEW_WORKSPACE"]


async def test_member_reads_own_permissions_but_not_others(permissions, seed):
    own = await permissions.get_user_permissions(seed.alice, seed.alice, seed.workspace_id)
    assert own.role is Role.MEMBER
    with pytest.raises(ForbiddenError):
        await permissions.get_user_permissions(seed.alice, seed.bob, seed.workspace_id)

    other = await permissions.get_user_permissions(seed.director, seed.bob, seed.workspace_id)
    assert other.user_id == seed.bob


async def test_list_member_permissions_is_admin_only(permissions, seed):
    members = await permissions.list_member_permissions(seed.owner, seed.workspace_id)
    assert {m.user_id for m in members} >= {seed.owner, seed.alice, seed.guest}
    with pytest.raises(ForbiddenError):
        await permissions.list_member_permissions(seed.manager, seed.workspace_id)


async def test_set_workspace_role(permissions, seed):
    resolved = await permissions.set_workspace_role(
        seed.owner, seed.alice, seed.workspace_id, "manager"
    )
    assert resolved.role is Role.LEADER
    assert resolved.has(Capability.MANAGE_TASKS)

    with pytest.raises(ValidationError):
        await permissions.set_workspace_role(seed.owner, seed.alice, seed.workspace_id, "owner")
    with pytest.raises(ValidationError):
        await permissions.set_workspace_role(seed.owner, seed.owner, seed.workspace_id, "member")
    with pytest.raises(ForbiddenError):
        await permissions.set_workspace_role(seed.director, seed.bob, seed.workspace_id, "guest")
