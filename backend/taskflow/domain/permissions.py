"""Workspace roles and the capability catalog.

Roles form a closed enum. Each role maps to a fixed default capability set
through ``default_capabilities``; a stored per-member override replaces the
defaults for every role except ``OWNER``, which always holds the whole
catalog.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import assert_never
from uuid import UUID

from taskflow.errors import ValidationError


class Role(str, Enum):
    """Workspace role, highest authority first."""

    OWNER = "owner"
    DIRECTOR = "director"
    LEADER = "leader"
    MEMBER = "member"
    GUEST = "guest"


class Capability(str, Enum):
    """Named permission gating one class of mutation."""

    VIEW_WORKSPACE = "VIEW_WORKSPACE"
    VIEW_ALL_REPORTS = "VIEW_ALL_REPORTS"
    MANAGE_PROJECTS = "MANAGE_PROJECTS"
    MANAGE_MEMBERS = "MANAGE_MEMBERS"
    MANAGE_TASKS = "MANAGE_TASKS"
    MANAGE_SETTINGS = "MANAGE_SETTINGS"
    DELETE_WORKSPACE = "DELETE_WORKSPACE"
    CREATE_TASKS = "CREATE_TASKS"
    EDIT_OWN_TASKS = "EDIT_OWN_TASKS"
    COMMENT = "COMMENT"
    EXPORT_DATA = "EXPORT_DATA"
    AI_ANALYSIS = "AI_ANALYSIS"
    BROADCAST_MESSAGES = "BROADCAST_MESSAGES"
    COFFEE_LOTTERY = "COFFEE_LOTTERY"


CAPABILITY_CATALOG: frozenset[Capability] = frozenset(Capability)

# Lower number = more authority
ROLE_HIERARCHY: dict[Role, int] = {
    Role.OWNER: 0,
    Role.DIRECTOR: 1,
    Role.LEADER: 2,
    Role.MEMBER: 3,
    Role.GUEST: 4,
}

# Legacy role codes still found in stored memberships
ROLE_ALIASES: dict[str, Role] = {
    "admin": Role.DIRECTOR,
    "manager": Role.LEADER,
    "observer": Role.GUEST,
}

# Roles with review, reopen, delete and reporting authority
ADMIN_ROLES: frozenset[Role] = frozenset({Role.OWNER, Role.DIRECTOR})


def parse_role(value: str) -> Role:
    """Map a stored or submitted role string onto ``Role``.

    Raises:
        ValidationError: if the string is neither a role nor a legacy alias
    """
    normalized = value.strip().lower()
    if normalized in ROLE_ALIASES:
        return ROLE_ALIASES[normalized]
    try:
        return Role(normalized)
    except ValueError:
        raise ValidationError(f"Unknown role: {value}") from None


def parse_capabilities(values: list[str]) -> frozenset[Capability]:
    """Validate capability strings against the catalog."""
    known = {c.value for c in Capability}
    invalid = [v for v in values if v not in known]
    if invalid:
        raise ValidationError(f"Unknown permissions: {', '.join(invalid)}")
    return frozenset(Capability(v) for v in values)


def has_sufficient_role(role: Role, required: Role) -> bool:
    """Check if role meets or exceeds required."""
    return ROLE_HIERARCHY[role] <= ROLE_HIERARCHY[required]


def default_capabilities(role: Role) -> frozenset[Capability]:
    """Default capability set for a role."""
    match role:
        case Role.OWNER:
            return CAPABILITY_CATALOG
        case Role.DIRECTOR:
            return CAPABILITY_CATALOG - {Capability.MANAGE_SETTINGS, Capability.DELETE_WORKSPACE}
        case Role.LEADER:
            return frozenset({
                Capability.VIEW_WORKSPACE,
                Capability.MANAGE_PROJECTS,
                Capability.MANAGE_TASKS,
                Capability.CREATE_TASKS,
                Capability.EDIT_OWN_TASKS,
                Capability.COMMENT,
                Capability.EXPORT_DATA,
                Capability.AI_ANALYSIS,
            })
        case Role.MEMBER:
            return frozenset({
                Capability.VIEW_WORKSPACE,
                Capability.CREATE_TASKS,
                Capability.EDIT_OWN_TASKS,
                Capability.COMMENT,
                Capability.AI_ANALYSIS,
            })
        case Role.GUEST:
            return frozenset({Capability.VIEW_WORKSPACE, Capability.COMMENT})
        case _:
            assert_never(role)


@dataclass(frozen=True)
class ResolvedPermissions:
    """Effective permissions of one user in one workspace."""

    user_id: UUID
    workspace_id: UUID
    role: Role
    capabilities: frozenset[Capability] = field(default_factory=frozenset)
    has_override: bool = False

    @property
    def is_owner(self) -> bool:
        return self.role is Role.OWNER

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def sorted_capabilities(self) -> list[str]:
        return sorted(c.value for c in self.capabilities)


def resolve(
    user_id: UUID,
    workspace_id: UUID,
    role: Role,
    override: list[str] | None,
) -> ResolvedPermissions:
    """Combine role defaults and a stored override into the effective set.

    Unknown strings in a stored override are ignored.
    """
    if role is Role.OWNER:
        return ResolvedPermissions(user_id, workspace_id, role, CAPABILITY_CATALOG)

    if override is None:
        return ResolvedPermissions(user_id, workspace_id, role, default_capabilities(role))

    known = {c.value for c in Capability}
    granted = frozenset(Capability(v) for v in override if v in known)
    return ResolvedPermissions(user_id, workspace_id, role, granted, has_override=True)
