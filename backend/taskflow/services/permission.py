"""Workspace permission resolution and administration."""

from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.domain.permissions import (
    Capability,
    ResolvedPermissions,
    Role,
    parse_capabilities,
    parse_role,
    resolve,
)
from taskflow.errors import ForbiddenError, NotFoundError, ValidationError
from taskflow.repositories.memberships import MembershipRepository

logger = structlog.get_logger()


class PermissionService:
    """Resolves effective capabilities for workspace members.

    One instance lives for one request. Resolved permissions are cached on
    the instance and dropped by ``invalidate`` after any write that changes
    a member's role or override.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.memberships = MembershipRepository(db)
        self._cache: dict[tuple[UUID, UUID], ResolvedPermissions | None] = {}

    async def _load(self, user_id: UUID, workspace_id: UUID) -> ResolvedPermissions | None:
        key = (user_id, workspace_id)
        if key in self._cache:
            return self._cache[key]

        member = await self.memberships.get(user_id, workspace_id)
        if member is None:
            resolved = None
        else:
            resolved = resolve(user_id, workspace_id, parse_role(member.role), member.permissions)

        self._cache[key] = resolved
        return resolved

    def invalidate(self, user_id: UUID, workspace_id: UUID | None = None) -> None:
        """Forget cached permissions for a user (in one workspace, or all)."""
        for key in list(self._cache):
            if key[0] == user_id and (workspace_id is None or key[1] == workspace_id):
                del self._cache[key]

    async def get_role(self, user_id: UUID, workspace_id: UUID) -> Role | None:
        """Normalized workspace role, or None for non-members."""
        resolved = await self._load(user_id, workspace_id)
        return resolved.role if resolved else None

    async def resolve_permissions(self, user_id: UUID, workspace_id: UUID) -> ResolvedPermissions:
        """Effective permissions of a member.

        Raises:
            NotFoundError: if the user is not a member of the workspace
        """
        resolved = await self._load(user_id, workspace_id)
        if resolved is None:
            raise NotFoundError("Workspace membership")
        return resolved

    async def has_capability(
        self,
        user_id: UUID,
        workspace_id: UUID,
        capability: Capability,
    ) -> bool:
        resolved = await self._load(user_id, workspace_id)
        return resolved is not None and resolved.has(capability)

    async def _require_member(self, user_id: UUID, workspace_id: UUID) -> ResolvedPermissions:
        resolved = await self._load(user_id, workspace_id)
        if resolved is None:
            raise ForbiddenError("Not a member of this workspace")
        return resolved

    async def get_user_permissions(
        self,
        requester_id: UUID,
        user_id: UUID,
        workspace_id: UUID,
    ) -> ResolvedPermissions:
        """Permissions of another member; self, owner or director only."""
        requester = await self._require_member(requester_id, workspace_id)
        if requester_id != user_id and not requester.is_admin:
            raise ForbiddenError("Only workspace admins can view other members' permissions")
        return await self.resolve_permissions(user_id, workspace_id)

    async def list_member_permissions(
        self,
        requester_id: UUID,
        workspace_id: UUID,
    ) -> list[ResolvedPermissions]:
        requester = await self._require_member(requester_id, workspace_id)
        if not requester.is_admin:
            raise ForbiddenError("Only workspace admins can list member permissions")

        members = await self.memberships.list_for_workspace(workspace_id)
        return [
            resolve(m.user_id, workspace_id, parse_role(m.role), m.permissions)
            for m in members
        ]

    async def update_user_permissions(
        self,
        operator_id: UUID,
        user_id: UUID,
        workspace_id: UUID,
        permissions: list[str] | None,
    ) -> ResolvedPermissions:
        """Replace (or with None, clear) a member's capability override.

        Raises:
            ForbiddenError: operator is not the workspace owner
            ValidationError: unknown capability, or the target is the owner
            NotFoundError: target is not a member
        """
        operator = await self._require_member(operator_id, workspace_id)
        if not operator.is_owner:
            raise ForbiddenError("Only the workspace owner can change permissions")

        if permissions is not None:
            parse_capabilities(permissions)

        target = await self._load(user_id, workspace_id)
        if target is None:
            raise NotFoundError("Workspace membership")
        if target.is_owner:
            raise ValidationError("The workspace owner's permissions cannot be changed")

        stored = sorted(set(permissions)) if permissions is not None else None
        await self.memberships.update_permissions(user_id, workspace_id, stored)
        await self.db.commit()
        self.invalidate(user_id, workspace_id)

        logger.info(
            "permissions_updated",
            workspace_id=str(workspace_id),
            user_id=str(user_id),
            operator_id=str(operator_id),
            permissions=stored,
        )
        return await self.resolve_permissions(user_id, workspace_id)

    async def set_workspace_role(
        self,
        operator_id: UUID,
        user_id: UUID,
        workspace_id: UUID,
        role: str,
    ) -> ResolvedPermissions:
        """Change a member's role. Owner only; ownership is not transferable here."""
        operator = await self._require_member(operator_id, workspace_id)
        if not operator.is_owner:
            raise ForbiddenError("Only the workspace owner can change roles")

        new_role = parse_role(role)
        if new_role is Role.OWNER:
            raise ValidationError("Cannot assign the owner role")

        target = await self._load(user_id, workspace_id)
        if target is None:
            raise NotFoundError("Workspace membership")
        if target.is_owner:
            raise ValidationError("Cannot change the workspace owner's role")

        await self.memberships.update_role(user_id, workspace_id, new_role.value)
        await self.db.commit()
        self.invalidate(user_id, workspace_id)

        logger.info(
            "workspace_role_changed",
            workspace_id=str(workspace_id),
            user_id=str(user_id),
            old_role=target.role.value,
            new_role=new_role.value,
        )
        return await self.resolve_permissions(user_id, workspace_id)
