"""Workspace and project membership persistence."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.models.project import ProjectMember
from taskflow.models.workspace import WorkspaceMember


class MembershipRepository:
    """Membership rows: role, permission overrides, project teams."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: UUID, workspace_id: UUID) -> WorkspaceMember | None:
        result = await self.db.execute(
            select(WorkspaceMember)
            .where(
                WorkspaceMember.user_id == user_id,
                WorkspaceMember.workspace_id == workspace_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_workspace(self, workspace_id: UUID) -> list[WorkspaceMember]:
        result = await self.db.execute(
            select(WorkspaceMember)
            .where(WorkspaceMember.workspace_id == workspace_id)
            .order_by(WorkspaceMember.joined_at)
        )
        return list(result.scalars().all())

    async def update_permissions(
        self,
        user_id: UUID,
        workspace_id: UUID,
        permissions: list[str] | None,
    ) -> WorkspaceMember | None:
        member = await self.get(user_id, workspace_id)
        if member is None:
            return None
        member.permissions = permissions
        await self.db.flush()
        return member

    async def update_role(
        self,
        user_id: UUID,
        workspace_id: UUID,
        role: str,
    ) -> WorkspaceMember | None:
        member = await self.get(user_id, workspace_id)
        if member is None:
            return None
        member.role = role
        await self.db.flush()
        return member

    async def is_project_member(self, project_id: UUID, user_id: UUID) -> bool:
        result = await self.db.execute(
            select(ProjectMember.id).where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none() is not None
