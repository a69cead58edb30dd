"""Reporting edge persistence."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.models.project import ReportingEdge


class ReportingEdgeRepository:
    """Per-project manager -> subordinate edges."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert(
        self,
        project_id: UUID,
        subordinate_id: UUID,
        manager_id: UUID | None,
    ) -> ReportingEdge | None:
        """Replace the subordinate's manager edge, or remove it when ``manager_id`` is None."""
        result = await self.db.execute(
            select(ReportingEdge).where(
                ReportingEdge.project_id == project_id,
                ReportingEdge.subordinate_id == subordinate_id,
            )
        )
        edge = result.scalar_one_or_none()

        if manager_id is None:
            if edge is not None:
                await self.db.delete(edge)
                await self.db.flush()
            return None

        if edge is None:
            edge = ReportingEdge(
                project_id=project_id,
                subordinate_id=subordinate_id,
                manager_id=manager_id,
            )
            self.db.add(edge)
        else:
            edge.manager_id = manager_id

        await self.db.flush()
        return edge

    async def list_edges(self, project_id: UUID) -> list[tuple[UUID, UUID]]:
        """All (manager_id, subordinate_id) pairs in the project."""
        result = await self.db.execute(
            select(ReportingEdge.manager_id, ReportingEdge.subordinate_id).where(
                ReportingEdge.project_id == project_id
            )
        )
        return [(row.manager_id, row.subordinate_id) for row in result.all()]
