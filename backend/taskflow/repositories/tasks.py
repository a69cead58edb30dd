"""Task persistence."""

from collections import deque
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.domain.task_state_machine import TaskStatus
from taskflow.models.project import Project, Task


class TaskRepository:
    """Task reads and guarded writes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, task_id: UUID) -> Task | None:
        """Load a task, always reflecting the current row."""
        result = await self.db.execute(
            select(Task)
            .where(Task.id == task_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_project(self, project_id: UUID) -> Project | None:
        result = await self.db.execute(select(Project).where(Project.id == project_id))
        return result.scalar_one_or_none()

    async def add(self, task: Task) -> Task:
        self.db.add(task)
        await self.db.flush()
        return task

    async def conditional_update_status(
        self,
        task_id: UUID,
        expected_status: TaskStatus,
        new_status: TaskStatus,
    ) -> bool:
        """Set the status only if the row still holds ``expected_status``.

        Returns:
            True if exactly one row was updated, False if another writer
            moved the task first (or it was deleted).
        """
        values: dict = {"status": new_status.value}
        if new_status is TaskStatus.DONE:
            values["completed_at"] = datetime.now(timezone.utc)
        elif expected_status is TaskStatus.DONE:
            values["completed_at"] = None

        result = await self.db.execute(
            update(Task)
            .where(Task.id == task_id, Task.status == expected_status.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_children(self, parent_id: UUID) -> list[Task]:
        result = await self.db.execute(
            select(Task)
            .where(Task.parent_task_id == parent_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_descendant_ids(self, task_id: UUID) -> list[UUID]:
        """All descendants breadth-first (children before grandchildren)."""
        descendants: list[UUID] = []
        seen = {task_id}
        queue = deque([task_id])

        while queue:
            current = queue.popleft()
            result = await self.db.execute(
                select(Task.id).where(Task.parent_task_id == current)
            )
            for child_id in result.scalars().all():
                if child_id in seen:
                    continue
                seen.add(child_id)
                descendants.append(child_id)
                queue.append(child_id)

        return descendants

    async def delete(self, task_id: UUID) -> bool:
        result = await self.db.execute(
            delete(Task)
            .where(Task.id == task_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
