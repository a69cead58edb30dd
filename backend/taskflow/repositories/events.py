"""Task event log persistence."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.models.project import TaskEvent


class TaskEventRepository:
    """Append-only task history."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        task_id: UUID,
        actor_id: UUID,
        event_type: str,
        old_status: str | None = None,
        new_status: str | None = None,
        extra_data: dict | None = None,
    ) -> TaskEvent:
        """Stage an event in the current transaction (committed by the caller)."""
        event = TaskEvent(
            task_id=task_id,
            actor_id=actor_id,
            event_type=event_type,
            old_status=old_status,
            new_status=new_status,
            extra_data=extra_data,
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def list_for_task(self, task_id: UUID, limit: int = 20) -> list[TaskEvent]:
        """Newest first."""
        result = await self.db.execute(
            select(TaskEvent)
            .where(TaskEvent.task_id == task_id)
            .order_by(TaskEvent.created_at.desc(), TaskEvent.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
