"""Domain events emitted after a task transition commits."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol
from uuid import UUID


@dataclass(frozen=True)
class TaskStatusChanged:
    task_id: UUID
    task_title: str
    workspace_id: UUID
    project_id: UUID
    actor_id: UUID
    old_status: str
    new_status: str
    transition: str | None = None
    assignee_id: UUID | None = None
    leader_id: UUID | None = None
    reason: str | None = None
    auto_triggered: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    event_type = "task_status_changed"

    def to_payload(self) -> dict:
        return {
            "type": self.event_type,
            "taskId": str(self.task_id),
            "taskTitle": self.task_title,
            "workspaceId": str(self.workspace_id),
            "projectId": str(self.project_id),
            "actorId": str(self.actor_id),
            "oldStatus": self.old_status,
            "newStatus": self.new_status,
            "transition": self.transition,
            "reason": self.reason,
            "autoTriggered": self.auto_triggered,
            "timestamp": self.timestamp.isoformat(),
        }


class EventSink(Protocol):
    """Receives committed task events. Delivery is best effort."""

    async def emit(self, event: TaskStatusChanged) -> None: ...
