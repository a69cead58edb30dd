"""Task lifecycle: guarded status transitions, deletion and batch operations."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.config import get_settings
from taskflow.domain.events import EventSink, TaskStatusChanged
from taskflow.domain.permissions import Capability
from taskflow.domain.task_state_machine import (
    TRANSITION_RULES,
    AuthContext,
    TaskStatus,
    Transition,
    TransitionRule,
    available_transitions,
    can_delete,
    can_review,
    check_transition,
    parse_priority,
    parse_status,
    rule_for,
)
from taskflow.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ScopeMismatchError,
    ValidationError,
)
from taskflow.models.project import Project, Task, TaskEvent
from taskflow.repositories.events import TaskEventRepository
from taskflow.repositories.tasks import TaskRepository
from taskflow.services.batch import BatchCoordinator, BatchMode, BatchResult, Outcome
from taskflow.services.permission import PermissionService

logger = structlog.get_logger()

RETURNED_FOR_CHANGES = "Returned for changes"


@dataclass
class TransitionResult:
    task: Task
    old_status: TaskStatus
    new_status: TaskStatus
    changed: bool = True

    @property
    def available_transitions(self) -> list[str]:
        return [s.value for s in available_transitions(self.new_status)]


class TaskLifecycleService:
    """Applies status transitions with authorization, event logging and notification.

    Each successful transition is committed together with its event row.
    Parent tasks are then brought in line with their children as separate
    system-triggered transitions.
    """

    def __init__(
        self,
        db: AsyncSession,
        permissions: PermissionService,
        event_sink: EventSink | None = None,
    ):
        self.db = db
        self.permissions = permissions
        self.event_sink = event_sink
        self.tasks = TaskRepository(db)
        self.events = TaskEventRepository(db)
        self.settings = get_settings()

    # ------------------------------------------------------------------
    # Loading and authorization
    # ------------------------------------------------------------------

    async def _load(self, task_id: UUID) -> tuple[Task, Project]:
        task = await self.tasks.get(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        project = await self.tasks.get_project(task.project_id)
        if project is None:
            raise NotFoundError("Project", task.project_id)
        return task, project

    async def _load_in_workspace(self, task_id: UUID, workspace_id: UUID) -> tuple[Task, Project]:
        task, project = await self._load(task_id)
        if project.workspace_id != workspace_id:
            raise ScopeMismatchError(f"Task {task_id} does not belong to workspace {workspace_id}")
        return task, project

    async def _auth_context(self, actor_id: UUID, task: Task, project: Project) -> AuthContext:
        role = await self.permissions.get_role(actor_id, project.workspace_id)
        if role is None:
            raise ForbiddenError("Not a member of this workspace")
        return AuthContext(
            actor_id=actor_id,
            role=role,
            creator_id=task.created_by_id,
            assignee_id=task.assignee_id,
            leader_id=project.leader_id,
        )

    # ------------------------------------------------------------------
    # Commit path
    # ------------------------------------------------------------------

    async def _emit(self, event: TaskStatusChanged) -> None:
        if self.event_sink is None:
            return
        try:
            await self.event_sink.emit(event)
        except Exception:
            logger.exception(
                "task_event_emit_failed",
                task_id=str(event.task_id),
                new_status=event.new_status,
            )

    def _status_event(
        self,
        task: Task,
        project: Project,
        actor_id: UUID,
        old_status: TaskStatus,
        new_status: TaskStatus,
        transition: Transition | None,
        reason: str | None = None,
        auto_triggered: bool = False,
    ) -> TaskStatusChanged:
        return TaskStatusChanged(
            task_id=task.id,
            task_title=task.title,
            workspace_id=project.workspace_id,
            project_id=project.id,
            actor_id=actor_id,
            old_status=old_status.value,
            new_status=new_status.value,
            transition=transition.value if transition else None,
            assignee_id=task.assignee_id,
            leader_id=project.leader_id,
            reason=reason,
            auto_triggered=auto_triggered,
        )

    async def _commit_transition(
        self,
        task: Task,
        project: Project,
        rule: TransitionRule,
        actor_id: UUID,
        reason: str | None = None,
    ) -> TransitionResult:
        """Conditionally write the new status, record the event, commit."""
        if not await self.tasks.conditional_update_status(task.id, rule.source, rule.target):
            raise ConflictError(f"Task {task.id} was modified concurrently")

        extra: dict = {"transition": rule.name.value}
        if reason:
            extra["reason"] = reason
        await self.events.record(
            task.id, actor_id, "status_changed", rule.source.value, rule.target.value, extra
        )
        await self.db.commit()

        logger.info(
            "task_transition",
            task_id=str(task.id),
            transition=rule.name.value,
            old_status=rule.source.value,
            new_status=rule.target.value,
            actor_id=str(actor_id),
        )

        fresh = await self.tasks.get(task.id) or task
        await self._emit(
            self._status_event(fresh, project, actor_id, rule.source, rule.target, rule.name, reason)
        )
        await self._sync_parent(fresh, project, rule.source, rule.target, actor_id)
        return TransitionResult(fresh, rule.source, rule.target)

    async def _transition(
        self,
        actor_id: UUID,
        task_id: UUID,
        transition: Transition,
        reason: str | None = None,
    ) -> TransitionResult:
        task, project = await self._load(task_id)
        ctx = await self._auth_context(actor_id, task, project)
        rule = check_transition(transition, TaskStatus(task.status), ctx)
        return await self._commit_transition(task, project, rule, actor_id, reason)

    # ------------------------------------------------------------------
    # Named transitions
    # ------------------------------------------------------------------

    async def start_task(self, actor_id: UUID, task_id: UUID) -> TransitionResult:
        return await self._transition(actor_id, task_id, Transition.START)

    async def submit_for_review(self, actor_id: UUID, task_id: UUID) -> TransitionResult:
        return await self._transition(actor_id, task_id, Transition.SUBMIT)

    async def approve_task(self, actor_id: UUID, task_id: UUID) -> TransitionResult:
        return await self._transition(actor_id, task_id, Transition.APPROVE)

    async def reject_task(self, actor_id: UUID, task_id: UUID, reason: str | None) -> TransitionResult:
        """Send a task under review back to in_progress. A reason is mandatory."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required")
        if len(reason) > self.settings.reject_reason_max_length:
            raise ValidationError(
                f"Rejection reason must be at most {self.settings.reject_reason_max_length} characters"
            )
        return await self._transition(actor_id, task_id, Transition.REJECT, reason)

    async def complete_task(self, actor_id: UUID, task_id: UUID) -> TransitionResult:
        return await self._transition(actor_id, task_id, Transition.COMPLETE)

    async def reopen_task(self, actor_id: UUID, task_id: UUID) -> TransitionResult:
        return await self._transition(actor_id, task_id, Transition.REOPEN)

    async def change_status(self, actor_id: UUID, task_id: UUID, status: str) -> TransitionResult:
        """Move a task to ``status`` through whichever named transition leads there."""
        target = parse_status(status)
        task, project = await self._load(task_id)
        ctx = await self._auth_context(actor_id, task, project)

        current = TaskStatus(task.status)
        if current is target:
            return TransitionResult(task, current, current, changed=False)

        rule = check_transition(rule_for(current, target).name, current, ctx)
        reason = RETURNED_FOR_CHANGES if rule.name is Transition.REJECT else None
        return await self._commit_transition(task, project, rule, actor_id, reason)

    # ------------------------------------------------------------------
    # Parent/child status sync
    # ------------------------------------------------------------------

    async def _ancestors(self, parent_id: UUID | None) -> AsyncIterator[Task]:
        seen: set[UUID] = set()
        current = parent_id
        while current is not None and current not in seen:
            seen.add(current)
            parent = await self.tasks.get(current)
            if parent is None:
                return
            yield parent
            current = parent.parent_task_id

    async def _auto_transition(
        self,
        task: Task,
        project: Project,
        target: TaskStatus,
        actor_id: UUID,
        transition: Transition | None,
        reason: str,
    ) -> bool:
        """System follow-up transition. Skipped silently if the row moved."""
        expected = TaskStatus(task.status)
        if not await self.tasks.conditional_update_status(task.id, expected, target):
            logger.info("auto_transition_skipped", task_id=str(task.id), expected=expected.value)
            return False

        await self.events.record(
            task.id,
            actor_id,
            "status_changed",
            expected.value,
            target.value,
            {
                "transition": transition.value if transition else None,
                "reason": reason,
                "auto_triggered": True,
            },
        )
        await self.db.commit()

        logger.info(
            "task_auto_transition",
            task_id=str(task.id),
            old_status=expected.value,
            new_status=target.value,
            reason=reason,
        )
        await self._emit(
            self._status_event(
                task, project, actor_id, expected, target, transition, reason, auto_triggered=True
            )
        )
        return True

    async def _sync_parent(
        self,
        task: Task,
        project: Project,
        old_status: TaskStatus,
        new_status: TaskStatus,
        actor_id: UUID,
    ) -> None:
        if task.parent_task_id is None:
            return

        if old_status is TaskStatus.TODO and new_status is TaskStatus.IN_PROGRESS:
            async for parent in self._ancestors(task.parent_task_id):
                if parent.status != TaskStatus.TODO.value:
                    break
                await self._auto_transition(
                    parent, project, TaskStatus.IN_PROGRESS, actor_id,
                    Transition.START, "Subtask started",
                )

        elif new_status is TaskStatus.DONE:
            await self._roll_up_completion(task.parent_task_id, project, actor_id)

        elif old_status is TaskStatus.DONE:
            async for parent in self._ancestors(task.parent_task_id):
                if parent.status == TaskStatus.REVIEW.value:
                    await self._auto_transition(
                        parent, project, TaskStatus.IN_PROGRESS, actor_id,
                        None, "Subtask reopened",
                    )

    async def _roll_up_completion(self, parent_id: UUID, project: Project, actor_id: UUID) -> None:
        async for parent in self._ancestors(parent_id):
            children = await self.tasks.list_children(parent.id)
            if not children or any(c.status != TaskStatus.DONE.value for c in children):
                return

            if parent.parent_task_id is None:
                # Top-level tasks still go through review
                if parent.status == TaskStatus.IN_PROGRESS.value:
                    await self._auto_transition(
                        parent, project, TaskStatus.REVIEW, actor_id,
                        Transition.SUBMIT, "All subtasks completed",
                    )
                return

            if parent.status == TaskStatus.DONE.value:
                return
            completed = await self._auto_transition(
                parent, project, TaskStatus.DONE, actor_id,
                None, "All subtasks completed",
            )
            if not completed:
                return

    # ------------------------------------------------------------------
    # Creation, deletion, history
    # ------------------------------------------------------------------

    async def create_task(
        self,
        actor_id: UUID,
        project_id: UUID,
        title: str,
        description: str | None = None,
        priority: str | None = None,
        assignee_id: UUID | None = None,
        parent_task_id: UUID | None = None,
    ) -> Task:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Task title is required")
        task_priority = parse_priority(priority)

        project = await self.tasks.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        if not await self.permissions.has_capability(
            actor_id, project.workspace_id, Capability.CREATE_TASKS
        ):
            raise ForbiddenError("Missing permission to create tasks in this workspace")

        if parent_task_id is not None:
            parent = await self.tasks.get(parent_task_id)
            if parent is None or parent.project_id != project_id:
                raise ValidationError("Parent task must belong to the same project")

        if assignee_id is not None:
            if await self.permissions.get_role(assignee_id, project.workspace_id) is None:
                raise ValidationError("Assignee must be a member of the workspace")

        task = Task(
            title=title,
            description=description,
            status=TaskStatus.TODO.value,
            priority=task_priority.value,
            project_id=project_id,
            created_by_id=actor_id,
            assignee_id=assignee_id,
            parent_task_id=parent_task_id,
        )
        await self.tasks.add(task)
        await self.events.record(
            task.id, actor_id, "created", None, TaskStatus.TODO.value, {"title": title}
        )
        await self.db.commit()
        await self.db.refresh(task)

        logger.info(
            "task_created",
            task_id=str(task.id),
            project_id=str(project_id),
            parent_task_id=str(parent_task_id) if parent_task_id else None,
        )
        return task

    async def _delete_tree(self, task: Task) -> list[UUID]:
        """Delete a task and its descendants, deepest first.

        Returns the ids of the descendants that were actually removed.
        """
        removed: list[UUID] = []
        for descendant_id in reversed(await self.tasks.list_descendant_ids(task.id)):
            if await self.tasks.delete(descendant_id):
                removed.append(descendant_id)

        if not await self.tasks.delete(task.id):
            await self.db.rollback()
            raise NotFoundError("Task", task.id)
        return removed

    async def delete_task(self, actor_id: UUID, task_id: UUID) -> dict:
        task, project = await self._load(task_id)
        ctx = await self._auth_context(actor_id, task, project)
        if not can_delete(ctx):
            raise ForbiddenError("Only the creator, the project leader or a workspace admin can delete this task")

        removed = await self._delete_tree(task)
        await self.db.commit()

        logger.info(
            "task_deleted",
            task_id=str(task_id),
            subtask_count=len(removed),
            actor_id=str(actor_id),
        )
        return {"deleted_count": 1 + len(removed), "subtask_count": len(removed)}

    async def get_task_events(
        self,
        actor_id: UUID,
        task_id: UUID,
        limit: int | None = None,
    ) -> list[TaskEvent]:
        task, project = await self._load(task_id)
        await self._auth_context(actor_id, task, project)
        limit = limit or self.settings.task_events_default_limit
        return await self.events.list_for_task(task.id, max(1, min(limit, 100)))

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    async def batch_complete(
        self,
        actor_id: UUID,
        workspace_id: UUID,
        task_ids: list[UUID],
    ) -> BatchResult[UUID]:
        """Drive each task towards done.

        In-progress tasks are completed directly only by actors who could
        approve them; anyone else who may work on the task submits it for
        review instead, and the id is reported under ``auto_reviewed``.
        """

        async def apply(task_id: UUID) -> Outcome:
            task, project = await self._load_in_workspace(task_id, workspace_id)
            ctx = await self._auth_context(actor_id, task, project)
            current = TaskStatus(task.status)

            if current is TaskStatus.IN_PROGRESS:
                if can_review(ctx):
                    await self._commit_transition(
                        task, project, TRANSITION_RULES[Transition.COMPLETE], actor_id
                    )
                    return Outcome.SUCCESS
                rule = check_transition(Transition.SUBMIT, current, ctx)
                await self._commit_transition(task, project, rule, actor_id)
                return Outcome.AUTO_REVIEWED

            if current is TaskStatus.REVIEW:
                rule = check_transition(Transition.APPROVE, current, ctx)
                await self._commit_transition(task, project, rule, actor_id)
                return Outcome.SUCCESS

            raise InvalidTransitionError(current.value, TaskStatus.DONE.value)

        coordinator: BatchCoordinator[UUID] = BatchCoordinator(
            BatchMode.ISOLATED, max_items=self.settings.batch_max_items, name="batch_complete"
        )
        return await coordinator.run(task_ids, apply)

    async def batch_delete(
        self,
        actor_id: UUID,
        workspace_id: UUID,
        task_ids: list[UUID],
    ) -> BatchResult[UUID]:
        """Delete each task with its subtasks; ``extra["subtask_count"]`` totals the cascade."""
        cascaded: set[UUID] = set()
        subtask_count = 0

        async def apply(task_id: UUID) -> Outcome:
            nonlocal subtask_count
            # Already removed as a subtask of an earlier item
            if task_id in cascaded:
                return Outcome.SUCCESS

            task, project = await self._load_in_workspace(task_id, workspace_id)
            ctx = await self._auth_context(actor_id, task, project)
            if not can_delete(ctx):
                raise ForbiddenError(
                    "Only the creator, the project leader or a workspace admin can delete this task"
                )

            removed = await self._delete_tree(task)
            await self.db.commit()
            cascaded.update(removed)
            subtask_count += len(removed)
            return Outcome.SUCCESS

        coordinator: BatchCoordinator[UUID] = BatchCoordinator(
            BatchMode.ISOLATED, max_items=self.settings.batch_max_items, name="batch_delete"
        )
        result = await coordinator.run(task_ids, apply)
        result.extra["subtask_count"] = subtask_count
        return result
