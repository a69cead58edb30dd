"""Single-task transitions, events, parent sync and deletion."""

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from taskflow.errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from taskflow.models import Notification, TaskEvent
from taskflow.services.notification import NotificationEventSink
from taskflow.services.task_lifecycle import TaskLifecycleService

from conftest import FailingSink


async def test_unknown_status_is_rejected_by_the_database(db, make_task):
    with pytest.raises(IntegrityError):
        await make_task("blocked")
    await db.rollback()


async def test_assignee_starts_task(lifecycle, seed, make_task, reload, sink):
    task_id = await make_task("todo")

    result = await lifecycle.start_task(seed.alice, task_id)

    assert result.new_status.value == "in_progress"
    assert result.available_transitions == ["review", "done"]
    assert (await reload(task_id)).status == "in_progress"
    assert [(e.old_status, e.new_status, e.transition) for e in sink.events] == [
        ("todo", "in_progress", "start")
    ]


async def test_leader_approves_review(lifecycle, seed, make_task, reload, db):
    task_id = await make_task("review")

    result = await lifecycle.approve_task(seed.lead, task_id)

    assert result.task.status == "done"
    assert result.task.completed_at is not None
    events = (await db.execute(select(TaskEvent).where(TaskEvent.task_id == task_id))).scalars().all()
    assert len(events) == 1
    assert (events[0].old_status, events[0].new_status) == ("review", "done")
    assert events[0].actor_id == seed.lead
    assert events[0].extra_data["transition"] == "approve"


async def test_assignee_cannot_approve_own_work(lifecycle, seed, make_task, reload):
    task_id = await make_task("review")
    with pytest.raises(ForbiddenError):
        await lifecycle.approve_task(seed.alice, task_id)
    assert (await reload(task_id)).status == "review"


async def test_workspace_leader_role_cannot_approve(lifecycle, seed, make_task):
    task_id = await make_task("review")
    with pytest.raises(ForbiddenError):
        await lifecycle.approve_task(seed.manager, task_id)


async def test_illegal_edge_leaves_status_unchanged(lifecycle, seed, make_task, reload, sink):
    task_id = await make_task("todo")
    with pytest.raises(InvalidTransitionError):
        await lifecycle.complete_task(seed.alice, task_id)
    assert (await reload(task_id)).status == "todo"
    assert sink.events == []


async def test_guest_and_outsider_are_forbidden(lifecycle, seed, make_task):
    task_id = await make_task("todo")
    with pytest.raises(ForbiddenError):
        await lifecycle.start_task(seed.guest, task_id)
    with pytest.raises(ForbiddenError):
        await lifecycle.start_task(seed.outsider, task_id)


async def test_missing_task(lifecycle, seed):
    with pytest.raises(NotFoundError):
        await lifecycle.start_task(seed.alice, uuid4())


async def test_reject_requires_reason(lifecycle, seed, make_task, reload):
    task_id = await make_task("review")
    with pytest.raises(ValidationError):
        await lifecycle.reject_task(seed.lead, task_id, "   ")
    with pytest.raises(ValidationError):
        await lifecycle.reject_task(seed.lead, task_id, "x" * 501)
    assert (await reload(task_id)).status == "review"

    result = await lifecycle.reject_task(seed.lead, task_id, "Needs tests")
    assert result.new_status.value == "in_progress"


async def test_reopen_clears_completion(lifecycle, seed, make_task, reload):
    task_id = await make_task("in_progress")
    await lifecycle.complete_task(seed.alice, task_id)
    assert (await reload(task_id)).completed_at is not None

    await lifecycle.reopen_task(seed.alice, task_id)
    task = await reload(task_id)
    assert task.status == "in_progress"
    assert task.completed_at is None


async def test_change_status_same_status_is_noop(lifecycle, seed, make_task, sink):
    task_id = await make_task("in_progress")
    result = await lifecycle.change_status(seed.alice, task_id, "IN_PROGRESS")
    assert result.changed is False
    assert sink.events == []


async def test_change_status_maps_to_reject_with_default_reason(lifecycle, seed, make_task, sink):
    task_id = await make_task("review")
    result = await lifecycle.change_status(seed.lead, task_id, "in_progress")
    assert result.new_status.value == "in_progress"
    assert sink.events[0].transition == "reject"
    assert sink.events[0].reason == "Returned for changes"


async def test_change_status_rejects_illegal_target(lifecycle, seed, make_task):
    task_id = await make_task("todo")
    with pytest.raises(InvalidTransitionError):
        await lifecycle.change_status(seed.alice, task_id, "review")
    with pytest.raises(ValidationError):
        await lifecycle.change_status(seed.alice, task_id, "archived")


async def test_sink_failure_does_not_undo_transition(db, permissions, seed, make_task, reload):
    service = TaskLifecycleService(db, permissions, FailingSink())
    task_id = await make_task("todo")

    await service.start_task(seed.alice, task_id)

    assert (await reload(task_id)).status == "in_progress"


async def test_events_are_newest_first(lifecycle, seed, make_task):
    task_id = await make_task("todo")
    await lifecycle.start_task(seed.alice, task_id)
    await lifecycle.submit_for_review(seed.alice, task_id)

    events = await lifecycle.get_task_events(seed.bob, task_id)
    assert [e.new_status for e in events] == ["review", "in_progress"]

    with pytest.raises(ForbiddenError):
        await lifecycle.get_task_events(seed.outsider, task_id)


async def test_create_task_records_event(lifecycle, seed):
    task = await lifecycle.create_task(seed.alice, seed.project_id, "  Write docs ", priority="HIGH")

    assert task.title == "Write docs"
    assert task.status == "todo"
    assert task.priority == "high"
    events = await lifecycle.get_task_events(seed.alice, task.id)
    assert [e.event_type for e in events] == ["created"]


async def test_create_task_requires_capability(lifecycle, seed):
    with pytest.raises(ForbiddenError):
        await lifecycle.create_task(seed.guest, seed.project_id, "Peek")


async def test_subtask_parent_must_share_project(lifecycle, seed, make_task):
    foreign = await make_task("todo", project=seed.other_project_id)
    with pytest.raises(ValidationError):
        await lifecycle.create_task(seed.owner, seed.project_id, "Child", parent_task_id=foreign)


class TestParentSync:
    async def test_starting_child_starts_parent_chain(self, lifecycle, seed, make_task, reload, db):
        root = await make_task("todo")
        middle = await make_task("todo", parent=root)
        leaf = await make_task("todo", parent=middle)

        await lifecycle.start_task(seed.alice, leaf)

        assert (await reload(middle)).status == "in_progress"
        assert (await reload(root)).status == "in_progress"
        auto = (
            await db.execute(select(TaskEvent).where(TaskEvent.task_id == root))
        ).scalars().one()
        assert auto.extra_data["auto_triggered"] is True

    async def test_last_child_done_sends_top_level_parent_to_review(
        self, lifecycle, seed, make_task, reload
    ):
        parent = await make_task("in_progress")
        first = await make_task("in_progress", parent=parent)
        second = await make_task("in_progress", parent=parent)

        await lifecycle.complete_task(seed.alice, first)
        assert (await reload(parent)).status == "in_progress"

        await lifecycle.complete_task(seed.alice, second)
        assert (await reload(parent)).status == "review"

    async def test_nested_parent_completes_and_recurses(self, lifecycle, seed, make_task, reload):
        root = await make_task("in_progress")
        middle = await make_task("in_progress", parent=root)
        leaf = await make_task("in_progress", parent=middle)

        await lifecycle.complete_task(seed.alice, leaf)

        assert (await reload(middle)).status == "done"
        assert (await reload(root)).status == "review"

    async def test_reopening_child_pulls_parent_out_of_review(
        self, lifecycle, seed, make_task, reload
    ):
        parent = await make_task("review")
        child = await make_task("done", parent=parent)

        await lifecycle.reopen_task(seed.alice, child)

        assert (await reload(parent)).status == "in_progress"


class TestDelete:
    async def test_cascade_counts_descendants(self, lifecycle, seed, make_task, reload):
        root = await make_task("todo")
        child = await make_task("todo", parent=root)
        await make_task("todo", parent=child)
        await make_task("done", parent=root)

        counts = await lifecycle.delete_task(seed.bob, root)

        assert counts == {"deleted_count": 4, "subtask_count": 3}
        assert await reload(root) is None
        assert await reload(child) is None

    async def test_assignee_cannot_delete(self, lifecycle, seed, make_task, reload):
        task_id = await make_task("todo")
        with pytest.raises(ForbiddenError):
            await lifecycle.delete_task(seed.alice, task_id)
        assert await reload(task_id) is not None

    async def test_leader_and_director_can_delete(self, lifecycle, seed, make_task):
        first = await make_task("todo")
        second = await make_task("todo")
        assert (await lifecycle.delete_task(seed.lead, first))["deleted_count"] == 1
        assert (await lifecycle.delete_task(seed.director, second))["deleted_count"] == 1


class TestNotifications:
    @pytest.fixture
    def pushed(self):
        return []

    @pytest.fixture
    def broadcasts(self):
        return []

    @pytest.fixture
    def notifying(self, db, permissions, session_factory, pushed, broadcasts):
        async def push(user_id, payload):
            pushed.append((user_id, payload))

        async def broadcast(workspace_id, payload):
            broadcasts.append((workspace_id, payload))

        sink = NotificationEventSink(session_factory, push, broadcast)
        return TaskLifecycleService(db, permissions, sink)

    async def _notifications(self, db):
        result = await db.execute(select(Notification).order_by(Notification.created_at))
        return result.scalars().all()

    async def test_submit_notifies_project_leader(self, notifying, seed, make_task, db, pushed):
        task_id = await make_task("in_progress")

        await notifying.submit_for_review(seed.alice, task_id)

        [notification] = await self._notifications(db)
        assert notification.user_id == seed.lead
        assert notification.notification_type == "task_review_request"
        assert notification.sender_id == seed.alice
        assert pushed[0][0] == seed.lead

    async def test_reject_notifies_assignee_with_reason(self, notifying, seed, make_task, db):
        task_id = await make_task("review")

        await notifying.reject_task(seed.lead, task_id, "Missing screenshots")

        [notification] = await self._notifications(db)
        assert notification.user_id == seed.alice
        assert notification.notification_type == "task_rejected"
        assert "Missing screenshots" in notification.message

    async def test_actor_is_never_notified(self, notifying, seed, make_task, db, pushed):
        task_id = await make_task("in_progress")

        # alice is the assignee and the actor
        await notifying.complete_task(seed.alice, task_id)

        assert await self._notifications(db) == []
        assert pushed == []

    async def test_every_transition_reaches_the_workspace_channel(
        self, notifying, seed, make_task, broadcasts
    ):
        task_id = await make_task("in_progress")

        # Nobody is notified here, but watchers still see the change
        await notifying.complete_task(seed.alice, task_id)

        [(workspace_id, payload)] = broadcasts
        assert workspace_id == seed.workspace_id
        assert payload["taskId"] == str(task_id)
        assert (payload["oldStatus"], payload["newStatus"]) == ("in_progress", "done")
