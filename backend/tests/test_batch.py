"""Batch complete/delete partitioning and the shared coordinator."""

from uuid import uuid4

import pytest

from taskflow.errors import NotFoundError, ValidationError
from taskflow.services.batch import BatchCoordinator, BatchMode, Outcome


def partition_ids(result):
    return set(result.success) | set(result.auto_reviewed) | {f.item for f in result.failed}


class TestBatchComplete:
    async def test_assignee_is_routed_to_review(self, lifecycle, seed, make_task, reload):
        task_id = await make_task("in_progress")

        result = await lifecycle.batch_complete(seed.alice, seed.workspace_id, [task_id])

        assert result.auto_reviewed == [task_id]
        assert result.success == []
        assert result.failed == []
        assert (await reload(task_id)).status == "review"

    async def test_reviewer_completes_directly(self, lifecycle, seed, make_task, reload):
        in_progress = await make_task("in_progress")
        in_review = await make_task("review")

        result = await lifecycle.batch_complete(
            seed.lead, seed.workspace_id, [in_progress, in_review]
        )

        assert result.success == [in_progress, in_review]
        assert (await reload(in_progress)).status == "done"
        assert (await reload(in_review)).status == "done"

    async def test_mixed_batch_is_partition_complete(self, lifecycle, seed, make_task, reload):
        routed = await make_task("in_progress")
        not_started = await make_task("todo")
        under_review = await make_task("review")
        foreign = await make_task("in_progress", project=seed.other_project_id)
        missing = uuid4()
        ids = [routed, not_started, under_review, foreign, missing]

        result = await lifecycle.batch_complete(seed.alice, seed.workspace_id, ids)

        assert result.auto_reviewed == [routed]
        assert result.success == []
        reasons = {f.item: f.reason for f in result.failed}
        assert reasons == {
            not_started: "INVALID_TRANSITION",
            under_review: "FORBIDDEN",
            foreign: "SCOPE_MISMATCH",
            missing: "NOT_FOUND",
        }
        assert partition_ids(result) == set(ids)
        assert len(result.entries) == len(ids)
        # One failure did not stop the others
        assert (await reload(routed)).status == "review"
        assert (await reload(under_review)).status == "review"

    async def test_duplicates_are_processed_once(self, lifecycle, seed, make_task):
        task_id = await make_task("review")

        result = await lifecycle.batch_complete(seed.lead, seed.workspace_id, [task_id, task_id])

        assert result.success == [task_id]
        assert result.failed == []

    async def test_empty_batch_is_invalid(self, lifecycle, seed):
        with pytest.raises(ValidationError):
            await lifecycle.batch_complete(seed.alice, seed.workspace_id, [])

    async def test_non_member_fails_every_item(self, lifecycle, seed, make_task):
        task_id = await make_task("in_progress")

        result = await lifecycle.batch_complete(seed.outsider, seed.workspace_id, [task_id])

        assert [f.reason for f in result.failed] == ["FORBIDDEN"]


class TestBatchDelete:
    async def test_cascade_is_counted(self, lifecycle, seed, make_task, reload):
        parent = await make_task("todo")
        child = await make_task("todo", parent=parent)
        await make_task("todo", parent=child)
        lone = await make_task("done")

        result = await lifecycle.batch_delete(seed.bob, seed.workspace_id, [parent, lone])

        assert result.success == [parent, lone]
        assert result.extra["subtask_count"] == 2
        assert await reload(child) is None

    async def test_subtask_removed_by_earlier_item_is_not_double_counted(
        self, lifecycle, seed, make_task
    ):
        parent = await make_task("todo")
        child = await make_task("todo", parent=parent)

        result = await lifecycle.batch_delete(seed.bob, seed.workspace_id, [parent, child])

        assert result.success == [parent, child]
        assert result.extra["subtask_count"] == 1

    async def test_per_item_authorization(self, lifecycle, seed, make_task, reload):
        mine = await make_task("todo", creator=seed.alice)
        theirs = await make_task("todo", creator=seed.bob)

        result = await lifecycle.batch_delete(seed.alice, seed.workspace_id, [mine, theirs])

        assert result.success == [mine]
        assert [(f.item, f.reason) for f in result.failed] == [(theirs, "FORBIDDEN")]
        assert await reload(theirs) is not None

    async def test_scope_mismatch(self, lifecycle, seed, make_task):
        foreign = await make_task("todo", project=seed.other_project_id, creator=seed.owner)

        result = await lifecycle.batch_delete(seed.owner, seed.workspace_id, [foreign])

        assert [f.reason for f in result.failed] == ["SCOPE_MISMATCH"]


class TestCoordinator:
    async def test_isolated_mode_records_domain_errors(self):
        async def apply(item):
            if item == 2:
                raise NotFoundError("Thing", item)
            return Outcome.SUCCESS

        result = await BatchCoordinator(BatchMode.ISOLATED).run([1, 2, 3], apply)

        assert result.success == [1, 3]
        assert [(f.item, f.reason) for f in result.failed] == [(2, "NOT_FOUND")]

    async def test_infrastructure_errors_abort(self):
        async def apply(item):
            raise ConnectionError("database unreachable")

        with pytest.raises(ConnectionError):
            await BatchCoordinator(BatchMode.ISOLATED).run([1], apply)

    async def test_all_or_nothing_validates_first(self):
        applied = []

        async def validate(item):
            if item == 3:
                raise ValidationError("bad item")

        async def apply(item):
            applied.append(item)

        with pytest.raises(ValidationError):
            await BatchCoordinator(BatchMode.ALL_OR_NOTHING).run([1, 2, 3], apply, validate)
        assert applied == []

    async def test_max_items(self):
        async def apply(item):
            return None

        with pytest.raises(ValidationError):
            await BatchCoordinator(BatchMode.ISOLATED, max_items=2).run([1, 2, 3], apply)
