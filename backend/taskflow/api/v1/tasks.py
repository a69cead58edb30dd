"""Tasks API endpoints."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from taskflow.api.deps import Lifecycle
from taskflow.api.v1.auth import CurrentUser
from taskflow.errors import TaskflowError, handle_domain_error
from taskflow.services.batch import BatchResult
from taskflow.services.task_lifecycle import TransitionResult

router = APIRouter()
logger = structlog.get_logger()


# Request/Response Models
class TaskCreate(BaseModel):
    """Create a new task."""

    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    project_id: UUID
    priority: str | None = None
    assignee_id: UUID | None = None
    parent_task_id: UUID | None = None


class TaskResponse(BaseModel):
    """Task response model."""

    id: UUID
    title: str
    description: str | None
    status: str
    priority: str
    project_id: UUID
    created_by_id: UUID | None
    assignee_id: UUID | None
    parent_task_id: UUID | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TransitionResponse(BaseModel):
    """Outcome of a status transition."""

    task: TaskResponse
    old_status: str
    new_status: str
    changed: bool
    available_transitions: list[str]


class RejectRequest(BaseModel):
    reason: str | None = None


class StatusChangeRequest(BaseModel):
    status: str


class TaskEventResponse(BaseModel):
    id: UUID
    task_id: UUID
    actor_id: UUID | None
    event_type: str
    old_status: str | None
    new_status: str | None
    extra_data: dict | None
    created_at: datetime

    class Config:
        from_attributes = True


class DeleteResponse(BaseModel):
    deleted_count: int
    subtask_count: int


class BatchRequest(BaseModel):
    task_ids: list[UUID]


class BatchFailure(BaseModel):
    id: UUID
    reason: str
    message: str


class BatchResponse(BaseModel):
    """Partition of the distinct requested ids."""

    success: list[UUID]
    failed: list[BatchFailure]
    auto_reviewed: list[UUID] | None = None
    subtask_count: int | None = None


def _transition_response(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(
        task=TaskResponse.model_validate(result.task),
        old_status=result.old_status.value,
        new_status=result.new_status.value,
        changed=result.changed,
        available_transitions=result.available_transitions,
    )


def _batch_response(result: BatchResult[UUID], include_auto_reviewed: bool = False) -> BatchResponse:
    return BatchResponse(
        success=result.success,
        failed=[BatchFailure(id=f.item, reason=f.reason, message=f.message) for f in result.failed],
        auto_reviewed=result.auto_reviewed if include_auto_reviewed else None,
        subtask_count=result.extra.get("subtask_count"),
    )


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    current_user: CurrentUser,
    lifecycle: Lifecycle,
) -> TaskResponse:
    """Create a task (or subtask) in todo."""
    try:
        task = await lifecycle.create_task(
            actor_id=current_user.id,
            project_id=task_data.project_id,
            title=task_data.title,
            description=task_data.description,
            priority=task_data.priority,
            assignee_id=task_data.assignee_id,
            parent_task_id=task_data.parent_task_id,
        )
    except TaskflowError as e:
        raise handle_domain_error(e)
    return TaskResponse.model_validate(task)


@router.post("/{task_id}/start", response_model=TransitionResponse)
async def start_task(task_id: UUID, current_user: CurrentUser, lifecycle: Lifecycle):
    try:
        result = await lifecycle.start_task(current_user.id, task_id)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return _transition_response(result)


@router.post("/{task_id}/submit", response_model=TransitionResponse)
async def submit_task(task_id: UUID, current_user: CurrentUser, lifecycle: Lifecycle):
    """Submit an in-progress task for review."""
    try:
        result = await lifecycle.submit_for_review(current_user.id, task_id)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return _transition_response(result)


@router.post("/{task_id}/approve", response_model=TransitionResponse)
async def approve_task(task_id: UUID, current_user: CurrentUser, lifecycle: Lifecycle):
    try:
        result = await lifecycle.approve_task(current_user.id, task_id)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return _transition_response(result)


@router.post("/{task_id}/reject", response_model=TransitionResponse)
async def reject_task(
    task_id: UUID,
    request: RejectRequest,
    current_user: CurrentUser,
    lifecycle: Lifecycle,
):
    """Send a task under review back with a reason."""
    try:
        result = await lifecycle.reject_task(current_user.id, task_id, request.reason)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return _transition_response(result)


@router.post("/{task_id}/complete", response_model=TransitionResponse)
async def complete_task(task_id: UUID, current_user: CurrentUser, lifecycle: Lifecycle):
    try:
        result = await lifecycle.complete_task(current_user.id, task_id)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return _transition_response(result)


@router.post("/{task_id}/reopen", response_model=TransitionResponse)
async def reopen_task(task_id: UUID, current_user: CurrentUser, lifecycle: Lifecycle):
    try:
        result = await lifecycle.reopen_task(current_user.id, task_id)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return _transition_response(result)


@router.post("/{task_id}/status", response_model=TransitionResponse)
async def change_status(
    task_id: UUID,
    request: StatusChangeRequest,
    current_user: CurrentUser,
    lifecycle: Lifecycle,
):
    """Move a task to a target status via the matching transition."""
    try:
        result = await lifecycle.change_status(current_user.id, task_id, request.status)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return _transition_response(result)


@router.delete("/{task_id}", response_model=DeleteResponse)
async def delete_task(task_id: UUID, current_user: CurrentUser, lifecycle: Lifecycle):
    """Delete a task and all its subtasks."""
    try:
        counts = await lifecycle.delete_task(current_user.id, task_id)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return DeleteResponse(**counts)


@router.get("/{task_id}/events", response_model=list[TaskEventResponse])
async def get_task_events(
    task_id: UUID,
    current_user: CurrentUser,
    lifecycle: Lifecycle,
    limit: int = Query(20, ge=1, le=100),
):
    """Recent lifecycle events, newest first."""
    try:
        events = await lifecycle.get_task_events(current_user.id, task_id, limit)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return [TaskEventResponse.model_validate(e) for e in events]


# Batch operations are scoped to a workspace
batch_router = APIRouter()


@batch_router.post("/{workspace_id}/tasks/batch/complete", response_model=BatchResponse)
async def batch_complete(
    workspace_id: UUID,
    request: BatchRequest,
    current_user: CurrentUser,
    lifecycle: Lifecycle,
):
    """Complete many tasks; items that need review are submitted instead."""
    try:
        result = await lifecycle.batch_complete(current_user.id, workspace_id, request.task_ids)
    except TaskflowError as e:
        raise handle_domain_error(e)

    logger.info(
        "batch_complete_requested",
        workspace_id=str(workspace_id),
        success=len(result.success),
        auto_reviewed=len(result.auto_reviewed),
        failed=len(result.failed),
    )
    return _batch_response(result, include_auto_reviewed=True)


@batch_router.post("/{workspace_id}/tasks/batch/delete", response_model=BatchResponse)
async def batch_delete(
    workspace_id: UUID,
    request: BatchRequest,
    current_user: CurrentUser,
    lifecycle: Lifecycle,
):
    """Delete many tasks with their subtasks."""
    try:
        result = await lifecycle.batch_delete(current_user.id, workspace_id, request.task_ids)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return _batch_response(result)
