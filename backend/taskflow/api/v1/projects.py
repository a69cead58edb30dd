"""Project reporting hierarchy endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from taskflow.api.deps import Reporting
from taskflow.api.v1.auth import CurrentUser
from taskflow.errors import TaskflowError, handle_domain_error

router = APIRouter()


class ReportingRequest(BaseModel):
    """Assign (or with a null manager, clear) the manager of several users."""

    subordinate_ids: list[UUID] = Field(default_factory=list)
    manager_id: UUID | None = None


class ReportingResponse(BaseModel):
    project_id: UUID
    manager_id: UUID | None
    updated: list[UUID]


class SubordinatesResponse(BaseModel):
    project_id: UUID
    manager_id: UUID
    subordinates: list[UUID]


@router.post("/{project_id}/reporting", response_model=ReportingResponse)
async def set_reporting_relation(
    project_id: UUID,
    request: ReportingRequest,
    current_user: CurrentUser,
    reporting: Reporting,
):
    try:
        result = await reporting.set_reporting_relation(
            current_user.id, project_id, request.subordinate_ids, request.manager_id
        )
    except TaskflowError as e:
        raise handle_domain_error(e)
    return ReportingResponse(
        project_id=project_id,
        manager_id=request.manager_id,
        updated=result.success,
    )


@router.get("/{project_id}/subordinates/{manager_id}", response_model=SubordinatesResponse)
async def get_subordinates(
    project_id: UUID,
    manager_id: UUID,
    current_user: CurrentUser,
    reporting: Reporting,
    direct: bool = Query(False, description="Only direct reports"),
):
    """Everyone who reports to the manager, directly or transitively."""
    try:
        subordinates = await reporting.list_subordinates(
            current_user.id, project_id, manager_id, direct_only=direct
        )
    except TaskflowError as e:
        raise handle_domain_error(e)
    return SubordinatesResponse(
        project_id=project_id,
        manager_id=manager_id,
        subordinates=subordinates,
    )
