"""Workspace membership endpoints."""

from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from taskflow.api.deps import Permissions
from taskflow.api.v1.auth import CurrentUser
from taskflow.api.v1.permissions import PermissionsResponse, permissions_response
from taskflow.errors import TaskflowError, handle_domain_error

router = APIRouter()


class RoleUpdate(BaseModel):
    role: str


@router.put("/{workspace_id}/members/{user_id}/role", response_model=PermissionsResponse)
async def set_member_role(
    workspace_id: UUID,
    user_id: UUID,
    update: RoleUpdate,
    current_user: CurrentUser,
    permissions: Permissions,
):
    """Change a member's workspace role (owner only). Legacy role names are accepted."""
    try:
        resolved = await permissions.set_workspace_role(
            current_user.id, user_id, workspace_id, update.role
        )
    except TaskflowError as e:
        raise handle_domain_error(e)
    return permissions_response(resolved)
