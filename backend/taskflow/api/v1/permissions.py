"""Workspace permission endpoints."""

from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from taskflow.api.deps import Permissions
from taskflow.api.v1.auth import CurrentUser
from taskflow.domain.permissions import CAPABILITY_CATALOG, ResolvedPermissions
from taskflow.errors import TaskflowError, handle_domain_error

router = APIRouter()

AVAILABLE_PERMISSIONS = sorted(c.value for c in CAPABILITY_CATALOG)


class PermissionsResponse(BaseModel):
    """Effective permissions of one member."""

    user_id: UUID
    workspace_id: UUID
    role: str
    permissions: list[str]
    has_override: bool
    available_permissions: list[str]


class MemberPermissionsList(BaseModel):
    members: list[PermissionsResponse]
    available_permissions: list[str]


class PermissionsUpdate(BaseModel):
    # None clears the override and restores the role defaults
    permissions: list[str] | None


def permissions_response(resolved: ResolvedPermissions) -> PermissionsResponse:
    return PermissionsResponse(
        user_id=resolved.user_id,
        workspace_id=resolved.workspace_id,
        role=resolved.role.value,
        permissions=resolved.sorted_capabilities(),
        has_override=resolved.has_override,
        available_permissions=AVAILABLE_PERMISSIONS,
    )


@router.get("/{workspace_id}/me", response_model=PermissionsResponse)
async def get_my_permissions(
    workspace_id: UUID,
    current_user: CurrentUser,
    permissions: Permissions,
):
    try:
        resolved = await permissions.resolve_permissions(current_user.id, workspace_id)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return permissions_response(resolved)


@router.get("/{workspace_id}", response_model=MemberPermissionsList)
async def list_member_permissions(
    workspace_id: UUID,
    current_user: CurrentUser,
    permissions: Permissions,
):
    """Every member's effective permissions (owner/director only)."""
    try:
        members = await permissions.list_member_permissions(current_user.id, workspace_id)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return MemberPermissionsList(
        members=[permissions_response(m) for m in members],
        available_permissions=AVAILABLE_PERMISSIONS,
    )


@router.get("/{workspace_id}/{user_id}", response_model=PermissionsResponse)
async def get_user_permissions(
    workspace_id: UUID,
    user_id: UUID,
    current_user: CurrentUser,
    permissions: Permissions,
):
    try:
        resolved = await permissions.get_user_permissions(current_user.id, user_id, workspace_id)
    except TaskflowError as e:
        raise handle_domain_error(e)
    return permissions_response(resolved)


@router.put("/{workspace_id}/{user_id}", response_model=PermissionsResponse)
async def update_user_permissions(
    workspace_id: UUID,
    user_id: UUID,
    update: PermissionsUpdate,
    current_user: CurrentUser,
    permissions: Permissions,
):
    """Replace a member's permission override (workspace owner only)."""
    try:
        resolved = await permissions.update_user_permissions(
            current_user.id, user_id, workspace_id, update.permissions
        )
    except TaskflowError as e:
        raise handle_domain_error(e)
    return permissions_response(resolved)
