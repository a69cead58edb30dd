"""SQLAlchemy models package."""

from taskflow.models.activity import Notification
from taskflow.models.project import (
    Project,
    ProjectMember,
    ReportingEdge,
    Task,
    TaskEvent,
)
from taskflow.models.user import User
from taskflow.models.workspace import Workspace, WorkspaceMember

__all__ = [
    "Notification",
    "Project",
    "ProjectMember",
    "ReportingEdge",
    "Task",
    "TaskEvent",
    "User",
    "Workspace",
    "WorkspaceMember",
]
