"""Persistence layer used by the lifecycle, permission and reporting services."""

from taskflow.repositories.events import TaskEventRepository
from taskflow.repositories.memberships import MembershipRepository
from taskflow.repositories.reporting import ReportingEdgeRepository
from taskflow.repositories.tasks import TaskRepository

__all__ = [
    "MembershipRepository",
    "ReportingEdgeRepository",
    "TaskEventRepository",
    "TaskRepository",
]
