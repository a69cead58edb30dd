"""Business logic services."""

from taskflow.services.batch import BatchCoordinator, BatchMode, BatchResult
from taskflow.services.notification import NotificationEventSink, NotificationService
from taskflow.services.permission import PermissionService
from taskflow.services.reporting import ReportingService
from taskflow.services.task_lifecycle import TaskLifecycleService, TransitionResult

__all__ = [
    "BatchCoordinator",
    "BatchMode",
    "BatchResult",
    "NotificationEventSink",
    "NotificationService",
    "PermissionService",
    "ReportingService",
    "TaskLifecycleService",
    "TransitionResult",
]
