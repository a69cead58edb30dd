"""Request-scoped service wiring."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.api.v1.websocket import broadcast_task_event, notify_user
from taskflow.db.session import async_session_factory, get_db_session
from taskflow.domain.events import EventSink
from taskflow.services.notification import NotificationEventSink
from taskflow.services.permission import PermissionService
from taskflow.services.reporting import ReportingService
from taskflow.services.task_lifecycle import TaskLifecycleService


def get_event_sink() -> EventSink:
    return NotificationEventSink(
        async_session_factory, push=notify_user, broadcast=broadcast_task_event
    )


def get_permission_service(
    db: AsyncSession = Depends(get_db_session),
) -> PermissionService:
    # FastAPI caches dependencies per request, so every service in one
    # request shares this instance and its permission cache.
    return PermissionService(db)


def get_lifecycle_service(
    db: AsyncSession = Depends(get_db_session),
    permissions: PermissionService = Depends(get_permission_service),
    event_sink: EventSink = Depends(get_event_sink),
) -> TaskLifecycleService:
    return TaskLifecycleService(db, permissions, event_sink)


def get_reporting_service(
    db: AsyncSession = Depends(get_db_session),
    permissions: PermissionService = Depends(get_permission_service),
) -> ReportingService:
    return ReportingService(db, permissions)


Permissions = Annotated[PermissionService, Depends(get_permission_service)]
Lifecycle = Annotated[TaskLifecycleService, Depends(get_lifecycle_service)]
Reporting = Annotated[ReportingService, Depends(get_reporting_service)]
