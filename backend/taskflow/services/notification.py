"""Notification service for creating in-app notifications."""

from collections.abc import Awaitable, Callable
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskflow.config import get_settings
from taskflow.domain.events import TaskStatusChanged
from taskflow.domain.task_state_machine import Transition
from taskflow.models.activity import Notification

logger = structlog.get_logger()

PushFn = Callable[[UUID, dict], Awaitable[None]]


class NotificationService:
    """Service for creating user notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify(
        self,
        user_id: UUID,
        notification_type: str,
        title: str,
        message: str,
        workspace_id: UUID | None = None,
        target_type: str | None = None,
        target_id: UUID | None = None,
        sender_id: UUID | None = None,
        extra_data: dict | None = None,
    ) -> Notification | None:
        """
        Create a notification for a user.

        Args:
            user_id: The recipient user's ID
            notification_type: Type of notification (e.g., 'task_approved')
            title: Notification title
            message: Notification body
            workspace_id: Workspace context
            target_type: Optional entity type for navigation (e.g., 'task')
            target_id: Optional entity ID for navigation
            sender_id: Optional sender/actor user ID
            extra_data: Optional additional context data

        Returns:
            Created Notification or None if it was suppressed
        """
        # Don't notify users about their own actions
        if sender_id and sender_id == user_id:
            logger.debug(
                "skipping_self_notification",
                user_id=str(user_id),
                notification_type=notification_type,
            )
            return None

        notification = Notification(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            workspace_id=workspace_id,
            target_type=target_type,
            target_id=target_id,
            sender_id=sender_id,
            extra_data=extra_data,
            is_read=False,
        )
        self.db.add(notification)
        await self.db.commit()

        logger.info(
            "notification_created",
            notification_id=str(notification.id),
            user_id=str(user_id),
            notification_type=notification_type,
        )

        return notification


def _recipient(event: TaskStatusChanged) -> tuple[UUID | None, str, str]:
    """Who hears about a transition, with notification type and title."""
    if event.transition == Transition.SUBMIT.value:
        return event.leader_id, "task_review_request", f"Review requested: {event.task_title}"
    if event.transition == Transition.APPROVE.value:
        return event.assignee_id, "task_approved", f"Task approved: {event.task_title}"
    if event.transition == Transition.REJECT.value:
        return event.assignee_id, "task_rejected", f"Changes requested: {event.task_title}"
    return event.assignee_id, "task_status_changed", f"Task updated: {event.task_title}"


class NotificationEventSink:
    """Turns committed transitions into stored notifications and realtime pushes.

    Uses its own session so a notification failure never touches the
    caller's transaction. Every transition is also broadcast to the
    task's workspace channel, including ones that notify nobody.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        push: PushFn | None = None,
        broadcast: PushFn | None = None,
    ):
        self.session_factory = session_factory
        self.push = push
        self.broadcast = broadcast
        self.settings = get_settings()

    async def emit(self, event: TaskStatusChanged) -> None:
        if not self.settings.notifications_enabled:
            return

        await self._notify(event)

        if self.broadcast is not None and self.settings.websocket_push_enabled:
            await self.broadcast(event.workspace_id, event.to_payload())

    async def _notify(self, event: TaskStatusChanged) -> None:
        recipient_id, notification_type, title = _recipient(event)
        if recipient_id is None:
            return

        message = f"Status changed from {event.old_status} to {event.new_status}"
        if event.reason:
            message = f"{message}: {event.reason}"

        async with self.session_factory() as session:
            notification = await NotificationService(session).notify(
                user_id=recipient_id,
                notification_type=notification_type,
                title=title,
                message=message,
                workspace_id=event.workspace_id,
                target_type="task",
                target_id=event.task_id,
                sender_id=event.actor_id,
                extra_data=event.to_payload(),
            )

        if notification is None or self.push is None or not self.settings.websocket_push_enabled:
            return

        await self.push(
            recipient_id,
            {
                "id": str(notification.id),
                "notification_type": notification_type,
                "title": title,
                "message": message,
                "event": event.to_payload(),
            },
        )
