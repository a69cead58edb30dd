"""WebSocket endpoint for real-time task notifications."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from jose import JWTError

from taskflow.api.v1.auth import decode_access_token
from taskflow.db.session import async_session_factory
from taskflow.repositories.memberships import MembershipRepository

router = APIRouter()
logger = structlog.get_logger()


class ConnectionManager:
    """Manages WebSocket connections per user and per workspace."""

    def __init__(self):
        # user_id -> open sockets (one user may have several tabs)
        self.user_connections: dict[UUID, set[WebSocket]] = {}
        # workspace_id -> open sockets
        self.workspace_connections: dict[UUID, set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: UUID, workspace_id: UUID | None = None):
        await websocket.accept()
        self.user_connections.setdefault(user_id, set()).add(websocket)
        if workspace_id:
            self.workspace_connections.setdefault(workspace_id, set()).add(websocket)

        logger.info(
            "websocket_connected",
            user_id=str(user_id),
            workspace_id=str(workspace_id) if workspace_id else None,
        )

    def disconnect(self, websocket: WebSocket, user_id: UUID, workspace_id: UUID | None = None):
        for channels, key in (
            (self.user_connections, user_id),
            (self.workspace_connections, workspace_id),
        ):
            if key is None or key not in channels:
                continue
            channels[key].discard(websocket)
            if not channels[key]:
                del channels[key]

        logger.info("websocket_disconnected", user_id=str(user_id))

    async def _send_all(self, sockets: set[WebSocket], message: dict) -> int:
        delivered = 0
        for connection in list(sockets):
            try:
                await connection.send_json(message)
                delivered += 1
            except (RuntimeError, WebSocketDisconnect):
                # Closed between lookup and send
                sockets.discard(connection)
        return delivered

    async def send_to_user(self, user_id: UUID, message: dict) -> int:
        """Send message to every open socket of a user."""
        return await self._send_all(self.user_connections.get(user_id, set()), message)

    async def broadcast_to_workspace(self, workspace_id: UUID, message: dict) -> int:
        return await self._send_all(self.workspace_connections.get(workspace_id, set()), message)


# Global connection manager instance
manager = ConnectionManager()


async def notify_user(user_id: UUID, notification_data: dict) -> None:
    """Send notification to a specific user."""
    delivered = await manager.send_to_user(
        user_id,
        {
            "type": "notification",
            "payload": notification_data,
        },
    )
    logger.debug("websocket_notification_sent", user_id=str(user_id), delivered=delivered)


async def broadcast_task_event(workspace_id: UUID, event_data: dict) -> None:
    """Send a task event to everyone watching a workspace."""
    delivered = await manager.broadcast_to_workspace(
        workspace_id,
        {
            "type": "task_event",
            "payload": event_data,
        },
    )
    logger.debug("websocket_task_event_sent", workspace_id=str(workspace_id), delivered=delivered)


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
    workspace_id: UUID | None = Query(None),
):
    """
    Real-time channel for notifications.

    Query parameters:
    - token: Required. Access token of the connecting user.
    - workspace_id: Optional. Subscribe to workspace broadcasts; the user
      must be a member.
    """
    try:
        user_id = decode_access_token(token)
    except JWTError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    if workspace_id:
        async with async_session_factory() as session:
            member = await MembershipRepository(session).get(user_id, workspace_id)
        if member is None:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    await manager.connect(websocket, user_id, workspace_id)

    try:
        while True:
            message = await websocket.receive_json()
            if message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        manager.disconnect(websocket, user_id, workspace_id)
