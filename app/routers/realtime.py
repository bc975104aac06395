from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, Query, status
from typing import Any, Dict, Iterable, Optional, Set, Tuple
import anyio.to_thread
import anyio.from_thread
import json
import logging

from ..db import get_session
from ..models import Notification, STUDENT, TEACHER
from ..crud.classes import is_enrolled, get_owned_class
from ..dependencies.auth import user_from_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


class ConnectionManager:
    def __init__(self):
        # room -> sockets; rooms are "user:{username}" and "class:{name}"
        self.rooms: Dict[str, Set[WebSocket]] = {}
        self.active_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket, username: str):
        await websocket.accept()
        self.active_connections.add(websocket)
        self.join(websocket, f"user:{username}")
        logger.info(f"User {username} connected")

    def join(self, websocket: WebSocket, room: str):
        self.rooms.setdefault(room, set()).add(websocket)

    def leave(self, websocket: WebSocket, room: str):
        members = self.rooms.get(room)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self.rooms[room]

    def disconnect(self, websocket: WebSocket):
        self.active_connections.discard(websocket)
        for room in list(self.rooms):
            self.leave(websocket, room)

    def has_listeners(self, room: str) -> bool:
        return bool(self.rooms.get(room))

    async def broadcast(self, room: str, event: str, data: Any):
        """Send an event frame to every socket in the room"""
        disconnected = set()
        for connection in list(self.rooms.get(room, ())):
            try:
                await connection.send_json({"event": event, "data": data})
            except Exception as e:
                logger.warning(f"Dropping socket in {room}: {e}")
                disconnected.add(connection)

        for connection in disconnected:
            self.disconnect(connection)


manager = ConnectionManager()


def _jsonable(data: Any) -> Any:
    return json.loads(json.dumps(data, default=str))


def emit(room: str, event: str, data: Any):
    """
    Emits an event from a sync request handler.

    Delivery is best effort: failures are logged and never reach the caller.
    """
    if not manager.has_listeners(room):
        return
    try:
        anyio.from_thread.run(manager.broadcast, room, event, _jsonable(data))
    except Exception as e:
        logger.error(f"Failed to emit {event} to {room}: {e}")


def emit_to_class(class_name: str, event: str, data: Any):
    emit(f"class:{class_name}", event, data)


def emit_to_user(username: str, event: str, data: Any):
    emit(f"user:{username}", event, data)


def emit_notifications(notifications: Iterable[Notification]):
    for note in notifications:
        emit_to_user(note.recipient, "new-notification", note.model_dump())


def _authenticate(token: str) -> Optional[Tuple[str, str]]:
    """Username and role for a valid access token, else None"""
    with next(get_session()) as session:
        try:
            user = user_from_token(token, session)
        except HTTPException as e:
            logger.warning(f"WebSocket auth error: {e.detail}")
            return None
        return user.username, user.role


def _can_join(username: str, role: str, class_name: str) -> bool:
    with next(get_session()) as session:
        if role == STUDENT:
            return is_enrolled(session, class_name, username)
        if role == TEACHER:
            return get_owned_class(session, class_name, username) is not None
        return True


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str = Query(None)):
    """Real-time events; rooms are joined per user and per class"""
    identity = await anyio.to_thread.run_sync(_authenticate, token) if token else None
    if identity is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    username, role = identity
    await manager.connect(websocket, username)

    try:
        while True:
            message = await websocket.receive_json()
            action = message.get("action")
            class_name = message.get("class_name")

            if action == "join-class" and class_name:
                allowed = await anyio.to_thread.run_sync(_can_join, username, role, class_name)
                if not allowed:
                    await websocket.send_json({"event": "error", "data": {"message": "Not a member of this class"}})
                    continue
                room = f"class:{class_name}"
                manager.join(websocket, room)
                await websocket.send_json({"event": "joined", "data": {"room": room}})

            elif action == "leave-class" and class_name:
                room = f"class:{class_name}"
                manager.leave(websocket, room)
                await websocket.send_json({"event": "left", "data": {"room": room}})

            elif action == "ping":
                await websocket.send_json({"event": "pong", "data": {}})

    except WebSocketDisconnect:
        manager.disconnect(websocket)
        logger.info(f"User {username} disconnected")
    except Exception as e:
        logger.error(f"WebSocket error for {username}: {e}")
        manager.disconnect(websocket)
