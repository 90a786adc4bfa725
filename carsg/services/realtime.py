"""In-process WebSocket hub for chat and report events.

Each client connection can authenticate with an app access token, join
conversation rooms and receive broadcasts. State lives in this process only.
"""

import asyncio
import logging
import time
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Optional, Set

from fastapi import HTTPException, WebSocket, WebSocketDisconnect

from ..auth.dependencies import AuthUser, user_from_token
from ..auth.tokens import TokenError
from . import chat, push


logger = logging.getLogger(__name__)

RATE_WINDOW_SECONDS = 60
MAX_MESSAGES_PER_WINDOW = 120
MAX_CONNECTIONS_PER_WINDOW = 60
POLICY_VIOLATION = 1008


class RateLimiter:
    """Sliding-window counter keyed by client address.

    A key is forgotten as soon as its window holds no hits.
    """

    def __init__(self, max_requests: int, window_seconds: float = RATE_WINDOW_SECONDS):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep: Optional[float] = None

    def _trim(self, hits: Deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

    def is_limited(self, key: str, now: Optional[float] = None) -> bool:
        now = time.monotonic() if now is None else now
        if self._last_sweep is None or now - self._last_sweep >= self.window_seconds:
            self.sweep(now)
        hits = self._hits.setdefault(key, deque())
        self._trim(hits, now)
        if len(hits) >= self.max_requests:
            return True
        hits.append(now)
        return False

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop keys whose window has lapsed. Returns how many were removed."""
        now = time.monotonic() if now is None else now
        self._last_sweep = now
        stale = []
        for key, hits in self._hits.items():
            self._trim(hits, now)
            if not hits:
                stale.append(key)
        for key in stale:
            del self._hits[key]
        return len(stale)

    def tracked_keys(self) -> int:
        return len(self._hits)

    def reset(self) -> None:
        self._hits.clear()
        self._last_sweep = None


def conversation_room(conversation_id: str) -> str:
    return f"conversation_{conversation_id}"


@dataclass
class Connection:
    id: str
    websocket: WebSocket
    ip: str
    user: Optional[AuthUser] = None
    rooms: Set[str] = field(default_factory=set)


class ConnectionManager:
    def __init__(self) -> None:
        self.connections: Dict[str, Connection] = {}
        self.rooms: Dict[str, Set[str]] = defaultdict(set)
        self.connection_limiter = RateLimiter(MAX_CONNECTIONS_PER_WINDOW)
        self.message_limiter = RateLimiter(MAX_MESSAGES_PER_WINDOW)

    # -- bookkeeping -------------------------------------------------------

    async def connect(self, websocket: WebSocket) -> Optional[Connection]:
        ip = websocket.client.host if websocket.client else "unknown"
        await websocket.accept()
        if self.connection_limiter.is_limited(ip):
            logger.warning(f"Connection rate limited for IP: {ip}")
            await websocket.close(code=POLICY_VIOLATION, reason="Rate limit exceeded")
            return None

        connection = Connection(id=uuid.uuid4().hex, websocket=websocket, ip=ip)
        self.connections[connection.id] = connection
        await websocket.send_json({
            "type": "connected",
            "message": "Connected to Cars-G WebSocket server",
            "connectionId": connection.id,
        })
        return connection

    def disconnect(self, connection_id: str) -> None:
        connection = self.connections.pop(connection_id, None)
        if connection is None:
            return
        for room in connection.rooms:
            members = self.rooms.get(room)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    del self.rooms[room]
        logger.info(f"Connection {connection_id} closed")

    def join(self, connection: Connection, room: str) -> None:
        connection.rooms.add(room)
        self.rooms[room].add(connection.id)

    def leave(self, connection: Connection, room: str) -> None:
        connection.rooms.discard(room)
        members = self.rooms.get(room)
        if members is not None:
            members.discard(connection.id)
            if not members:
                del self.rooms[room]

    # -- delivery ----------------------------------------------------------

    async def _send(self, connection_id: str, event: Dict[str, Any]) -> bool:
        connection = self.connections.get(connection_id)
        if connection is None:
            return False
        try:
            await connection.websocket.send_json(event)
            return True
        except Exception as e:
            logger.warning(f"Dropping connection {connection_id} after send failure: {e}")
            self.disconnect(connection_id)
            return False

    async def broadcast(self, event: Dict[str, Any]) -> int:
        results = [await self._send(connection_id, event) for connection_id in list(self.connections)]
        return sum(results)

    async def send_to_room(self, room: str, event: Dict[str, Any], exclude: Optional[str] = None) -> int:
        members = [cid for cid in self.rooms.get(room, set()) if cid != exclude]
        results = [await self._send(connection_id, event) for connection_id in members]
        return sum(results)

    # -- protocol ----------------------------------------------------------

    async def _error(self, connection: Connection, message: str) -> None:
        await connection.websocket.send_json({"type": "error", "message": message})

    async def _authenticate(self, connection: Connection, message: Dict[str, Any]) -> None:
        token = message.get("accessToken")
        if not token:
            await self._error(connection, "Access token required")
            return
        try:
            connection.user = user_from_token(token)
        except TokenError:
            await self._error(connection, "Invalid access token")
            return
        await connection.websocket.send_json({
            "type": "auth_success",
            "user": {"id": connection.user.id, "email": connection.user.email},
        })
        logger.info(f"User {connection.user.id} authenticated on connection {connection.id}")

    async def _join(self, connection: Connection, conversation_id: str) -> None:
        try:
            await asyncio.to_thread(chat.get_conversation, conversation_id, connection.user.id)
        except HTTPException as e:
            await self._error(connection, str(e.detail))
            return
        self.join(connection, conversation_room(conversation_id))

    async def _send_chat_message(self, connection: Connection, message: Dict[str, Any]) -> None:
        conversation_id = message.get("conversation_id")
        content = message.get("content")
        message_type = message.get("message_type", "text")
        if not all(isinstance(value, str) for value in (conversation_id, content, message_type)):
            await connection.websocket.send_json({
                "type": "message_error",
                "message": "conversation_id, content and message_type must be strings",
            })
            return

        try:
            result = await asyncio.to_thread(chat.send_message, conversation_id, connection.user.id, content, message_type)
        except HTTPException as e:
            await connection.websocket.send_json({"type": "message_error", "message": str(e.detail)})
            return

        stored = result["message"]
        await self.send_to_room(conversation_room(stored["conversation_id"]), {
            "type": "new_message",
            "data": {**stored, "sender": {"id": connection.user.id, "username": connection.user.username}},
        })
        if result["recipient_id"]:
            await asyncio.to_thread(
                push.notify_user,
                result["recipient_id"],
                f"New message from {connection.user.username or 'a Cars-G user'}",
                stored["content"][:120],
                "chat",
                f"/chat/{stored['conversation_id']}",
            )

    async def handle_message(self, connection: Connection, message: Dict[str, Any]) -> None:
        message_type = message.get("type")
        if message_type == "auth":
            await self._authenticate(connection, message)
            return
        if connection.user is None:
            await self._error(connection, "Authentication required")
            return

        conversation_id = str(message.get("conversation_id") or "")
        if message_type == "join_conversation":
            await self._join(connection, conversation_id)
        elif message_type == "leave_conversation":
            self.leave(connection, conversation_room(conversation_id))
        elif message_type in ("typing_start", "typing_stop"):
            room = conversation_room(conversation_id)
            if room not in connection.rooms:
                return
            event = {"type": "user_typing", "userId": connection.user.id, "username": connection.user.username}
            if message_type == "typing_stop":
                event = {"type": "user_stopped_typing", "userId": connection.user.id}
            await self.send_to_room(room, {**event, "conversationId": conversation_id}, exclude=connection.id)
        elif message_type == "send_message":
            await self._send_chat_message(connection, message)
        else:
            await self._error(connection, f"Unknown message type: {message_type}")

    async def serve(self, websocket: WebSocket) -> None:
        connection = await self.connect(websocket)
        if connection is None:
            return
        try:
            while True:
                try:
                    message = await websocket.receive_json()
                except (ValueError, KeyError):
                    await self._error(connection, "Invalid message format")
                    continue
                if not isinstance(message, dict):
                    await self._error(connection, "Invalid message format")
                    continue
                if self.message_limiter.is_limited(connection.ip):
                    await self._error(connection, "Rate limit exceeded")
                    continue
                try:
                    await self.handle_message(connection, message)
                except WebSocketDisconnect:
                    raise
                except Exception as e:
                    logger.error(f"Failed to handle {message.get('type')} on connection {connection.id}: {e}", exc_info=True)
                    await self._error(connection, "Failed to process message")
        except WebSocketDisconnect:
            pass
        finally:
            self.disconnect(connection.id)


manager = ConnectionManager()


async def publish_report_event(event_type: str, report: Dict[str, Any]) -> None:
    """Broadcast a report change; failures never reach the HTTP caller."""
    try:
        delivered = await manager.broadcast({"type": event_type, "data": report})
        logger.debug(f"{event_type} for report {report.get('id')} delivered to {delivered} clients")
    except Exception as e:
        logger.warning(f"Failed to broadcast {event_type}: {e}")
