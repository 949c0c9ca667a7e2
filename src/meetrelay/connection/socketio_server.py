"""Socket.IO server for the meeting relay.

Inbound events (default namespace):
- connect: authenticate, open a session
- newUser / joinMeet: join a meeting room
- sendMessage: relay a chat message to the room
- leaveMeet: leave the current room and stay connected
- disconnect: leave the current room and close the session

Outbound events: usersOnline, newMessage, meetFull, socketServerError.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Dict, Optional

import socketio

from meetrelay.config.settings import Settings
from meetrelay.connection.gateway import ConnectionGateway
from meetrelay.connection.router import (
    SOCKET_SERVER_ERROR,
    EventOutcome,
    MeetingEventRouter,
    error_payload,
)
from meetrelay.connection.session import SessionRegistry
from meetrelay.rooms.store import MembershipStore

logger = logging.getLogger(__name__)


class SocketIOEmitter:
    """Adapts ``socketio.AsyncServer`` to the router's emitter interface."""

    def __init__(self, sio: socketio.AsyncServer) -> None:
        self.sio = sio

    async def emit(self, event: str, data: Any = None, to: Optional[str] = None) -> None:
        await self.sio.emit(event, data, to=to)

    async def enter_room(self, sid: str, room: str) -> None:
        await self.sio.enter_room(sid, room)

    async def leave_room(self, sid: str, room: str) -> None:
        await self.sio.leave_room(sid, room)


def create_sio(settings: Settings) -> socketio.AsyncServer:
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=settings.origins,
        cors_credentials=True,
        ping_timeout=settings.ping_timeout,
        ping_interval=settings.ping_interval,
        logger=False,  # socket.io internal logging is too verbose
        engineio_logger=False,
    )


def _join_args(room_id: Any, user_id: Any) -> tuple:
    """Accept ``(roomId, userId)`` or a single ``{meetId|roomId, userId}`` object."""
    if isinstance(room_id, dict):
        payload: Dict[str, Any] = room_id
        return payload.get("meetId") or payload.get("roomId"), payload.get("userId", user_id)
    return room_id, user_id


class RelayServer:
    """Owns the Socket.IO server, the live sessions and the event router."""

    def __init__(
        self,
        settings: Settings,
        store: MembershipStore,
        gateway: Optional[ConnectionGateway] = None,
        sio: Optional[socketio.AsyncServer] = None,
    ) -> None:
        self.settings = settings
        self.sio = sio or create_sio(settings)
        self.gateway = gateway or ConnectionGateway.from_settings(settings)
        self.sessions = SessionRegistry()
        self.router = MeetingEventRouter(
            SocketIOEmitter(self.sio), store, capacity=settings.room_capacity
        )
        self._register_handlers()

    def _register_handlers(self) -> None:
        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on("newUser", self.on_join)
        self.sio.on("joinMeet", self.on_join)
        self.sio.on("sendMessage", self.on_send_message)
        self.sio.on("leaveMeet", self.on_leave)

    @property
    def registry(self):
        return self.router.registry

    # =========================================================================
    # Event handlers
    # =========================================================================

    async def on_connect(self, sid: str, environ: Dict[str, Any], auth: Optional[Dict] = None) -> None:
        """Authenticate and open a session. Refusal raises ConnectionRefusedError."""
        logger.info("[SocketIO] Connection attempt | sid=%s", sid)
        identity = self.gateway.authenticate(sid, environ, auth)
        session = self.sessions.open(sid, identity)
        logger.info(
            "[SocketIO] Connected | sid=%s user=%s authenticated=%s",
            sid, session.user_id, session.authenticated,
        )

    async def on_join(self, sid: str, room_id: Any = None, user_id: Any = None) -> Optional[EventOutcome]:
        session = self.sessions.get(sid)
        if session is None:
            return None
        room_id, user_id = _join_args(room_id, user_id)
        return await self._guarded(sid, self.router.handle_join(session, room_id, user_id))

    async def on_send_message(self, sid: str, *args: Any) -> Optional[EventOutcome]:
        """``sendMessage(payload)`` or ``sendMessage(roomId, payload)``."""
        session = self.sessions.get(sid)
        if session is None or not args:
            return None
        payload = args[-1]
        if len(args) > 1 and isinstance(payload, dict):
            payload = {**payload, "roomId": args[0]}
        return await self._guarded(sid, self.router.handle_send_message(session, payload))

    async def on_leave(self, sid: str, *_: Any) -> Optional[EventOutcome]:
        session = self.sessions.get(sid)
        if session is None:
            return None
        return await self._guarded(sid, self.router.handle_leave(session))

    async def on_disconnect(self, sid: str, reason: Any = None) -> Optional[EventOutcome]:
        session = self.sessions.close(sid)
        logger.info("[SocketIO] Socket %s disconnected (%s)", sid, reason)
        if session is None:
            return None
        try:
            return await self.router.handle_disconnect(session)
        except Exception:
            logger.exception("[SocketIO] Error in disconnect handler | sid=%s", sid)
            return EventOutcome.FAILED

    async def _guarded(self, sid: str, handler: Awaitable[EventOutcome]) -> EventOutcome:
        """Run a handler; unexpected errors are reported to the socket only."""
        try:
            return await handler
        except Exception as e:
            logger.exception("[SocketIO] Unhandled error | sid=%s", sid)
            await self.sio.emit(SOCKET_SERVER_ERROR, error_payload("backend", str(e) or "Unexpected error"), to=sid)
            return EventOutcome.FAILED


def create_socketio_app(relay: RelayServer, other_app) -> socketio.ASGIApp:
    """Create Socket.IO ASGI app wrapping another ASGI app.

    Args:
        relay: The relay whose server handles socket traffic
        other_app: The main ASGI app (e.g., FastAPI)

    Returns:
        Combined ASGI app with Socket.IO
    """
    return socketio.ASGIApp(relay.sio, other_asgi_app=other_app)
