"""Meeting event router.

Turns inbound socket events into membership changes and room broadcasts:

- join (``newUser`` / ``joinMeet``): admit the user, bind the socket to the
  room, broadcast ``usersOnline``
- chat (``sendMessage``): validate and relay ``newMessage`` to the room
- leave (``leaveMeet`` / ``disconnect``): remove the user, broadcast
  ``usersOnline`` to whoever is left

Every handler returns an ``EventOutcome`` so callers (and tests) can tell a
deliberately ignored event from one that was handled, rejected or failed.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from meetrelay.backend.client import BackendError, BackendUnavailableError
from meetrelay.connection.session import ConnectionSession
from meetrelay.rooms.models import ChatMessage, Participant, participants_to_wire
from meetrelay.rooms.registry import RoomFullError
from meetrelay.rooms.store import MembershipStore

logger = logging.getLogger(__name__)

# Outbound events
USERS_ONLINE = "usersOnline"
NEW_MESSAGE = "newMessage"
MEET_FULL = "meetFull"
SOCKET_SERVER_ERROR = "socketServerError"


class EventOutcome(str, Enum):
    """Result of handling one inbound event."""

    HANDLED = "handled"
    IGNORED = "ignored"  # failed validation, nothing emitted
    REJECTED = "rejected"  # authorization or capacity
    FAILED = "failed"  # backend error
    STALE = "stale"  # session changed while waiting on the backend


class RoomEmitter(Protocol):
    """The subset of the Socket.IO server the router needs."""

    async def emit(self, event: str, data: Any = None, to: Optional[str] = None) -> None: ...

    async def enter_room(self, sid: str, room: str) -> None: ...

    async def leave_room(self, sid: str, room: str) -> None: ...


def _clean_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


class MeetingEventRouter:
    """Handles join, chat and leave events for meeting rooms."""

    def __init__(self, emitter: RoomEmitter, store: MembershipStore, capacity: int = 10) -> None:
        self.emitter = emitter
        self.store = store
        self.capacity = capacity

    @property
    def registry(self):
        return self.store.registry

    # -------------------------------------------------------------------------
    # Join
    # -------------------------------------------------------------------------

    async def handle_join(
        self,
        session: ConnectionSession,
        room_id: Any,
        user_id: Any = None,
        origin: str = "newUser",
    ) -> EventOutcome:
        """Admit ``user_id`` to ``room_id`` and broadcast the new presence list.

        Authenticated sessions always join as their verified user; an inline
        user id that disagrees is rejected.
        """
        async with session.lock:
            return await self._join(session, room_id, user_id, origin)

    async def _join(
        self, session: ConnectionSession, room_id: Any, user_id: Any, origin: str
    ) -> EventOutcome:
        room_id = _clean_id(room_id)
        inline_user_id = _clean_id(user_id)

        if session.authenticated:
            if inline_user_id and inline_user_id != session.user_id:
                logger.warning(
                    "[SocketIO] Join user mismatch | sid=%s session_user=%s inline_user=%s",
                    session.sid, session.user_id, inline_user_id,
                )
                await self._emit_error(session, origin, "Unauthorized: User ID mismatch")
                return EventOutcome.REJECTED
            user_id = session.user_id
        else:
            user_id = inline_user_id

        if not room_id or not user_id:
            logger.debug("[SocketIO] Join ignored, missing room or user | sid=%s", session.sid)
            return EventOutcome.IGNORED

        if session.room_id and session.room_id != room_id:
            await self._emit_error(
                session, origin, f"Already joined meeting {session.room_id}; leave it first"
            )
            return EventOutcome.REJECTED

        logger.info("[SocketIO] Registering user %s in meeting %s | sid=%s", user_id, room_id, session.sid)
        participant = Participant(user_id=user_id, connection_id=session.sid)
        generation = session.generation

        async with self.registry.lock(room_id):
            try:
                participants = await self.store.join(
                    room_id, participant, self.capacity, token=session.token
                )
            except RoomFullError:
                logger.info("[SocketIO] Meeting full | room=%s capacity=%d sid=%s", room_id, self.capacity, session.sid)
                await self.emitter.emit(MEET_FULL, to=session.sid)
                return EventOutcome.REJECTED
            except BackendUnavailableError as e:
                logger.error("[SocketIO] Backend unavailable during join | room=%s: %s", room_id, e)
                await self._emit_error(session, "backend", e.message)
                return EventOutcome.FAILED
            except BackendError as e:
                logger.error("[SocketIO] Backend rejected join | room=%s: %s", room_id, e)
                await self._emit_error(session, e.step or origin, e.message)
                return EventOutcome.FAILED

            if not session.is_current(generation):
                logger.info(
                    "[SocketIO] Dropping late join result | sid=%s room=%s", session.sid, room_id
                )
                await self._discard_participant(room_id, participant, session.token)
                return EventOutcome.STALE

            await self.emitter.enter_room(session.sid, room_id)
            session.bind(room_id, user_id)

            joining = next((p for p in participants if p.user_id == user_id), participant)
            logger.info("[SocketIO] User %s joined %s. Total users: %d", user_id, room_id, len(participants))
            await self._broadcast_presence(room_id, participants, joining=joining, leaving=None)

        return EventOutcome.HANDLED

    async def _discard_participant(
        self, room_id: str, participant: Participant, token: Optional[str]
    ) -> None:
        try:
            await self.store.remove(room_id, participant, token=token)
        except BackendError as e:
            logger.warning(
                "[SocketIO] Could not discard late participant %s from %s: %s",
                participant.user_id, room_id, e,
            )

    # -------------------------------------------------------------------------
    # Chat
    # -------------------------------------------------------------------------

    async def handle_send_message(self, session: ConnectionSession, payload: Any) -> EventOutcome:
        """Relay a chat message to everyone in the sender's room, sender included."""
        async with session.lock:
            return await self._send_message(session, payload)

    async def _send_message(self, session: ConnectionSession, payload: Any) -> EventOutcome:
        if not isinstance(payload, dict):
            return EventOutcome.IGNORED

        message = ChatMessage.from_payload(payload)
        if message is None:
            logger.debug("[SocketIO] Empty message ignored | sid=%s", session.sid)
            return EventOutcome.IGNORED

        if not session.is_bound:
            logger.debug("[SocketIO] Message from unbound socket ignored | sid=%s", session.sid)
            return EventOutcome.IGNORED

        declared_room = _clean_id(payload.get("roomId"))
        if declared_room and declared_room != session.room_id:
            logger.warning(
                "[SocketIO] Message for foreign room | sid=%s bound=%s declared=%s",
                session.sid, session.room_id, declared_room,
            )
            await self._emit_error(session, "sendMessage", "Unauthorized: not joined to this meeting")
            return EventOutcome.REJECTED

        if message.user_id != session.user_id:
            logger.warning("[SocketIO] User ID mismatch | sid=%s", session.sid)
            await self._emit_error(session, "sendMessage", "Unauthorized: User ID mismatch")
            return EventOutcome.REJECTED

        await self.emitter.emit(NEW_MESSAGE, message.to_wire(), to=session.room_id)
        logger.debug("[SocketIO] Message sent from user %s in %s", message.user_id, session.room_id)
        return EventOutcome.HANDLED

    # -------------------------------------------------------------------------
    # Leave / disconnect
    # -------------------------------------------------------------------------

    async def handle_leave(self, session: ConnectionSession) -> EventOutcome:
        """Explicit leave: the socket stays connected and may join another room."""
        async with session.lock:
            return await self._leave(session, origin="leaveMeet")

    async def handle_disconnect(self, session: ConnectionSession) -> EventOutcome:
        """Clean up after a closed socket. Removal is best-effort."""
        if not session.closed:
            session.close()
        async with session.lock:
            return await self._leave(session, origin="disconnect")

    async def _leave(self, session: ConnectionSession, origin: str) -> EventOutcome:
        room_id, user_id = session.room_id, session.user_id
        if not room_id or not user_id:
            logger.debug("[SocketIO] No meeting bound to socket %s", session.sid)
            return EventOutcome.IGNORED

        logger.info("[SocketIO] Cleaning up user %s from meeting %s | sid=%s", user_id, room_id, session.sid)
        await self.emitter.leave_room(session.sid, room_id)
        if session.closed:
            session.room_id = None
        else:
            session.unbind()

        participant = Participant(user_id=user_id, connection_id=session.sid)
        async with self.registry.lock(room_id):
            try:
                removed, remaining = await self.store.remove(room_id, participant, token=session.token)
            except BackendError as e:
                logger.error("[SocketIO] Error removing user %s from %s: %s", user_id, room_id, e)
                if not session.closed:
                    await self._emit_error(session, origin, e.message)
                return EventOutcome.FAILED

            if removed is None:
                logger.info(
                    "[SocketIO] User %s in %s already superseded by another connection", user_id, room_id
                )
                return EventOutcome.HANDLED

            logger.info("[SocketIO] User %s removed from %s. Remaining: %d", user_id, room_id, len(remaining))
            await self._broadcast_presence(room_id, remaining, joining=None, leaving=removed)

        return EventOutcome.HANDLED

    # -------------------------------------------------------------------------
    # Emission helpers
    # -------------------------------------------------------------------------

    async def _broadcast_presence(
        self,
        room_id: str,
        participants: List[Participant],
        joining: Optional[Participant],
        leaving: Optional[Participant],
    ) -> None:
        await self.emitter.emit(
            USERS_ONLINE,
            (
                participants_to_wire(participants),
                joining.to_wire() if joining else None,
                leaving.to_wire() if leaving else None,
            ),
            to=room_id,
        )

    async def _emit_error(self, session: ConnectionSession, origin: str, message: str) -> None:
        await self.emitter.emit(SOCKET_SERVER_ERROR, error_payload(origin, message), to=session.sid)


def error_payload(origin: str, message: str) -> Dict[str, str]:
    return {"origin": origin, "message": message}
