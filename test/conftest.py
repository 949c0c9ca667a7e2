"""Pytest configuration and shared fixtures."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

import pytest

from meetrelay.backend.client import BackendError
from meetrelay.config.settings import Settings
from meetrelay.connection.router import MeetingEventRouter
from meetrelay.connection.session import SessionRegistry
from meetrelay.rooms.models import Participant
from meetrelay.rooms.registry import RoomRegistry
from meetrelay.rooms.store import BackendMembershipStore, MemoryMembershipStore


# =============================================================================
# Mock Socket.IO server
# =============================================================================

@dataclass
class MockSocketServer:
    """Records emissions and tracks room membership like a Socket.IO server."""

    connected: Set[str] = field(default_factory=set)
    rooms: Dict[str, Set[str]] = field(default_factory=dict)  # room_id -> set of sids
    emitted: List[Dict[str, Any]] = field(default_factory=list)

    def connect(self, sid: str) -> None:
        self.connected.add(sid)

    def disconnect(self, sid: str) -> None:
        self.connected.discard(sid)
        for members in self.rooms.values():
            members.discard(sid)

    async def emit(self, event: str, data: Any = None, to: Optional[str] = None) -> None:
        if to in self.connected:
            recipients = {to}
        else:
            recipients = set(self.rooms.get(to, set()))
        self.emitted.append({"event": event, "data": data, "to": to, "recipients": recipients})

    async def enter_room(self, sid: str, room: str) -> None:
        self.rooms.setdefault(room, set()).add(sid)

    async def leave_room(self, sid: str, room: str) -> None:
        self.rooms.get(room, set()).discard(sid)

    def events(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.emitted if e["event"] == event_type]

    def received(self, sid: str, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Events delivered to ``sid`` (optionally of one type)."""
        return [
            e for e in self.emitted
            if sid in e["recipients"] and (event_type is None or e["event"] == event_type)
        ]

    def clear(self) -> None:
        self.emitted.clear()


# =============================================================================
# Fake meetings backend
# =============================================================================

class FakeMeetingsBackend:
    """In-memory stand-in for BackendClient with the same coroutine API.

    Every call yields to the event loop once so concurrent handlers interleave
    the way they would against a real HTTP backend.
    """

    def __init__(self) -> None:
        self.meetings: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.fail_with: Optional[BackendError] = None
        self.fail_on: Optional[str] = None  # only fail this call when set
        self.before_add: Optional[Callable[[], None]] = None

    def _users(self, room_id: str) -> List[Participant]:
        return [Participant.model_validate(u) for u in self.meetings.get(room_id, [])]

    async def _tick(self, call: tuple) -> None:
        self.calls.append(call)
        await asyncio.sleep(0)
        if self.fail_with is not None and self.fail_on in (None, call[0]):
            raise self.fail_with

    async def get_meeting_users(self, room_id, token=None):
        await self._tick(("get_meeting_users", room_id, token))
        return self._users(room_id)

    async def add_or_update_user(self, room_id, user_id, connection_id, token=None):
        await self._tick(("add_or_update_user", room_id, user_id, connection_id, token))
        if self.before_add is not None:
            self.before_add()
        users = self.meetings.setdefault(room_id, [])
        entry = {"userId": user_id, "socketId": connection_id, "name": f"Name {user_id}"}
        for index, existing in enumerate(users):
            if existing["userId"] == user_id:
                users[index] = entry
                break
        else:
            users.append(entry)
        return self._users(room_id)

    async def remove_user(self, room_id, user_id, connection_id, token=None):
        await self._tick(("remove_user", room_id, user_id, connection_id, token))
        users = self.meetings.get(room_id, [])
        self.meetings[room_id] = [u for u in users if u["userId"] != user_id]
        return self._users(room_id)

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings():
    return Settings(room_store="memory", room_capacity=10, auth_required=False)


@pytest.fixture
def mock_server():
    return MockSocketServer()


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def memory_store(registry):
    return MemoryMembershipStore(registry)


@pytest.fixture
def fake_backend():
    return FakeMeetingsBackend()


@pytest.fixture
def backend_store(registry, fake_backend):
    return BackendMembershipStore(registry, fake_backend)


@pytest.fixture
def sessions():
    return SessionRegistry()


@pytest.fixture
def router(mock_server, memory_store):
    return MeetingEventRouter(mock_server, memory_store, capacity=2)


@pytest.fixture
def backend_router(mock_server, backend_store):
    return MeetingEventRouter(mock_server, backend_store, capacity=10)


@pytest.fixture
def connect(sessions, mock_server):
    """Open a session for ``sid`` and register the socket with the mock server."""
    def _connect(sid: str, identity=None):
        mock_server.connect(sid)
        return sessions.open(sid, identity)
    return _connect
