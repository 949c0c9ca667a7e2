"""Per-connection session records.

A session is created when a socket is accepted and handed to every event
handler for that socket. Its ``generation`` changes whenever the binding
changes or the socket closes, so a handler that suspended on a backend call
can tell whether its result still applies.
Handlers hold ``lock`` so events on one socket run one at a time.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from meetrelay.auth.token_verifier import Identity

logger = logging.getLogger(__name__)


@dataclass
class ConnectionSession:
    """Ephemeral state bound to one socket connection."""

    sid: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    token: Optional[str] = None
    room_id: Optional[str] = None
    authenticated: bool = False
    generation: int = 0
    closed: bool = False
    connected_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def is_bound(self) -> bool:
        return bool(self.room_id)

    def is_current(self, generation: int) -> bool:
        """True while the session is open and unchanged since ``generation``."""
        return not self.closed and self.generation == generation

    def bind(self, room_id: str, user_id: str) -> None:
        self.room_id = room_id
        self.user_id = user_id
        self.generation += 1

    def unbind(self) -> None:
        self.room_id = None
        self.generation += 1

    def close(self) -> None:
        self.closed = True
        self.generation += 1


class SessionRegistry:
    """Live sessions keyed by socket id."""

    def __init__(self) -> None:
        self._sessions: Dict[str, ConnectionSession] = {}

    def open(self, sid: str, identity: Optional[Identity] = None) -> ConnectionSession:
        session = ConnectionSession(sid=sid)
        if identity is not None:
            session.user_id = identity.user_id
            session.email = identity.email
            session.token = identity.token
            session.authenticated = True
        self._sessions[sid] = session
        return session

    def get(self, sid: str) -> Optional[ConnectionSession]:
        return self._sessions.get(sid)

    def close(self, sid: str) -> Optional[ConnectionSession]:
        """Close and forget the session for ``sid``."""
        session = self._sessions.pop(sid, None)
        if session is not None:
            session.close()
        return session

    def __len__(self) -> int:
        return len(self._sessions)
