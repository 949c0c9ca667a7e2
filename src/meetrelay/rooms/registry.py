"""In-memory room registry.

Maps a meeting room id to the participants currently connected to it.
Rooms are created lazily on first join and deleted as soon as they are empty.

Key guarantees:
- At most one participant per user id in a room (a later join replaces the
  earlier entry in place, keeping connection order)
- A full-room rejection never mutates state
- One writer per room at a time via ``lock(room_id)``
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Dict, List, Optional, Tuple

from meetrelay.rooms.models import Participant

logger = logging.getLogger(__name__)


class RoomFullError(Exception):
    """Raised when a join would push a room past its capacity."""

    def __init__(self, room_id: str, capacity: int) -> None:
        super().__init__(f"Room {room_id} is full ({capacity} participants)")
        self.room_id = room_id
        self.capacity = capacity


class RoomRegistry:
    """Owns the room id -> participants mapping for this process."""

    def __init__(self) -> None:
        self._rooms: Dict[str, List[Participant]] = {}
        # Locks live only while a handler holds or waits on them.
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, room_id: str) -> List[Participant]:
        """Return a copy of the room's participants (empty for unknown rooms)."""
        return list(self._rooms.get(room_id, []))

    def occupancy(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, []))

    def contains_user(self, room_id: str, user_id: str) -> bool:
        return any(p.user_id == user_id for p in self._rooms.get(room_id, []))

    def rooms(self) -> List[str]:
        return list(self._rooms)

    def lock(self, room_id: str) -> asyncio.Lock:
        """Return the per-room lock serializing join/leave sequences."""
        lock = self._locks.get(room_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[room_id] = lock
        return lock

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def upsert(self, room_id: str, participant: Participant) -> List[Participant]:
        """Insert the participant or replace the entry for the same user id."""
        participants = self._rooms.setdefault(room_id, [])
        for index, existing in enumerate(participants):
            if existing.user_id == participant.user_id:
                participants[index] = participant
                logger.debug(
                    "[ROOMS] Replaced participant | room=%s user=%s old_conn=%s new_conn=%s",
                    room_id, participant.user_id, existing.connection_id, participant.connection_id,
                )
                break
        else:
            participants.append(participant)
            logger.debug("[ROOMS] Added participant | room=%s user=%s", room_id, participant.user_id)
        return list(participants)

    def join(self, room_id: str, participant: Participant, capacity: int) -> List[Participant]:
        """Add a participant unless the room is full.

        A user already present may always rejoin; that replaces their entry
        and does not count against capacity.

        Raises:
            RoomFullError: room is at or above capacity
        """
        if not self.contains_user(room_id, participant.user_id) and self.occupancy(room_id) >= capacity:
            raise RoomFullError(room_id, capacity)
        return self.upsert(room_id, participant)

    def leave(self, room_id: str, connection_id: str) -> Tuple[Optional[Participant], List[Participant]]:
        """Remove the entry bound to ``connection_id``.

        Returns:
            (removed participant or None, remaining participants)
        """
        participants = self._rooms.get(room_id)
        if not participants:
            return None, []

        removed = None
        for index, existing in enumerate(participants):
            if existing.connection_id == connection_id:
                removed = participants.pop(index)
                break

        if not participants:
            del self._rooms[room_id]
            logger.debug("[ROOMS] Room emptied and deleted | room=%s", room_id)
        return removed, list(participants)

    def replace(self, room_id: str, participants: List[Participant]) -> List[Participant]:
        """Mirror a snapshot from the backend of record."""
        # Dict assignment keeps the first position and takes the latest entry.
        deduplicated: Dict[str, Participant] = {}
        for participant in participants:
            deduplicated[participant.user_id] = participant

        if deduplicated:
            self._rooms[room_id] = list(deduplicated.values())
        else:
            self._rooms.pop(room_id, None)
        return self.get(room_id)
