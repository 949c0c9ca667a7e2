"""Membership stores used by the event router.

``MemoryMembershipStore`` keeps membership purely in the local registry.
``BackendMembershipStore`` delegates to the meetings backend and mirrors each
successful response into the registry.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from meetrelay.backend.client import BackendClient, BackendError
from meetrelay.rooms.models import Participant
from meetrelay.rooms.registry import RoomFullError, RoomRegistry

logger = logging.getLogger(__name__)


class MembershipStore(ABC):
    """Where room membership lives."""

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry

    @abstractmethod
    async def join(
        self,
        room_id: str,
        participant: Participant,
        capacity: int,
        token: Optional[str] = None,
    ) -> List[Participant]:
        """Admit the participant and return the updated list.

        Raises:
            RoomFullError: room is at capacity and the user is not already in it
            BackendError: backend store only
        """

    @abstractmethod
    async def remove(
        self,
        room_id: str,
        participant: Participant,
        token: Optional[str] = None,
    ) -> Tuple[Optional[Participant], List[Participant]]:
        """Remove the participant and return (removed entry, remaining list).

        The removed entry is None when the connection no longer owns an entry
        (the user rejoined from another connection).
        """


class MemoryMembershipStore(MembershipStore):
    """Self-contained store: the registry is the source of truth."""

    async def join(self, room_id, participant, capacity, token=None):
        return self.registry.join(room_id, participant, capacity)

    async def remove(self, room_id, participant, token=None):
        removed, remaining = self.registry.leave(room_id, participant.connection_id)
        return removed, remaining


class BackendMembershipStore(MembershipStore):
    """Backend-delegated store: the backend owns membership and room lifecycle."""

    def __init__(self, registry: RoomRegistry, client: BackendClient) -> None:
        super().__init__(registry)
        self.client = client

    async def join(self, room_id, participant, capacity, token=None):
        try:
            current = await self.client.get_meeting_users(room_id, token=token)
        except BackendError as e:
            e.step = "getMeetingUsers"
            raise
        already_present = any(p.user_id == participant.user_id for p in current)
        if not already_present and len(current) >= capacity:
            self.registry.replace(room_id, current)
            raise RoomFullError(room_id, capacity)

        participants = await self.client.add_or_update_user(
            room_id, participant.user_id, participant.connection_id, token=token
        )
        return self.registry.replace(room_id, participants)

    async def remove(self, room_id, participant, token=None):
        mirrored = self.registry.get(room_id)
        removed = next((p for p in mirrored if p.connection_id == participant.connection_id), None)
        if removed is None and any(
            p.user_id == participant.user_id and p.connection_id for p in mirrored
        ):
            # The user rejoined from another connection that now owns the entry.
            logger.info(
                "[ROOMS] Skipping removal of %s from %s: superseded by another connection",
                participant.user_id, room_id,
            )
            return None, mirrored

        remaining = await self.client.remove_user(
            room_id, participant.user_id, participant.connection_id, token=token
        )
        return removed or participant, self.registry.replace(room_id, remaining)
