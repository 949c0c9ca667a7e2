"""Room membership: models, in-memory registry and membership stores."""

from meetrelay.rooms.models import ChatMessage, Participant
from meetrelay.rooms.registry import RoomFullError, RoomRegistry

__all__ = [
    "ChatMessage",
    "Participant",
    "RoomFullError",
    "RoomRegistry",
]
