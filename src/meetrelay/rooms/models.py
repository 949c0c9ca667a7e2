"""Wire and in-memory models for meeting rooms.

Field names are snake_case in Python and camelCase on the wire (the backend
and the browser clients both speak camelCase), so every model parses and
serializes by alias.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Participant(BaseModel):
    """A user's membership in a room, bound to one connection."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(alias="userId")
    connection_id: Optional[str] = Field(default=None, alias="socketId")
    name: Optional[str] = None
    email: Optional[str] = None
    age: Optional[int] = None
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def participants_to_wire(participants: List[Participant]) -> List[Dict[str, Any]]:
    return [participant.to_wire() for participant in participants]


def parse_participants(payload: Any) -> List[Participant]:
    """Parse a backend participant list, skipping entries without a user id."""
    if not isinstance(payload, list):
        raise ValueError(f"Expected a participant list, got {type(payload).__name__}")
    return [
        Participant.model_validate(item)
        for item in payload
        if isinstance(item, dict) and item.get("userId")
    ]


def _is_iso_timestamp(value: Any) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


class ChatMessage(BaseModel):
    """A relayed chat message. Never stored."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    message: str
    timestamp: str

    @classmethod
    def from_payload(
        cls,
        payload: Dict[str, Any],
        received_at: Optional[datetime] = None,
    ) -> Optional["ChatMessage"]:
        """Build an outgoing message, or None when the text is blank.

        The client timestamp is kept when it parses as ISO-8601; otherwise the
        relay's receipt time is used.
        """
        text = payload.get("message")
        trimmed = text.strip() if isinstance(text, str) else ""
        if not trimmed:
            return None

        timestamp = payload.get("timestamp")
        if not _is_iso_timestamp(timestamp):
            timestamp = (received_at or datetime.now(timezone.utc)).isoformat()

        return cls(user_id=str(payload.get("userId") or ""), message=trimmed, timestamp=timestamp)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
