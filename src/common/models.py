"""
Shared data models for the chat gateway.

- Pydantic models for data validation
- camelCase on the wire, snake_case in Python
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        """Dump as a JSON-safe dict with camelCase keys, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Role(str, Enum):
    """Account roles issued by the auth service."""

    ADMIN = "ADMIN"
    COACH = "COACH"
    CUSTOMER = "CUSTOMER"


class Identity(WireModel):
    """Authenticated user behind one or more connections."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    role: Role


class MessageType(str, Enum):
    """Kind of chat message."""

    TEXT = "text"
    FILE = "file"
    SYSTEM = "system"


class ChatMessage(WireModel):
    """
    Accepted chat message. Immutable once created.

    ``sequence`` is the 1-based position of the message in its room.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    room_id: str
    sender_id: str
    sender_email: str
    content: str
    message_type: MessageType = MessageType.TEXT
    file_url: Optional[str] = None
    created_at: datetime
    sequence: int


class NotificationType(str, Enum):
    """Severity of a notification."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notification(WireModel):
    """Out-of-band notification pushed to a user's connections."""

    type: NotificationType
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None


class PresenceStatus(str, Enum):
    """Presence states. No others exist."""

    ONLINE = "online"
    OFFLINE = "offline"


class PresenceState(WireModel):
    """Current presence of one identity."""

    status: PresenceStatus = PresenceStatus.OFFLINE
    last_seen: Optional[datetime] = None


class PresenceUpdate(WireModel):
    """Presence transition broadcast to peers."""

    user_id: str
    status: PresenceStatus
    last_seen: Optional[datetime] = None


class ReadMarker(WireModel):
    """Point up to which a user has read a room."""

    room_id: str
    user_id: str
    read_at: datetime = Field(default_factory=utcnow)


class RoomSummary(WireModel):
    """One entry of a user's room list."""

    room_id: str
    member_count: int
    unread_count: int
    last_read_at: Optional[datetime] = None
    last_message: Optional[ChatMessage] = None
