"""
Wire event types exchanged over the chat WebSocket.

Client frames are ``{"event": ..., "data": ...}``; server frames use the same
envelope. Room-scoped client events carry the room id string as ``data``.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from common.models import MessageType, WireModel


class ClientEventType(str, Enum):
    """Events a client may send."""

    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    SEND_MESSAGE = "send_message"
    TYPING_START = "typing_start"
    TYPING_STOP = "typing_stop"
    MARK_READ = "mark_read"


class ServerEventType(str, Enum):
    """Events the server emits."""

    NEW_MESSAGE = "new_message"
    USER_TYPING = "user_typing"
    USER_STOPPED_TYPING = "user_stopped_typing"
    NOTIFICATION = "notification"
    PRESENCE_UPDATE = "presence_update"
    ROOM_JOINED = "room_joined"
    ROOM_LEFT = "room_left"
    MARKED_READ = "marked_read"
    ERROR = "error"


class ClientEvent(BaseModel):
    """Inbound frame from a client."""

    event: ClientEventType
    data: Any = None


class SendMessagePayload(WireModel):
    """Payload of ``send_message``."""

    room_id: str = Field(..., min_length=1)
    content: str = ""
    # Checked against MessageType by the message router
    message_type: str = MessageType.TEXT.value
    file_url: Optional[str] = None


class RoomPayload(BaseModel):
    """Room id carried by the room-scoped client events."""

    room_id: str

    @field_validator("room_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value:
            raise ValueError("roomId must not be empty")
        return value


class ServerEvent(BaseModel):
    """Outbound frame to a client."""

    event: ServerEventType
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def error(cls, message: str, code: Optional[str] = None) -> "ServerEvent":
        data: Dict[str, Any] = {"message": message}
        if code:
            data["code"] = code
        return cls(event=ServerEventType.ERROR, data=data)

    @classmethod
    def room_ack(cls, event: ServerEventType, room_id: str, success: bool) -> "ServerEvent":
        return cls(event=event, data={"roomId": room_id, "success": success})
