"""
Client event router.

Decodes inbound frames, dispatches them to the chat hub and turns every
failure into an event for the originating connection. Nothing a client does
is rejected silently: denials come back as ``room_joined``/``room_left``
with ``success: false`` or as an ``error`` event.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from chat.hub import ChatHub
from common.errors import ChatError, MessageValidationError
from common.logging import get_logger
from router.message_types import (
    ClientEvent,
    ClientEventType,
    RoomPayload,
    SendMessagePayload,
    ServerEvent,
)

logger = get_logger(__name__)

INVALID_PAYLOAD = "INVALID_PAYLOAD"
INTERNAL_ERROR = "INTERNAL_ERROR"

Handler = Callable[[str, Any], Awaitable[None]]


class EventRouter:
    """Routes client events to room, message and typing operations."""

    def __init__(self, hub: ChatHub):
        self.hub = hub
        self._handlers: Dict[ClientEventType, Handler] = {
            ClientEventType.JOIN_ROOM: self._join_room,
            ClientEventType.LEAVE_ROOM: self._leave_room,
            ClientEventType.SEND_MESSAGE: self._send_message,
            ClientEventType.TYPING_START: self._typing_start,
            ClientEventType.TYPING_STOP: self._typing_stop,
            ClientEventType.MARK_READ: self._mark_read,
        }

    async def dispatch_raw(self, connection_id: str, raw: Optional[str]) -> None:
        """Parse a text frame and dispatch it. ``None`` is what a binary frame may decode to."""
        if raw is None:
            await self._send_error(connection_id, "Only text frames are supported", INVALID_PAYLOAD)
            return

        try:
            event = ClientEvent.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                event="client_event_parse_error",
                connection_id=connection_id,
                error=str(e),
                raw_length=len(raw or ""),
            )
            await self._send_error(connection_id, "Invalid event format", INVALID_PAYLOAD)
            return

        await self.dispatch(connection_id, event)

    async def dispatch(self, connection_id: str, event: ClientEvent) -> None:
        handler = self._handlers[event.event]
        try:
            await handler(connection_id, event.data)
        except ChatError as e:
            logger.info(
                event="client_event_rejected",
                connection_id=connection_id,
                client_event=event.event.value,
                code=e.code,
                reason=e.message,
            )
            await self._send_error(connection_id, e.message, e.code)
        except Exception as e:
            logger.error(
                event="client_event_failed",
                connection_id=connection_id,
                client_event=event.event.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._send_error(connection_id, "Internal server error", INTERNAL_ERROR)

    async def _join_room(self, connection_id: str, data: Any) -> None:
        await self.hub.rooms.join(connection_id, self._room_id(data))

    async def _leave_room(self, connection_id: str, data: Any) -> None:
        await self.hub.rooms.leave(connection_id, self._room_id(data))

    async def _send_message(self, connection_id: str, data: Any) -> None:
        try:
            payload = SendMessagePayload.model_validate(data)
        except ValidationError as e:
            raise MessageValidationError(
                f"Invalid send_message payload: {e.error_count()} error(s)", INVALID_PAYLOAD
            ) from None
        await self.hub.messages.send(
            connection_id,
            payload.room_id,
            payload.content,
            payload.message_type,
            payload.file_url,
        )

    async def _typing_start(self, connection_id: str, data: Any) -> None:
        await self.hub.typing.start(connection_id, self._room_id(data))

    async def _typing_stop(self, connection_id: str, data: Any) -> None:
        await self.hub.typing.stop(connection_id, self._room_id(data))

    async def _mark_read(self, connection_id: str, data: Any) -> None:
        await self.hub.messages.mark_read(connection_id, self._room_id(data))

    @staticmethod
    def _room_id(data: Any) -> str:
        try:
            return RoomPayload(room_id=data).room_id
        except ValidationError:
            raise MessageValidationError("Expected a room id string", INVALID_PAYLOAD) from None

    async def _send_error(self, connection_id: str, message: str, code: str) -> None:
        await self.hub.connections.send_to_connection(
            connection_id, ServerEvent.error(message, code)
        )
