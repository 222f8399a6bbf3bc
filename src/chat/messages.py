"""
Message routing: validate, persist, then fan out.

Each room has one asyncio.Lock. Acceptance, persistence and fan-out of a
message all happen under it, so every recipient sees a room's messages in
the same order. Rooms never share a lock.

Direct-room participants who are connected but have not joined the room get a
``new_message`` notification instead.
"""

import asyncio
import uuid
from typing import Dict, List, Optional, Set, Union

from chat.notification_templates import ChatNotifications
from chat.room_ids import RoomKind, parse_room_id
from chat.rooms import RoomManager
from chat.typing_indicator import TypingTracker
from common.config import ChatConfig
from common.errors import MessageValidationError, NotInRoom, PersistenceError, Unauthorized
from common.logging import get_logger
from common.models import (
    ChatMessage,
    Identity,
    MessageType,
    ReadMarker,
    RoomSummary,
    utcnow,
)
from gateway.connection_manager import Connection, ConnectionManager
from router.message_types import ServerEvent, ServerEventType
from store.base import MessageStore

logger = get_logger(__name__)


class MessageRouter:
    """Accepts chat messages and delivers them to room members."""

    def __init__(
        self,
        config: ChatConfig,
        connections: ConnectionManager,
        rooms: RoomManager,
        store: MessageStore,
        typing: Optional[TypingTracker] = None,
        notifications: Optional[ChatNotifications] = None,
    ):
        self.config = config
        self.connections = connections
        self.rooms = rooms
        self.store = store
        self.typing = typing
        self.notifications = notifications
        self._locks: Dict[str, asyncio.Lock] = {}
        self._sequences: Dict[str, int] = {}

    def sequence_of(self, room_id: str) -> int:
        """Sequence number of the last accepted message in a room (0 if none)."""
        return self._sequences.get(room_id, 0)

    async def send(
        self,
        connection_id: str,
        room_id: str,
        content: str,
        message_type: Union[MessageType, str] = MessageType.TEXT,
        file_url: Optional[str] = None,
    ) -> ChatMessage:
        """
        Accept a message from a connection and broadcast it to the room.

        Raises:
            NotInRoom: sender identity is not a member of the room
            MessageValidationError: content/type/file_url rejected
            PersistenceError: the store did not save it; nothing was broadcast
        """
        connection = self._member_connection(connection_id, room_id)
        message_type = self._validate(content, message_type, file_url)

        async with self._lock_for(room_id):
            # Membership may have changed while waiting for the lock
            if not self.rooms.is_member(connection.user_id, room_id):
                raise NotInRoom(f"Not a member of room {room_id}")

            sequence = self.sequence_of(room_id) + 1
            message = ChatMessage(
                id=str(uuid.uuid4()),
                room_id=room_id,
                sender_id=connection.user_id,
                sender_email=connection.identity.email,
                content=content,
                message_type=message_type,
                file_url=file_url,
                created_at=utcnow(),
                sequence=sequence,
            )

            await self._persist(message)
            self._sequences[room_id] = sequence

            if self.typing is not None:
                await self.typing.clear(room_id, connection.user_id)

            event = ServerEvent(event=ServerEventType.NEW_MESSAGE, data=message.to_wire())
            recipients = self.rooms.members_of(room_id)
            delivered = await self.connections.send_to_users(recipients, event)

        logger.info(
            event="message_broadcast",
            room_id=room_id,
            message_id=message.id,
            sender_id=connection.user_id,
            message_type=message_type.value,
            sequence=sequence,
            recipients=len(recipients),
            delivered=delivered,
        )

        if self.notifications is not None:
            await self._notify_absent_participants(message, connection.identity, recipients)
        return message

    async def mark_read(self, connection_id: str, room_id: str) -> ReadMarker:
        """Record that the identity has read the room up to now and ack the caller."""
        connection = self._member_connection(connection_id, room_id)

        try:
            marker = await self.store.mark_read(room_id, connection.user_id, utcnow())
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(event="mark_read_failed", room_id=room_id, error=str(e))
            raise PersistenceError("Failed to record read marker") from e

        await self.connections.send_to_connection(
            connection_id,
            ServerEvent(
                event=ServerEventType.MARKED_READ,
                data={"roomId": room_id, "readAt": marker.to_wire()["readAt"]},
            ),
        )
        return marker

    async def history(
        self, identity: Identity, room_id: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[ChatMessage]:
        """
        Page through a room's history, oldest first.

        Raises:
            MessageValidationError: limit/offset out of range
            Unauthorized: the identity may not access the room
        """
        if limit is None:
            limit = self.config.history_page_size
        if not 1 <= limit <= self.config.history_max_page_size:
            raise MessageValidationError(
                f"limit must be between 1 and {self.config.history_max_page_size}"
            )
        if offset < 0:
            raise MessageValidationError("offset must not be negative")

        if not await self.rooms.permissions.can_access_room(identity, room_id):
            raise Unauthorized(f"Access to room {room_id} denied")

        return await self.store.list_messages(room_id, limit=limit, offset=offset)

    async def room_summaries(self, identity: Identity) -> List[RoomSummary]:
        """Rooms the identity has joined, with last message and unread count."""
        summaries = []
        for room_id in sorted(self.rooms.rooms_of(identity.id)):
            last = await self.store.list_messages(room_id, limit=1)
            marker = await self.store.get_read_marker(room_id, identity.id)
            summaries.append(
                RoomSummary(
                    room_id=room_id,
                    member_count=len(self.rooms.members_of(room_id)),
                    unread_count=await self.store.unread_count(room_id, identity.id),
                    last_read_at=marker.read_at if marker else None,
                    last_message=last[0] if last else None,
                )
            )
        return summaries

    async def _notify_absent_participants(
        self, message: ChatMessage, sender: Identity, members: Set[str]
    ) -> None:
        parsed = parse_room_id(message.room_id)
        if parsed is None or parsed.kind is not RoomKind.DM:
            return

        preview = message.content or "Sent a file"
        for user_id in parsed.ids:
            if user_id == sender.id or user_id in members:
                continue
            await self.notifications.new_message(user_id, message.room_id, sender.email, preview)

    def _lock_for(self, room_id: str) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        return lock

    def _member_connection(self, connection_id: str, room_id: str) -> Connection:
        connection = self.connections.get(connection_id)
        if connection is None or not self.rooms.is_member(connection.user_id, room_id):
            raise NotInRoom(f"Not a member of room {room_id}")
        return connection

    def _validate(
        self, content: str, message_type: Union[MessageType, str], file_url: Optional[str]
    ) -> MessageType:
        try:
            message_type = MessageType(message_type)
        except ValueError:
            raise MessageValidationError(f"Unknown message type: {message_type}") from None

        if message_type is MessageType.FILE and not file_url:
            raise MessageValidationError("File messages require a fileUrl")
        if not content and message_type is not MessageType.FILE:
            raise MessageValidationError("Message content must not be empty")
        if len(content) > self.config.max_message_length:
            raise MessageValidationError(
                f"Message content exceeds {self.config.max_message_length} characters"
            )
        return message_type

    async def _persist(self, message: ChatMessage) -> None:
        try:
            await self.store.save_message(message)
        except Exception as e:
            logger.error(
                event="message_persist_failed",
                room_id=message.room_id,
                message_id=message.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError("Failed to save message") from e
