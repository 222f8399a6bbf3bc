"""
Ephemeral typing indicators.

A (room, user) pair is "typing" from the first ``typing_start`` until an
explicit stop, a sent message, the identity losing its membership (leave
or disconnect of the joined devices), or ``typing_timeout`` seconds without a
refresh. Nothing here is persisted.
"""

import asyncio
from typing import Dict, Tuple

from chat.rooms import RoomManager
from common.errors import NotInRoom
from common.logging import get_logger
from gateway.connection_manager import Connection, ConnectionManager
from router.message_types import ServerEvent, ServerEventType

logger = get_logger(__name__)

TypingKey = Tuple[str, str]  # (room_id, user_id)


class TypingTracker:
    """Tracks who is typing where and broadcasts transitions to room members."""

    def __init__(self, connections: ConnectionManager, rooms: RoomManager, timeout: float):
        self.connections = connections
        self.rooms = rooms
        self.timeout = timeout
        self._timers: Dict[TypingKey, asyncio.Task] = {}

    def is_typing(self, room_id: str, user_id: str) -> bool:
        return (room_id, user_id) in self._timers

    async def start(self, connection_id: str, room_id: str) -> None:
        connection = self._member_connection(connection_id, room_id)
        key = (room_id, connection.user_id)

        existing = self._timers.get(key)
        if existing is not None:
            existing.cancel()
        self._timers[key] = asyncio.create_task(self._expire(key))

        if existing is None:
            event = ServerEvent(
                event=ServerEventType.USER_TYPING,
                data={
                    "roomId": room_id,
                    "userId": connection.user_id,
                    "email": connection.identity.email,
                },
            )
            await self._broadcast(room_id, connection.user_id, event)

    async def stop(self, connection_id: str, room_id: str) -> None:
        connection = self._member_connection(connection_id, room_id)
        await self.clear(room_id, connection.user_id)

    async def clear(self, room_id: str, user_id: str) -> bool:
        """Drop typing state for the pair and announce it. False if it was not typing."""
        task = self._timers.pop((room_id, user_id), None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()

        event = ServerEvent(
            event=ServerEventType.USER_STOPPED_TYPING,
            data={"roomId": room_id, "userId": user_id},
        )
        await self._broadcast(room_id, user_id, event)
        return True

    async def membership_dropped(self, room_id: str, user_id: str) -> None:
        """Leave callback: an identity that is no longer a member cannot be typing there."""
        await self.clear(room_id, user_id)

    def shutdown(self) -> None:
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()

    async def _expire(self, key: TypingKey) -> None:
        await asyncio.sleep(self.timeout)
        if self._timers.get(key) is not asyncio.current_task():
            return
        room_id, user_id = key
        logger.debug(event="typing_timeout", room_id=room_id, user_id=user_id)
        await self.clear(room_id, user_id)

    def _member_connection(self, connection_id: str, room_id: str) -> Connection:
        connection = self.connections.get(connection_id)
        if connection is None or not self.rooms.is_member(connection.user_id, room_id):
            raise NotInRoom(f"Not a member of room {room_id}")
        return connection

    async def _broadcast(self, room_id: str, user_id: str, event: ServerEvent) -> None:
        await self.connections.send_to_users(
            self.rooms.members_of(room_id), event, exclude_user=user_id
        )
