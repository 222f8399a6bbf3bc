"""
Room membership management.

Membership is keyed by identity: a room's members are the identities with at
least one live connection that joined it. Per-connection join records are kept
so a disconnect only removes what that connection contributed.
"""

from typing import Awaitable, Callable, Dict, List, Set

from chat.permissions import PermissionEvaluator
from common.errors import Unauthorized
from common.logging import get_logger
from gateway.connection_manager import Connection, ConnectionListener, ConnectionManager
from router.message_types import ServerEvent, ServerEventType

logger = get_logger(__name__)

JoinCallback = Callable[[str, str, Set[str]], Awaitable[None]]
LeaveCallback = Callable[[str, str], Awaitable[None]]


class RoomManager(ConnectionListener):
    """Owns active rooms and enforces join authorization."""

    def __init__(self, connections: ConnectionManager, permissions: PermissionEvaluator):
        self.connections = connections
        self.permissions = permissions
        # room_id -> user_id -> connection ids that joined
        self._rooms: Dict[str, Dict[str, Set[str]]] = {}
        self._join_callbacks: List[JoinCallback] = []
        self._leave_callbacks: List[LeaveCallback] = []

    def on_join(self, callback: JoinCallback) -> None:
        """Register ``callback(room_id, user_id, members)`` run after each successful join."""
        self._join_callbacks.append(callback)

    def on_leave(self, callback: LeaveCallback) -> None:
        """
        Register ``callback(room_id, user_id)`` run whenever an identity stops being
        a member, by leaving or by its last joined connection closing.
        """
        self._leave_callbacks.append(callback)

    async def authorize(self, connection: Connection, room_id: str) -> None:
        """
        Raises:
            Unauthorized: the identity may not access the room
        """
        if not await self.permissions.can_access_room(connection.identity, room_id):
            raise Unauthorized(f"Access to room {room_id} denied")

    async def join(self, connection_id: str, room_id: str) -> bool:
        """Join a room. The caller always gets a ``room_joined`` acknowledgment."""
        connection = self.connections.get(connection_id)
        if connection is None:
            return False

        try:
            await self.authorize(connection, room_id)
        except Unauthorized as e:
            logger.warning(
                event="room_join_denied",
                connection_id=connection_id,
                user_id=connection.user_id,
                room_id=room_id,
                code=e.code,
            )
            await self._ack(connection_id, ServerEventType.ROOM_JOINED, room_id, False)
            return False

        # The connection may have closed while authorization was awaited
        if self.connections.get(connection_id) is None:
            return False

        members = self._rooms.setdefault(room_id, {})
        members.setdefault(connection.user_id, set()).add(connection_id)
        connection.rooms.add(room_id)

        logger.info(
            event="room_joined",
            connection_id=connection_id,
            user_id=connection.user_id,
            room_id=room_id,
            member_count=len(members),
        )

        for callback in self._join_callbacks:
            await callback(room_id, connection.user_id, set(members))

        await self._ack(connection_id, ServerEventType.ROOM_JOINED, room_id, True)
        return True

    async def leave(self, connection_id: str, room_id: str) -> bool:
        """
        Remove the connection's identity from a room.

        Leaving is identity-wide: the join records of all the identity's
        connections for this room are dropped.
        """
        connection = self.connections.get(connection_id)
        if connection is None:
            return False

        members = self._rooms.get(room_id, {})
        joined = members.pop(connection.user_id, None)
        if joined is None:
            logger.info(
                event="room_leave_rejected",
                reason="not_a_member",
                connection_id=connection_id,
                user_id=connection.user_id,
                room_id=room_id,
            )
            await self._ack(connection_id, ServerEventType.ROOM_LEFT, room_id, False)
            return False

        for joined_id in joined:
            joined_conn = self.connections.get(joined_id)
            if joined_conn is not None:
                joined_conn.rooms.discard(room_id)

        logger.info(
            event="room_left",
            connection_id=connection_id,
            user_id=connection.user_id,
            room_id=room_id,
            member_count=len(members),
        )
        await self._membership_dropped(room_id, connection.user_id)
        await self._ack(connection_id, ServerEventType.ROOM_LEFT, room_id, True)
        return True

    def members_of(self, room_id: str) -> Set[str]:
        """Member identities of a room (a snapshot)."""
        return set(self._rooms.get(room_id, {}))

    def is_member(self, user_id: str, room_id: str) -> bool:
        return user_id in self._rooms.get(room_id, {})

    def rooms_of(self, user_id: str) -> Set[str]:
        return {room_id for room_id, members in self._rooms.items() if user_id in members}

    def get_room_count(self) -> int:
        """Rooms ever joined in this process. Rooms are never destroyed."""
        return len(self._rooms)

    async def connection_closed(self, connection: Connection, last_for_identity: bool) -> None:
        for room_id in sorted(connection.rooms):
            members = self._rooms.get(room_id)
            if not members or connection.user_id not in members:
                continue
            joined = members[connection.user_id]
            joined.discard(connection.connection_id)
            if not joined:
                del members[connection.user_id]
                logger.info(
                    event="room_membership_dropped",
                    user_id=connection.user_id,
                    room_id=room_id,
                    member_count=len(members),
                )
                await self._membership_dropped(room_id, connection.user_id)
        connection.rooms.clear()

    async def _membership_dropped(self, room_id: str, user_id: str) -> None:
        for callback in self._leave_callbacks:
            await callback(room_id, user_id)

    async def _ack(
        self, connection_id: str, event: ServerEventType, room_id: str, success: bool
    ) -> None:
        await self.connections.send_to_connection(
            connection_id, ServerEvent.room_ack(event, room_id, success)
        )
