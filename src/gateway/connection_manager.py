"""
WebSocket connection registry.

Tracks every live connection, the identity behind it and the rooms it joined,
and delivers server events to connections.
- Single responsibility: connection bookkeeping and delivery only
- Lifecycle listeners are told about first/last connection per identity
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

from common.errors import DuplicateConnection
from common.logging import get_logger
from common.models import Identity, utcnow
from router.message_types import ServerEvent

logger = get_logger(__name__)


@dataclass
class Connection:
    """One open socket and its per-connection chat state."""

    connection_id: str
    websocket: WebSocket
    identity: Identity
    rooms: Set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=utcnow)
    last_activity: datetime = field(default_factory=utcnow)

    @property
    def user_id(self) -> str:
        return self.identity.id


class ConnectionListener:
    """Receives connection lifecycle callbacks from the registry."""

    async def connection_opened(self, connection: Connection, first_for_identity: bool) -> None:
        pass

    async def connection_closed(self, connection: Connection, last_for_identity: bool) -> None:
        pass


class ConnectionManager:
    """Manages WebSocket connections and event delivery."""

    def __init__(self):
        self.active_connections: Dict[str, Connection] = {}
        self.user_connections: Dict[str, Set[str]] = {}  # user_id -> set of connection_ids
        self._listeners: List[ConnectionListener] = []

    def add_listener(self, listener: ConnectionListener) -> None:
        """Listeners are notified in registration order."""
        self._listeners.append(listener)

    async def register(
        self, websocket: WebSocket, identity: Identity, connection_id: Optional[str] = None
    ) -> str:
        """
        Register an accepted socket for an authenticated identity.

        A fresh uuid4 connection id is generated when none is given.

        Raises:
            DuplicateConnection: connection_id is already live
        """
        if connection_id is None:
            connection_id = str(uuid.uuid4())

        if connection_id in self.active_connections:
            logger.error(
                event="duplicate_connection",
                message="Connection id registered twice",
                connection_id=connection_id,
                user_id=identity.id,
            )
            raise DuplicateConnection(f"Connection {connection_id} is already registered")

        connection = Connection(connection_id=connection_id, websocket=websocket, identity=identity)
        self.active_connections[connection_id] = connection

        user_conns = self.user_connections.setdefault(identity.id, set())
        first = not user_conns
        user_conns.add(connection_id)

        logger.info(
            event="connection_established",
            message="WebSocket connection established",
            connection_id=connection_id,
            user_id=identity.id,
            role=identity.role.value,
            total_connections=len(self.active_connections),
        )

        for listener in self._listeners:
            await listener.connection_opened(connection, first)

        return connection_id

    async def unregister(self, connection_id: str) -> None:
        """Remove a connection and run cleanup listeners. Unknown ids are ignored."""
        connection = self.active_connections.pop(connection_id, None)
        if connection is None:
            return

        user_conns = self.user_connections.get(connection.user_id, set())
        user_conns.discard(connection_id)
        last = not user_conns
        if last:
            self.user_connections.pop(connection.user_id, None)

        logger.info(
            event="connection_closed",
            message="WebSocket connection closed",
            connection_id=connection_id,
            user_id=connection.user_id,
            rooms=sorted(connection.rooms),
            last_for_identity=last,
            total_connections=len(self.active_connections),
        )

        for listener in self._listeners:
            await listener.connection_closed(connection, last)

    def get(self, connection_id: str) -> Optional[Connection]:
        return self.active_connections.get(connection_id)

    def touch(self, connection_id: str) -> None:
        """Update last-activity of a connection."""
        connection = self.active_connections.get(connection_id)
        if connection is not None:
            connection.last_activity = utcnow()

    def connections_for(self, user_id: str) -> Set[str]:
        """Live connection ids of an identity (a copy)."""
        return set(self.user_connections.get(user_id, set()))

    def is_online(self, user_id: str) -> bool:
        return bool(self.user_connections.get(user_id))

    async def send_to_connection(self, connection_id: str, event: ServerEvent) -> bool:
        """
        Send an event to a specific connection.

        Returns:
            True if sent successfully, False if connection not found or failed
        """
        connection = self.active_connections.get(connection_id)
        if connection is None:
            logger.warning(
                event="connection_not_found",
                message="Connection not found for send attempt",
                connection_id=connection_id,
                server_event=event.event.value,
            )
            return False

        try:
            await connection.websocket.send_text(event.model_dump_json())
            return True
        except Exception as e:
            logger.error(
                event="send_failed",
                message="Failed to send event to connection",
                connection_id=connection_id,
                server_event=event.event.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def send_to_user(
        self, user_id: str, event: ServerEvent, exclude_connection: Optional[str] = None
    ) -> int:
        """
        Send an event to all connections of a user.

        Returns:
            Number of connections that received the event
        """
        sent_count = 0
        for connection_id in sorted(self.connections_for(user_id)):
            if connection_id == exclude_connection:
                continue
            if await self.send_to_connection(connection_id, event):
                sent_count += 1
        return sent_count

    async def send_to_users(
        self, user_ids: Iterable[str], event: ServerEvent, exclude_user: Optional[str] = None
    ) -> int:
        """Send an event to every connection of every listed user."""
        sent_count = 0
        for user_id in sorted(set(user_ids)):
            if user_id == exclude_user:
                continue
            sent_count += await self.send_to_user(user_id, event)
        return sent_count

    def get_connection_count(self) -> int:
        """Get the total number of active connections."""
        return len(self.active_connections)

    def get_user_connection_count(self, user_id: str) -> int:
        """Get the number of connections for a specific user."""
        return len(self.user_connections.get(user_id, set()))

    def get_online_user_count(self) -> int:
        return len(self.user_connections)
