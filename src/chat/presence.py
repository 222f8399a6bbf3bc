"""
Presence tracking.

offline -> online on an identity's first live connection; online -> offline
once its last connection has been gone for ``presence_debounce`` seconds.
A reconnect inside the debounce window cancels the pending transition and
nobody hears about it.

Updates go to the identity's peers: identities that have shared a room with
it since this process started.
"""

import asyncio
from datetime import datetime
from typing import Dict, Set

from common.logging import get_logger
from common.models import PresenceState, PresenceStatus, PresenceUpdate, utcnow
from gateway.connection_manager import Connection, ConnectionListener, ConnectionManager
from router.message_types import ServerEvent, ServerEventType

logger = get_logger(__name__)


class PresenceTracker(ConnectionListener):
    """Maintains per-identity presence and broadcasts transitions to peers."""

    def __init__(self, connections: ConnectionManager, debounce: float):
        self.connections = connections
        self.debounce = debounce
        self._states: Dict[str, PresenceState] = {}
        self._peers: Dict[str, Set[str]] = {}
        self._pending_offline: Dict[str, asyncio.Task] = {}

    def status_of(self, user_id: str) -> PresenceState:
        return self._states.get(user_id, PresenceState())

    def peers_of(self, user_id: str) -> Set[str]:
        return set(self._peers.get(user_id, set()))

    async def record_peers(self, room_id: str, user_id: str, members: Set[str]) -> None:
        """Join callback: everyone in the room becomes a peer of the joiner, and vice versa."""
        for member in members:
            if member == user_id:
                continue
            self._peers.setdefault(user_id, set()).add(member)
            self._peers.setdefault(member, set()).add(user_id)

    async def connection_opened(self, connection: Connection, first_for_identity: bool) -> None:
        user_id = connection.user_id

        pending = self._pending_offline.pop(user_id, None)
        if pending is not None:
            pending.cancel()
            logger.info(event="presence_offline_cancelled", user_id=user_id)
            return

        if self.status_of(user_id).status is PresenceStatus.ONLINE:
            return

        self._states[user_id] = PresenceState(status=PresenceStatus.ONLINE)
        await self._broadcast(PresenceUpdate(user_id=user_id, status=PresenceStatus.ONLINE))

    async def connection_closed(self, connection: Connection, last_for_identity: bool) -> None:
        if not last_for_identity:
            return
        user_id = connection.user_id
        disconnected_at = utcnow()
        self._pending_offline[user_id] = asyncio.create_task(
            self._go_offline(user_id, disconnected_at)
        )
        logger.info(event="presence_offline_pending", user_id=user_id, debounce=self.debounce)

    def shutdown(self) -> None:
        for task in self._pending_offline.values():
            task.cancel()
        self._pending_offline.clear()

    async def _go_offline(self, user_id: str, disconnected_at: datetime) -> None:
        await asyncio.sleep(self.debounce)
        if self._pending_offline.get(user_id) is not asyncio.current_task():
            return
        del self._pending_offline[user_id]

        if self.connections.is_online(user_id):
            return

        self._states[user_id] = PresenceState(
            status=PresenceStatus.OFFLINE, last_seen=disconnected_at
        )
        await self._broadcast(
            PresenceUpdate(
                user_id=user_id, status=PresenceStatus.OFFLINE, last_seen=disconnected_at
            )
        )

    async def _broadcast(self, update: PresenceUpdate) -> None:
        event = ServerEvent(event=ServerEventType.PRESENCE_UPDATE, data=update.to_wire())
        delivered = await self.connections.send_to_users(
            self.peers_of(update.user_id), event, exclude_user=update.user_id
        )
        logger.info(
            event="presence_update",
            user_id=update.user_id,
            status=update.status.value,
            delivered=delivered,
        )
