"""
Chat hub: wires registry, rooms, typing, presence, messages and notifications.

On disconnect, rooms drop the memberships the connection held (clearing any
typing state there through the leave callback) before presence starts its
offline debounce. Every connecting identity is recorded in the account
directory so direct-room checks know its role.
"""

from typing import List, Optional

from fastapi import WebSocket

from chat.messages import MessageRouter
from chat.notification_templates import ChatNotifications
from chat.notifications import NotificationDispatcher
from chat.permissions import (
    PermissionEvaluator,
    RolePermissionEvaluator,
    StaticAccountDirectory,
    StaticBatchDirectory,
)
from chat.presence import PresenceTracker
from chat.rooms import RoomManager
from chat.typing_indicator import TypingTracker
from common.config import Config
from common.logging import get_logger
from common.models import Identity, PresenceStatus
from gateway.connection_manager import ConnectionManager
from store.base import MessageStore
from store.memory import InMemoryMessageStore

logger = get_logger(__name__)


class ChatHub:
    """Composition root of the chat subsystem."""

    def __init__(
        self,
        config: Config,
        store: Optional[MessageStore] = None,
        permissions: Optional[PermissionEvaluator] = None,
    ):
        self.config = config
        self.store = store or InMemoryMessageStore()
        self.accounts = StaticAccountDirectory(config.permissions.account_roles)
        self.permissions = permissions or RolePermissionEvaluator(
            StaticBatchDirectory(config.permissions.batch_members), self.accounts
        )

        self.connections = ConnectionManager()
        self.rooms = RoomManager(self.connections, self.permissions)
        self.typing = TypingTracker(self.connections, self.rooms, config.chat.typing_timeout)
        self.presence = PresenceTracker(self.connections, config.chat.presence_debounce)
        self.notifications = NotificationDispatcher(self.connections, self.rooms)
        self.chat_notifications = ChatNotifications(self.notifications)
        self.messages = MessageRouter(
            config.chat,
            self.connections,
            self.rooms,
            self.store,
            typing=self.typing,
            notifications=self.chat_notifications,
        )

        self.connections.add_listener(self.rooms)
        self.connections.add_listener(self.presence)
        self.rooms.on_join(self.presence.record_peers)
        self.rooms.on_leave(self.typing.membership_dropped)

        logger.info(
            event="chat_hub_initialized",
            store=type(self.store).__name__,
            permissions=type(self.permissions).__name__,
            typing_timeout=config.chat.typing_timeout,
            presence_debounce=config.chat.presence_debounce,
        )

    async def connect(
        self, websocket: WebSocket, identity: Identity, connection_id: Optional[str] = None
    ) -> str:
        """
        Raises:
            DuplicateConnection: connection_id is already live
        """
        self.accounts.add_account(identity.id, identity.role)
        return await self.connections.register(websocket, identity, connection_id)

    def online_members(self, room_id: str) -> List[str]:
        """Members of a room whose presence is online, sorted."""
        return sorted(
            user_id
            for user_id in self.rooms.members_of(room_id)
            if self.presence.status_of(user_id).status is PresenceStatus.ONLINE
        )

    async def disconnect(self, connection_id: str) -> None:
        await self.connections.unregister(connection_id)

    def shutdown(self) -> None:
        """Cancel pending typing timeouts and presence debounces."""
        self.typing.shutdown()
        self.presence.shutdown()
        logger.info(event="chat_hub_shutdown")
