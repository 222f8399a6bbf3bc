"""
Out-of-band notifications.

Delivered to every live connection of the target identity. With no live
connection the notification is dropped here; offline delivery belongs to
whoever owns the notifications table.
"""

from typing import Any, Dict, Iterable, Optional, Union

from chat.rooms import RoomManager
from common.logging import get_logger
from common.models import Notification, NotificationType
from gateway.connection_manager import ConnectionManager
from router.message_types import ServerEvent, ServerEventType

logger = get_logger(__name__)


class NotificationDispatcher:
    """Pushes ``notification`` events to identities or rooms."""

    def __init__(self, connections: ConnectionManager, rooms: RoomManager):
        self.connections = connections
        self.rooms = rooms

    async def notify(
        self,
        user_id: str,
        type: Union[NotificationType, str],
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Returns the number of connections the notification reached."""
        notification = Notification(type=type, title=title, message=message, data=data)
        return await self.deliver(user_id, notification)

    async def deliver(self, user_id: str, notification: Notification) -> int:
        delivered = await self.connections.send_to_user(user_id, self._event(notification))
        if delivered == 0:
            logger.info(
                event="notification_dropped",
                reason="no_live_connections",
                user_id=user_id,
                notification_type=notification.type.value,
            )
        else:
            logger.info(
                event="notification_sent",
                user_id=user_id,
                notification_type=notification.type.value,
                delivered=delivered,
            )
        return delivered

    async def notify_many(self, user_ids: Iterable[str], notification: Notification) -> int:
        total = 0
        for user_id in sorted(set(user_ids)):
            total += await self.deliver(user_id, notification)
        return total

    async def notify_room(self, room_id: str, notification: Notification) -> int:
        """Notify every current member of a room."""
        return await self.connections.send_to_users(
            self.rooms.members_of(room_id), self._event(notification)
        )

    @staticmethod
    def _event(notification: Notification) -> ServerEvent:
        return ServerEvent(event=ServerEventType.NOTIFICATION, data=notification.to_wire())
