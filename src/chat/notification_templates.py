"""
Chat notification templates.

A direct message to a participant who is connected but has not joined the
room is announced with a ``new_message`` notification carrying a preview.
"""

from typing import Any, Dict

from chat.notifications import NotificationDispatcher
from common.models import Notification, NotificationType

PREVIEW_LENGTH = 100


def message_preview(text: str) -> str:
    """Cut a message body down for a notification line."""
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "..."
    return text


class ChatNotifications:
    """Builds and sends chat activity notifications."""

    def __init__(self, dispatcher: NotificationDispatcher):
        self.dispatcher = dispatcher

    async def new_message(self, user_id: str, room_id: str, sender_name: str, preview: str) -> int:
        """For participants not currently looking at the room."""
        data: Dict[str, Any] = {"event": "new_message", "roomId": room_id}
        return await self.dispatcher.deliver(
            user_id,
            Notification(
                type=NotificationType.INFO,
                title=f"Message from {sender_name}",
                message=message_preview(preview),
                data=data,
            ),
        )
