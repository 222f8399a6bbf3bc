"""
In-process message store.

Keeps history in memory per room, in acceptance order. Used by default and in
tests; swap in a database-backed ``MessageStore`` for production.
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from common.logging import get_logger
from common.models import ChatMessage, ReadMarker
from store.base import MessageStore

logger = get_logger(__name__)


class InMemoryMessageStore(MessageStore):
    """Dict-backed store."""

    def __init__(self):
        self._messages: Dict[str, List[ChatMessage]] = defaultdict(list)
        self._read_markers: Dict[Tuple[str, str], ReadMarker] = {}

    async def save_message(self, message: ChatMessage) -> None:
        self._messages[message.room_id].append(message)
        logger.debug(
            event="message_saved",
            room_id=message.room_id,
            message_id=message.id,
            sequence=message.sequence,
        )

    async def list_messages(
        self, room_id: str, limit: int = 50, offset: int = 0
    ) -> List[ChatMessage]:
        history = self._messages.get(room_id, [])
        end = len(history) - offset
        if end <= 0:
            return []
        return list(history[max(0, end - limit) : end])

    async def mark_read(self, room_id: str, user_id: str, read_at: datetime) -> ReadMarker:
        marker = ReadMarker(room_id=room_id, user_id=user_id, read_at=read_at)
        self._read_markers[(room_id, user_id)] = marker
        return marker

    async def get_read_marker(self, room_id: str, user_id: str) -> Optional[ReadMarker]:
        return self._read_markers.get((room_id, user_id))

    async def unread_count(self, room_id: str, user_id: str) -> int:
        marker = self._read_markers.get((room_id, user_id))
        return sum(
            1
            for message in self._messages.get(room_id, [])
            if message.sender_id != user_id
            and (marker is None or message.created_at > marker.read_at)
        )

    def message_count(self, room_id: str) -> int:
        """Number of stored messages in a room."""
        return len(self._messages.get(room_id, []))
