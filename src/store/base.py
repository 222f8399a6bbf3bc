"""
Message store interface.

Chat history and read markers live behind this interface. The gateway only
ever talks to a ``MessageStore``; the backing database is someone else's job.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from common.models import ChatMessage, ReadMarker


class MessageStore(ABC):
    """Base class for chat persistence backends."""

    @abstractmethod
    async def save_message(self, message: ChatMessage) -> None:
        """
        Persist an accepted message.

        Raises:
            PersistenceError: the write did not complete
        """

    @abstractmethod
    async def list_messages(
        self, room_id: str, limit: int = 50, offset: int = 0
    ) -> List[ChatMessage]:
        """
        Page through a room's history.

        Skips the ``offset`` newest messages, takes the next ``limit`` and
        returns them oldest first.
        """

    @abstractmethod
    async def mark_read(self, room_id: str, user_id: str, read_at: datetime) -> ReadMarker:
        """Record that ``user_id`` has read ``room_id`` up to ``read_at``."""

    @abstractmethod
    async def get_read_marker(self, room_id: str, user_id: str) -> Optional[ReadMarker]:
        """Last read marker for the pair, if any."""

    @abstractmethod
    async def unread_count(self, room_id: str, user_id: str) -> int:
        """
        Messages in ``room_id`` created after the user's read marker, not
        counting the user's own. Without a marker every such message counts.
        """

    async def health_check(self) -> bool:
        """Check if the store is reachable."""
        return True
