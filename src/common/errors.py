"""
Chat error taxonomy.

Every rejected client action maps to one of these. The ``code`` is what goes
out on the wire in ``error`` events.
"""

from typing import Optional


class ChatError(Exception):
    """Base class for errors reported back to a connection."""

    code = "CHAT_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class Unauthorized(ChatError):
    """Room access denied by the permission evaluator."""

    code = "UNAUTHORIZED"


class NotInRoom(ChatError):
    """Send, typing or read from an identity that is not a room member."""

    code = "NOT_IN_ROOM"


class MessageValidationError(ChatError):
    """Empty content, bad message type, malformed frame."""

    code = "VALIDATION_ERROR"


class PersistenceError(ChatError):
    """The message store failed to write. Nothing was broadcast."""

    code = "PERSISTENCE_ERROR"


class DuplicateConnection(ChatError):
    """A connection id was registered twice without an unregister."""

    code = "DUPLICATE_CONNECTION"
