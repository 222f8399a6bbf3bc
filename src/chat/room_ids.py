"""
Room id canonicalization.

Batch rooms are ``batch:<batchId>``. Direct rooms are ``dm:`` followed by the
participant ids sorted lexicographically and joined with ``:``, so any two
peers resolve to the same id regardless of call order.
"""

from enum import Enum
from typing import NamedTuple, Optional, Tuple


class RoomKind(str, Enum):
    BATCH = "batch"
    DM = "dm"


class ParsedRoomId(NamedTuple):
    kind: RoomKind
    ids: Tuple[str, ...]


def generate_chat_room_id(kind: str, *ids: str) -> str:
    """
    Build a room id.

    Args:
        kind: "batch" or "dm"
        *ids: the batch id, or the participant ids of a direct room

    Raises:
        ValueError: unknown kind, wrong number of ids, or ids containing ':'
    """
    room_kind = RoomKind(kind)
    if any(not i or ":" in i for i in ids):
        raise ValueError(f"Invalid ids for {room_kind.value} room: {ids!r}")

    if room_kind is RoomKind.BATCH:
        if len(ids) != 1:
            raise ValueError(f"batch room needs exactly one id, got {len(ids)}")
        return f"batch:{ids[0]}"

    # parse_room_id rejects direct rooms with a single participant
    if len(ids) < 2:
        raise ValueError(f"dm room needs at least two participants, got {len(ids)}")
    return "dm:" + ":".join(sorted(ids))


def parse_room_id(room_id: str) -> Optional[ParsedRoomId]:
    """Split a room id into its kind and ids. Returns None when malformed."""
    prefix, sep, rest = room_id.partition(":")
    if not sep or not rest:
        return None

    parts = tuple(rest.split(":"))
    if any(not p for p in parts):
        return None

    if prefix == RoomKind.BATCH.value:
        if len(parts) != 1:
            return None
        return ParsedRoomId(RoomKind.BATCH, parts)

    if prefix == RoomKind.DM.value:
        if len(parts) < 2 or list(parts) != sorted(parts):
            return None
        return ParsedRoomId(RoomKind.DM, parts)

    return None
