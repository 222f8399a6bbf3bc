"""
Server-side room authorization.

Whatever the client believes about its own role, every join and history read
goes through a ``PermissionEvaluator``.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Mapping, Optional, Set, Tuple, Union

from chat.room_ids import RoomKind, parse_room_id
from common.logging import get_logger
from common.models import Identity, Role

logger = get_logger(__name__)

# Role -> granted permissions. "*" grants everything.
PERMISSIONS: Dict[Role, Set[str]] = {
    Role.ADMIN: {"*"},
    Role.COACH: {
        "demo:view:assigned",
        "student:view:assigned",
        "batch:view:assigned",
        "chat:batch",
        "chat:admin",
        "calendar:manage",
    },
    Role.CUSTOMER: {
        "student:view:own",
        "schedule:view",
        "chat:batch",
        "chat:admin",
        "payment:view:own",
    },
}


def has_permission(role: Role, permission: str) -> bool:
    granted = PERMISSIONS.get(role, set())
    return "*" in granted or permission in granted


# Role pairs that may not share a direct room: coaches and parents talk
# through batch rooms or the academy admins
DM_FORBIDDEN_PAIRS = {frozenset({Role.COACH, Role.CUSTOMER})}


def dm_allowed(role: Role, other: Role) -> bool:
    return frozenset({role, other}) not in DM_FORBIDDEN_PAIRS


class BatchDirectory(ABC):
    """Answers which accounts belong to a coaching batch."""

    @abstractmethod
    async def is_member(self, batch_id: str, user_id: str) -> bool:
        pass


class StaticBatchDirectory(BatchDirectory):
    """Batch membership from a fixed mapping (config ``permissions.batch_members``)."""

    def __init__(self, batch_members: Mapping[str, Iterable[str]]):
        self._members = {batch_id: set(users) for batch_id, users in batch_members.items()}

    async def is_member(self, batch_id: str, user_id: str) -> bool:
        return user_id in self._members.get(batch_id, set())

    def add_member(self, batch_id: str, user_id: str) -> None:
        self._members.setdefault(batch_id, set()).add(user_id)


class AccountDirectory(ABC):
    """Looks up accounts that may not be connected right now."""

    @abstractmethod
    async def role_of(self, user_id: str) -> Optional[Role]:
        """Role of the account, or None if no such account is known."""


class StaticAccountDirectory(AccountDirectory):
    """
    Account roles from config ``permissions.account_roles``, plus every
    identity that has connected to this process.
    """

    def __init__(self, account_roles: Optional[Mapping[str, Union[Role, str]]] = None):
        self._roles: Dict[str, Role] = {
            user_id: Role(role) for user_id, role in (account_roles or {}).items()
        }

    async def role_of(self, user_id: str) -> Optional[Role]:
        return self._roles.get(user_id)

    def add_account(self, user_id: str, role: Union[Role, str]) -> None:
        self._roles[user_id] = Role(role)


class PermissionEvaluator(ABC):
    """Decides whether an identity may access a room."""

    @abstractmethod
    async def can_access_room(self, identity: Identity, room_id: str) -> bool:
        pass


class RolePermissionEvaluator(PermissionEvaluator):
    """
    Role based room access.

    Admins may access any well-formed room. Everyone else needs ``chat:batch``
    plus batch enrollment for batch rooms. A direct room needs the caller to be
    a participant, every other participant to be a known account, and no
    coach/parent pairing. Malformed room ids are always denied.
    """

    def __init__(
        self,
        batch_directory: BatchDirectory,
        account_directory: Optional[AccountDirectory] = None,
    ):
        self.batch_directory = batch_directory
        self.account_directory = account_directory or StaticAccountDirectory()

    async def can_access_room(self, identity: Identity, room_id: str) -> bool:
        parsed = parse_room_id(room_id)
        if parsed is None:
            logger.info(event="room_access_denied", reason="malformed_room_id", room_id=room_id)
            return False

        if has_permission(identity.role, "*"):
            return True

        if parsed.kind is RoomKind.BATCH:
            if not has_permission(identity.role, "chat:batch"):
                return False
            return await self.batch_directory.is_member(parsed.ids[0], identity.id)

        if identity.id not in parsed.ids:
            return False
        return await self._dm_peers_allowed(identity, room_id, parsed.ids)

    async def _dm_peers_allowed(
        self, identity: Identity, room_id: str, ids: Tuple[str, ...]
    ) -> bool:
        for other_id in ids:
            if other_id == identity.id:
                continue
            other_role = await self.account_directory.role_of(other_id)
            if other_role is None:
                reason = "unknown_participant"
            elif not dm_allowed(identity.role, other_role):
                reason = "dm_role_pair"
            else:
                continue
            logger.info(
                event="room_access_denied",
                reason=reason,
                room_id=room_id,
                user_id=identity.id,
                other_id=other_id,
            )
            return False
        return True
