"""The person issuing a command."""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class ActorRole(str, Enum):
    STAFF = "STAFF"
    SUPERVISOR = "SUPERVISOR"
    MANAGER = "MANAGER"
    DIRECTOR = "DIRECTOR"
    ADMIN = "ADMIN"

    @property
    def level(self) -> int:
        return _ROLE_LEVELS[self]


_ROLE_LEVELS = {
    ActorRole.STAFF: 1,
    ActorRole.SUPERVISOR: 2,
    ActorRole.MANAGER: 3,
    ActorRole.DIRECTOR: 4,
    ActorRole.ADMIN: 5,
}


@dataclass(frozen=True)
class Actor:
    """Authenticated caller.  ``grouping_id`` is the outlet or department a
    supervisor oversees."""

    actor_id: UUID
    role: ActorRole
    grouping_id: UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN
