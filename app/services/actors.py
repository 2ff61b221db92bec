"""Authenticated actor identity passed to every ledger call"""

from dataclasses import dataclass, field
from typing import FrozenSet
from uuid import UUID

SYSTEM_ACTOR_ID = "system"


@dataclass(frozen=True)
class Actor:
    user_id: str
    is_super_admin: bool = False
    staff_venue_ids: FrozenSet[UUID] = field(default_factory=frozenset)

    def can_override(self, venue_id: UUID) -> bool:
        """Staff and operators of the venue may bypass owner-only rules"""
        return self.is_super_admin or venue_id in self.staff_venue_ids

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id=SYSTEM_ACTOR_ID, is_super_admin=True)
