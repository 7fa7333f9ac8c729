"""
Rank and member data structures.

A rank is one position in the single total order of the staff hierarchy.
Members are opaque ids plus the set of role keys they hold; the order of that
set carries no meaning.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable


class RankCategory(Enum):
    """Groups of adjacent ranks, lowest first."""

    MODERATION = "moderation"
    ADMINISTRATION = "administration"
    INTERNAL_AFFAIRS = "internal_affairs"
    SUPERVISION = "supervision"
    MANAGEMENT = "management"
    DIRECTIVE = "directive"

    def __str__(self) -> str:
        return self.value


class StatusMarker(Enum):
    """Special status roles applied by infractions."""

    SUSPENDED = "suspended"
    BLACKLISTED = "blacklisted"
    UNDER_INVESTIGATION = "under_investigation"

    def __str__(self) -> str:
        return self.value


STAFF_TEAM_KEY = "staff_team"


@dataclass(frozen=True, slots=True)
class Rank:
    """One entry of the rank hierarchy.

    Attributes:
        key: Stable identifier used everywhere in the core (e.g. ``"moderator"``).
        name: Human readable name.
        category: Category the rank belongs to.
        level: 1-based position in the ascending total order.
        role_id: Platform role id, only used by chat platform adapters.
    """
    key: str
    name: str
    category: RankCategory
    level: int
    role_id: int | None = None


@dataclass(frozen=True, slots=True)
class StaffMember:
    """A member as seen by the permission checks: id plus held role keys."""
    member_id: str
    rank_keys: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, member_id: str | int, keys: Iterable[str] = ()) -> "StaffMember":
        return cls(member_id=str(member_id), rank_keys=frozenset(keys))

    def holds(self, key: str) -> bool:
        return key in self.rank_keys
