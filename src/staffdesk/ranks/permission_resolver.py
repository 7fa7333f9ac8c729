"""
Rank-based authority checks.

Every permission check in the workflows has one of two shapes: "at least rank
X" (a level threshold) or "holds a rank in one of these categories" (a
category allow-list). :meth:`PermissionResolver.has_at_least` answers both;
:meth:`PermissionResolver.authorize` adds the override ids and the status
blocks (suspended or blacklisted members are refused everything).
"""

from __future__ import annotations

from enum import Enum
from typing import Collection, FrozenSet, Iterable

from staffdesk.datatypes.rank_datatypes import Rank, RankCategory, StaffMember, StatusMarker
from staffdesk.errors import PermissionDenied
from staffdesk.ranks.rank_directory import RankDirectory
from staffdesk.util.logger import get_logger

logger = get_logger("permission_resolver")


class PermissionPreset(Enum):
    """Named thresholds; the value is the lowest rank key that passes."""

    MODERATOR_PLUS = "trial_moderator"
    ADMINISTRATOR_PLUS = "trial_admin"
    INTERNAL_AFFAIRS_PLUS = "trial_internal_affairs"
    SUPERVISOR_PLUS = "staff_supervisor_in_training"
    MANAGER_PLUS = "trial_manager"
    DIRECTOR_PLUS = "assistant_director"
    TOP_ONLY = "__top__"


Threshold = PermissionPreset | str | None


class PermissionResolver:
    """Answers hierarchy questions about a set of held role keys.

    Args:
        directory: The rank directory providing the total order.
        override_ids: Member ids that pass every :meth:`authorize` call.
    """

    BLOCKING_MARKERS = (StatusMarker.BLACKLISTED, StatusMarker.SUSPENDED)

    def __init__(self, directory: RankDirectory, override_ids: Iterable[str] = ()) -> None:
        self.directory = directory
        self.override_ids: FrozenSet[str] = frozenset(str(i) for i in override_ids)

    # ------------------------------------------------------------------
    # Hierarchy queries
    # ------------------------------------------------------------------

    def highest_rank(self, held_keys: Collection[str]) -> Rank | None:
        """Highest rank held, found by walking the directory order, never the input order."""
        held = frozenset(held_keys)
        for rank in self.directory.all_ranks_high_to_low():
            if rank.key in held:
                return rank
        return None

    def rank_level(self, key: str) -> int:
        """Level of ``key`` in the ascending order; 0 for keys that are not ranks."""
        rank = self.directory.rank_of(key)
        return rank.level if rank else 0

    def member_level(self, held_keys: Collection[str]) -> int:
        rank = self.highest_rank(held_keys)
        return rank.level if rank else 0

    def threshold_key(self, threshold: Threshold) -> str | None:
        if threshold is None:
            return None
        if isinstance(threshold, PermissionPreset):
            if threshold is PermissionPreset.TOP_ONLY:
                return self.directory.top_rank().key
            return threshold.value
        return threshold

    def has_at_least(
        self,
        held_keys: Collection[str],
        threshold: Threshold,
        allowed_categories: Collection[RankCategory] = (),
    ) -> bool:
        """True if the highest held rank reaches ``threshold`` or any held rank is in ``allowed_categories``.

        ``threshold`` may be a rank key, a :class:`PermissionPreset` or None for
        a pure category gate. An unknown threshold key never passes.
        """
        key = self.threshold_key(threshold)
        if key is not None:
            required = self.directory.rank_of(key)
            if required is None:
                logger.warning("[PERMISSIONS] Unknown threshold rank %r", key)
            elif self.member_level(held_keys) >= required.level:
                return True

        if allowed_categories:
            allowed = frozenset(allowed_categories)
            for held in held_keys:
                rank = self.directory.rank_of(held)
                if rank is not None and rank.category in allowed:
                    return True
        return False

    def is_staff(self, held_keys: Collection[str]) -> bool:
        return self.highest_rank(held_keys) is not None

    def is_top_authority(self, held_keys: Collection[str]) -> bool:
        return self.directory.top_rank().key in frozenset(held_keys)

    def can_act_on(self, actor_keys: Collection[str], target_keys: Collection[str]) -> bool:
        """False when the target's highest rank is strictly above the actor's."""
        return self.member_level(target_keys) <= self.member_level(actor_keys)

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def is_overridden(self, member: StaffMember) -> bool:
        return member.member_id in self.override_ids

    def blocking_marker(self, member: StaffMember) -> StatusMarker | None:
        for marker in self.BLOCKING_MARKERS:
            if member.holds(marker.value):
                return marker
        return None

    def allows(
        self,
        member: StaffMember,
        threshold: Threshold,
        allowed_categories: Collection[RankCategory] = (),
    ) -> bool:
        if self.is_overridden(member):
            return True
        if self.blocking_marker(member) is not None:
            return False
        return self.has_at_least(member.rank_keys, threshold, allowed_categories)

    def authorize(
        self,
        member: StaffMember,
        threshold: Threshold,
        allowed_categories: Collection[RankCategory] = (),
        action: str = "this action",
    ) -> None:
        """Raise :class:`PermissionDenied` unless ``member`` may perform ``action``."""
        if self.is_overridden(member):
            return

        marker = self.blocking_marker(member)
        if marker is not None:
            raise PermissionDenied(f"Members marked {marker.value} cannot perform {action}.")

        if not self.has_at_least(member.rank_keys, threshold, allowed_categories):
            key = self.threshold_key(threshold)
            rank = self.directory.rank_of(key) if key else None
            requirement = f"{rank.name} or higher" if rank else "a qualifying rank"
            if allowed_categories:
                names = ", ".join(sorted(c.value for c in allowed_categories))
                requirement = f"{requirement} (or a rank in: {names})" if rank else f"a rank in: {names}"
            raise PermissionDenied(f"You must be {requirement} to perform {action}.")
