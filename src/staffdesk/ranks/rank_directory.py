"""
Static directory of the staff hierarchy.

Built once from a rank table and treated as read-only for the life of the
process. Besides the ranks themselves the directory knows the auxiliary roles
(status markers, the staff team role and one umbrella role per category) so
platform adapters can translate every role key the core uses.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Mapping, Sequence, Tuple

from staffdesk.configuration.rank_table import DEFAULT_RANK_TABLE, category_role_key
from staffdesk.datatypes.rank_datatypes import (
    STAFF_TEAM_KEY,
    Rank,
    RankCategory,
    StatusMarker,
)
from staffdesk.ranks.escalation import escalation_category
from staffdesk.util.logger import get_logger

logger = get_logger("rank_directory")


class RankDirectory:
    """Read-only lookup over ranks, categories and auxiliary roles.

    Args:
        table: ``(key, name, category)`` rows ordered lowest rank first.
        role_ids: Optional platform role id per role key.

    Raises:
        ValueError: If the table is empty or repeats a key.
    """

    def __init__(
        self,
        table: Sequence[Tuple[str, str, RankCategory]] = DEFAULT_RANK_TABLE,
        role_ids: Mapping[str, int] | None = None,
    ) -> None:
        if not table:
            raise ValueError("Rank table must contain at least one rank")

        role_ids = dict(role_ids or {})
        ranks = []
        seen: set[str] = set()
        for level, (key, name, category) in enumerate(table, start=1):
            if key in seen:
                raise ValueError(f"Duplicate rank key {key!r}")
            seen.add(key)
            ranks.append(Rank(key=key, name=name, category=RankCategory(category), level=level, role_id=role_ids.get(key)))

        self._ascending: Tuple[Rank, ...] = tuple(ranks)
        self._descending: Tuple[Rank, ...] = tuple(reversed(ranks))
        self._by_key: Dict[str, Rank] = {rank.key: rank for rank in ranks}

        self._category_roles: Dict[RankCategory, str] = {
            category: category_role_key(category) for category in RankCategory
        }
        self._marker_keys: FrozenSet[str] = frozenset(marker.value for marker in StatusMarker)
        self._staff_role_keys: FrozenSet[str] = (
            frozenset(self._by_key) | frozenset(self._category_roles.values()) | {STAFF_TEAM_KEY}
        )

        self._role_ids: Dict[str, int] = {
            key: role_id for key, role_id in role_ids.items() if key in self.known_keys
        }
        self._keys_by_role_id: Dict[int, str] = {role_id: key for key, role_id in self._role_ids.items()}

        unknown = set(role_ids) - self.known_keys
        if unknown:
            logger.warning("[RANKS] Ignoring role ids for unknown keys: %s", ", ".join(sorted(unknown)))

    # ------------------------------------------------------------------
    # Ranks
    # ------------------------------------------------------------------

    def rank_of(self, key: str) -> Rank | None:
        return self._by_key.get(key)

    def all_ranks_high_to_low(self) -> Tuple[Rank, ...]:
        return self._descending

    def all_ranks_low_to_high(self) -> Tuple[Rank, ...]:
        return self._ascending

    def ranks_in_category(self, category: RankCategory) -> Tuple[Rank, ...]:
        """Ranks of ``category``, lowest first."""
        return tuple(rank for rank in self._ascending if rank.category is category)

    def top_rank(self) -> Rank:
        return self._descending[0]

    def is_rank(self, key: str) -> bool:
        return key in self._by_key

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def category_escalation_target(self, category: RankCategory | None) -> RankCategory:
        return escalation_category(category)

    def category_role(self, category: RankCategory) -> str:
        return self._category_roles[category]

    def categories_in_order(self) -> Tuple[RankCategory, ...]:
        """Categories in the order their lowest rank appears."""
        ordered: list[RankCategory] = []
        for rank in self._ascending:
            if rank.category not in ordered:
                ordered.append(rank.category)
        return tuple(ordered)

    # ------------------------------------------------------------------
    # Auxiliary roles
    # ------------------------------------------------------------------

    @property
    def marker_keys(self) -> FrozenSet[str]:
        return self._marker_keys

    @property
    def staff_role_keys(self) -> FrozenSet[str]:
        """Every role that counts as staff membership: ranks, category roles and the staff team role."""
        return self._staff_role_keys

    @property
    def known_keys(self) -> FrozenSet[str]:
        return self._staff_role_keys | self._marker_keys

    def staff_roles_among(self, keys: Iterable[str]) -> FrozenSet[str]:
        return frozenset(keys) & self._staff_role_keys

    # ------------------------------------------------------------------
    # Platform role ids
    # ------------------------------------------------------------------

    def role_id_for(self, key: str) -> int | None:
        return self._role_ids.get(key)

    def key_for_role_id(self, role_id: int) -> str | None:
        return self._keys_by_role_id.get(role_id)
