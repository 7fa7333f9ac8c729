"""
Staff report escalation routing.

When a staff-report ticket is elevated, visibility moves to the category above
the reported member's category. The table is fixed; ``directive`` maps onto
itself because nobody sits above it, and such reports also go to the
configured top authority out of band.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from staffdesk.datatypes.rank_datatypes import RankCategory

ESCALATION_TABLE: Dict[RankCategory, RankCategory] = {
    RankCategory.MODERATION: RankCategory.ADMINISTRATION,
    RankCategory.ADMINISTRATION: RankCategory.INTERNAL_AFFAIRS,
    RankCategory.INTERNAL_AFFAIRS: RankCategory.SUPERVISION,
    RankCategory.SUPERVISION: RankCategory.DIRECTIVE,
    RankCategory.MANAGEMENT: RankCategory.DIRECTIVE,
    RankCategory.DIRECTIVE: RankCategory.DIRECTIVE,
}

DEFAULT_VIEWING_CATEGORY = RankCategory.INTERNAL_AFFAIRS


def escalation_category(reported_category: RankCategory | None) -> RankCategory:
    """Viewing category for a report against a member of ``reported_category``."""
    if reported_category is None:
        return DEFAULT_VIEWING_CATEGORY
    return ESCALATION_TABLE.get(reported_category, DEFAULT_VIEWING_CATEGORY)


@dataclass(frozen=True, slots=True)
class EscalationDecision:
    viewing_category: RankCategory
    notify_top_authority: bool


class ReportEscalationResolver:
    """Resolves where an elevated staff report becomes visible."""

    def resolve(self, reported_category: RankCategory | None) -> EscalationDecision:
        return EscalationDecision(
            viewing_category=escalation_category(reported_category),
            notify_top_authority=reported_category is RankCategory.DIRECTIVE,
        )
