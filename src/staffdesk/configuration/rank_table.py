"""Default staff hierarchy, lowest rank first.

The YAML configuration may attach platform role ids to these keys but cannot
reorder them; the order here is the single total order of the hierarchy.
"""

from __future__ import annotations

from typing import List, Tuple

from staffdesk.datatypes.rank_datatypes import RankCategory

# (key, name, category)
DEFAULT_RANK_TABLE: List[Tuple[str, str, RankCategory]] = [
    ("trial_moderator", "Trial Moderator", RankCategory.MODERATION),
    ("moderator", "Moderator", RankCategory.MODERATION),
    ("senior_moderator", "Senior Moderator", RankCategory.MODERATION),
    ("head_moderator", "Head Moderator", RankCategory.MODERATION),
    ("trial_admin", "Trial Administrator", RankCategory.ADMINISTRATION),
    ("admin", "Administrator", RankCategory.ADMINISTRATION),
    ("senior_admin", "Senior Administrator", RankCategory.ADMINISTRATION),
    ("head_admin", "Head Administrator", RankCategory.ADMINISTRATION),
    ("trial_internal_affairs", "Trial Internal Affairs", RankCategory.INTERNAL_AFFAIRS),
    ("internal_affairs", "Internal Affairs", RankCategory.INTERNAL_AFFAIRS),
    ("internal_affairs_director", "Internal Affairs Director", RankCategory.INTERNAL_AFFAIRS),
    ("staff_supervisor_in_training", "Staff Supervisor in Training", RankCategory.SUPERVISION),
    ("staff_supervisor", "Staff Supervisor", RankCategory.SUPERVISION),
    ("lead_staff_supervisor", "Lead Staff Supervisor", RankCategory.SUPERVISION),
    ("trial_manager", "Trial Manager", RankCategory.MANAGEMENT),
    ("manager", "Manager", RankCategory.MANAGEMENT),
    ("senior_manager", "Senior Manager", RankCategory.MANAGEMENT),
    ("assistant_director", "Assistant Director", RankCategory.DIRECTIVE),
    ("lead_assistant_director", "Lead Assistant Director", RankCategory.DIRECTIVE),
    ("vice_deputy_director", "Vice Deputy Director", RankCategory.DIRECTIVE),
    ("deputy_director", "Deputy Director", RankCategory.DIRECTIVE),
    ("director", "Director", RankCategory.DIRECTIVE),
]


def category_role_key(category: RankCategory) -> str:
    """Key of the umbrella role every member of ``category`` also holds."""
    return f"{category.value}_category"
