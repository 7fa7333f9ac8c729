"""Tests for the rank directory and escalation routing."""

import pytest

from staffdesk.datatypes.rank_datatypes import RankCategory
from staffdesk.ranks.escalation import (
    ESCALATION_TABLE,
    ReportEscalationResolver,
    escalation_category,
)
from staffdesk.ranks.rank_directory import RankDirectory


def test_default_table_is_ordered_low_to_high():
    directory = RankDirectory()
    ranks = directory.all_ranks_low_to_high()
    assert ranks[0].key == "trial_moderator"
    assert ranks[-1].key == "director"
    assert [r.level for r in ranks] == list(range(1, len(ranks) + 1))
    assert directory.all_ranks_high_to_low() == tuple(reversed(ranks))
    assert directory.top_rank().key == "director"


def test_ranks_in_category():
    directory = RankDirectory()
    keys = [r.key for r in directory.ranks_in_category(RankCategory.INTERNAL_AFFAIRS)]
    assert keys == ["trial_internal_affairs", "internal_affairs", "internal_affairs_director"]


def test_categories_in_order():
    assert RankDirectory().categories_in_order() == (
        RankCategory.MODERATION,
        RankCategory.ADMINISTRATION,
        RankCategory.INTERNAL_AFFAIRS,
        RankCategory.SUPERVISION,
        RankCategory.MANAGEMENT,
        RankCategory.DIRECTIVE,
    )


def test_staff_role_keys_cover_auxiliary_roles():
    directory = RankDirectory()
    assert "staff_team" in directory.staff_role_keys
    assert "moderation_category" in directory.staff_role_keys
    assert "suspended" not in directory.staff_role_keys
    assert "suspended" in directory.known_keys
    assert directory.staff_roles_among({"admin", "suspended", "vip"}) == frozenset({"admin"})


def test_role_ids_map_both_ways():
    directory = RankDirectory(role_ids={"moderator": 11, "suspended": 22, "unknown_role": 33})
    assert directory.role_id_for("moderator") == 11
    assert directory.key_for_role_id(22) == "suspended"
    assert directory.role_id_for("unknown_role") is None
    assert directory.key_for_role_id(33) is None


def test_rejects_empty_and_duplicate_tables():
    with pytest.raises(ValueError):
        RankDirectory(table=[])
    with pytest.raises(ValueError):
        RankDirectory(table=[("a", "A", RankCategory.MODERATION), ("a", "A2", RankCategory.MODERATION)])


class TestEscalation:
    @pytest.mark.parametrize(
        "reported, viewing",
        [
            (RankCategory.MODERATION, RankCategory.ADMINISTRATION),
            (RankCategory.ADMINISTRATION, RankCategory.INTERNAL_AFFAIRS),
            (RankCategory.INTERNAL_AFFAIRS, RankCategory.SUPERVISION),
            (RankCategory.SUPERVISION, RankCategory.DIRECTIVE),
            (RankCategory.MANAGEMENT, RankCategory.DIRECTIVE),
        ],
    )
    def test_escalation_table(self, reported, viewing):
        assert escalation_category(reported) is viewing

    def test_directive_is_a_fixed_point(self):
        assert escalation_category(RankCategory.DIRECTIVE) is RankCategory.DIRECTIVE
        decision = ReportEscalationResolver().resolve(RankCategory.DIRECTIVE)
        assert decision.viewing_category is RankCategory.DIRECTIVE
        assert decision.notify_top_authority is True

    def test_table_covers_every_category(self):
        assert set(ESCALATION_TABLE) == set(RankCategory)

    def test_missing_category_defaults_to_internal_affairs(self):
        assert escalation_category(None) is RankCategory.INTERNAL_AFFAIRS

    def test_only_directive_notifies_top_authority(self):
        resolver = ReportEscalationResolver()
        assert resolver.resolve(RankCategory.MANAGEMENT).notify_top_authority is False

    def test_directory_delegates_escalation(self):
        assert RankDirectory().category_escalation_target(RankCategory.MODERATION) is RankCategory.ADMINISTRATION
