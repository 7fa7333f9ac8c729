"""Tests for rank-based permission checks."""

import pytest

from staffdesk.datatypes.rank_datatypes import RankCategory, StaffMember
from staffdesk.errors import PermissionDenied
from staffdesk.ranks.permission_resolver import PermissionPreset, PermissionResolver
from staffdesk.ranks.rank_directory import RankDirectory


@pytest.fixture
def resolver():
    return PermissionResolver(RankDirectory(), override_ids=["dev"])


class TestHierarchy:
    def test_highest_rank_ignores_input_order(self, resolver):
        keys = ["moderator", "senior_admin", "trial_moderator"]
        assert resolver.highest_rank(keys).key == "senior_admin"
        assert resolver.highest_rank(list(reversed(keys))).key == "senior_admin"
        assert resolver.highest_rank(set(keys)).key == "senior_admin"

    def test_highest_rank_none_without_ranks(self, resolver):
        assert resolver.highest_rank(["staff_team", "suspended"]) is None
        assert resolver.member_level([]) == 0

    def test_rank_level_unknown_key(self, resolver):
        assert resolver.rank_level("trial_moderator") == 1
        assert resolver.rank_level("director") == 22
        assert resolver.rank_level("nope") == 0

    def test_moderator_does_not_pass_administrator_threshold(self, resolver):
        assert resolver.has_at_least({"moderator"}, PermissionPreset.ADMINISTRATOR_PLUS) is False

    def test_director_passes_moderator_threshold(self, resolver):
        assert resolver.has_at_least({"director"}, PermissionPreset.MODERATOR_PLUS) is True

    def test_threshold_is_inclusive(self, resolver):
        assert resolver.has_at_least({"trial_admin"}, "trial_admin") is True
        assert resolver.has_at_least({"head_moderator"}, "trial_admin") is False

    def test_top_only_requires_top_rank(self, resolver):
        assert resolver.has_at_least({"director"}, PermissionPreset.TOP_ONLY) is True
        assert resolver.has_at_least({"deputy_director"}, PermissionPreset.TOP_ONLY) is False

    def test_unknown_threshold_never_passes(self, resolver):
        assert resolver.has_at_least({"director"}, "grand_wizard") is False

    def test_category_allow_list(self, resolver):
        allowed = {RankCategory.ADMINISTRATION, RankCategory.DIRECTIVE}
        assert resolver.has_at_least({"trial_admin"}, None, allowed) is True
        # Internal affairs is above administration but not in the list
        assert resolver.has_at_least({"internal_affairs"}, None, allowed) is False
        assert resolver.has_at_least({"moderator"}, None, allowed) is False

    def test_is_staff_and_top_authority(self, resolver):
        assert resolver.is_staff({"trial_moderator"})
        assert not resolver.is_staff({"staff_team"})
        assert resolver.is_top_authority({"director"})
        assert not resolver.is_top_authority({"deputy_director"})

    def test_can_act_on(self, resolver):
        assert resolver.can_act_on({"admin"}, {"moderator"})
        assert resolver.can_act_on({"admin"}, {"admin"})
        assert not resolver.can_act_on({"moderator"}, {"admin"})


class TestAuthorize:
    def test_authorize_passes(self, resolver):
        resolver.authorize(StaffMember.of("1", {"manager"}), PermissionPreset.SUPERVISOR_PLUS)

    def test_authorize_names_required_rank(self, resolver):
        with pytest.raises(PermissionDenied) as exc_info:
            resolver.authorize(StaffMember.of("1", {"moderator"}), PermissionPreset.ADMINISTRATOR_PLUS, action="x")
        assert "Trial Administrator or higher" in exc_info.value.message

    def test_override_passes_everything(self, resolver):
        dev = StaffMember.of("dev", {"suspended"})
        resolver.authorize(dev, PermissionPreset.TOP_ONLY)
        assert resolver.allows(dev, PermissionPreset.TOP_ONLY)

    def test_blocking_markers_refuse(self, resolver):
        suspended = StaffMember.of("1", {"director", "suspended"})
        blacklisted = StaffMember.of("2", {"director", "blacklisted"})
        with pytest.raises(PermissionDenied, match="suspended"):
            resolver.authorize(suspended, PermissionPreset.MODERATOR_PLUS)
        assert resolver.allows(blacklisted, PermissionPreset.MODERATOR_PLUS) is False

    def test_under_investigation_does_not_block(self, resolver):
        member = StaffMember.of("1", {"admin", "under_investigation"})
        assert resolver.allows(member, PermissionPreset.ADMINISTRATOR_PLUS) is True

    def test_category_only_message(self, resolver):
        with pytest.raises(PermissionDenied) as exc_info:
            resolver.authorize(StaffMember.of("1", {"moderator"}), None, {RankCategory.DIRECTIVE})
        assert "a rank in: directive" in exc_info.value.message
