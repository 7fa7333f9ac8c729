"""Tests for infraction proposal, approval, expiry and manual restoration."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from fakes import START, Harness
from staffdesk.datatypes.case_datatypes import SYSTEM_ACTOR, InfractionStatus, InfractionType
from staffdesk.errors import (
    CollaboratorFailure,
    InvalidArgument,
    InvalidStateTransition,
    NotFound,
    PartialFailure,
    PermissionDenied,
    TargetNotStaff,
)

MOD_ROLES = {"moderator", "moderation_category", "staff_team"}


@pytest.fixture
def cast(harness):
    """Issuer, approver and a moderator target."""
    issuer = harness.hire("ia", "internal_affairs")
    owner = harness.hire("owner", "director")
    harness.hire("t", "moderator")
    return issuer, owner


async def propose(harness, issuer, type="suspension_1w", user_id="t"):
    result = await harness.infractions.create(issuer, user_id, type, "Repeated abuse", ["msg-1"])
    assert result.ok, result.error
    return result.value


async def approve(harness, owner, infraction_id):
    result = await harness.infractions.approve(owner, infraction_id)
    assert result.ok, result.error
    return result.value


class TestProposal:
    @pytest.mark.asyncio
    async def test_create_is_pending(self, harness, cast):
        issuer, _ = cast

        infraction = await propose(harness, issuer)

        assert infraction.status is InfractionStatus.PENDING_APPROVAL
        assert infraction.issuer_id == "ia"
        assert infraction.previous_roles is None
        assert infraction.expiry is None
        assert harness.notifier.events_in("approval-chan") == ["infraction_pending"]
        assert harness.roles.held("t") == MOD_ROLES

    @pytest.mark.asyncio
    async def test_cannot_target_yourself(self, harness, cast):
        issuer, _ = cast

        result = await harness.infractions.create(issuer, "ia", "warning", "reason")

        assert isinstance(result.error, InvalidArgument)

    @pytest.mark.asyncio
    async def test_target_must_be_staff(self, harness, cast):
        issuer, _ = cast
        harness.civilian("civ")

        result = await harness.infractions.create(issuer, "civ", "warning", "reason")

        assert isinstance(result.error, TargetNotStaff)

    @pytest.mark.asyncio
    async def test_cannot_target_higher_rank(self, harness, cast):
        issuer, _ = cast
        harness.hire("mgr", "manager")

        result = await harness.infractions.create(issuer, "mgr", "warning", "reason")

        assert isinstance(result.error, PermissionDenied)

    @pytest.mark.asyncio
    async def test_override_may_target_anyone(self, harness, cast):
        result = await harness.infractions.create(harness.civilian("dev"), "owner", "warning", "reason")

        assert result.ok

    @pytest.mark.asyncio
    async def test_requires_internal_affairs(self, harness, cast):
        result = await harness.infractions.create(harness.hire("adm", "head_admin"), "t", "warning", "reason")

        assert isinstance(result.error, PermissionDenied)

    @pytest.mark.asyncio
    async def test_unknown_type_and_blank_reason(self, harness, cast):
        issuer, _ = cast

        bad_type = await harness.infractions.create(issuer, "t", "exile", "reason")
        blank = await harness.infractions.create(issuer, "t", "warning", "")

        assert isinstance(bad_type.error, InvalidArgument)
        assert isinstance(blank.error, InvalidArgument)

    @pytest.mark.asyncio
    async def test_already_marked_target(self, harness, cast):
        issuer, _ = cast
        harness.roles.set_roles("t", MOD_ROLES | {"blacklisted"})

        result = await harness.infractions.create(issuer, "t", "blacklist", "reason")

        assert isinstance(result.error, InvalidStateTransition)


class TestDecision:
    @pytest.mark.asyncio
    async def test_approve_suspension(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer)

        outcome = await approve(harness, owner, infraction.id)

        approved = outcome.infraction
        assert approved.status is InfractionStatus.ACTIVE
        assert approved.approved_by == "owner"
        assert approved.approved_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert approved.expiry == datetime(2024, 1, 8, tzinfo=timezone.utc)
        assert approved.duration == timedelta(weeks=1)
        assert approved.previous_roles == frozenset(MOD_ROLES)
        assert outcome.effects.clean
        assert harness.roles.held("t") == {"suspended"}
        assert harness.notifier.events_for("t") == ["infraction_approved"]
        assert harness.notifier.events_in("announce-chan") == ["infraction_approved"]

    @pytest.mark.asyncio
    async def test_only_top_rank_approves(self, harness, cast):
        issuer, _ = cast
        infraction = await propose(harness, issuer)

        result = await harness.infractions.approve(harness.hire("dd", "deputy_director"), infraction.id)

        assert isinstance(result.error, PermissionDenied)
        assert harness.store.cases["infraction"][infraction.id].status is InfractionStatus.PENDING_APPROVAL

    @pytest.mark.asyncio
    async def test_approve_twice(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer)
        await approve(harness, owner, infraction.id)

        result = await harness.infractions.approve(owner, infraction.id)

        assert isinstance(result.error, InvalidStateTransition)

    @pytest.mark.asyncio
    async def test_role_read_failure_keeps_pending(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer)
        harness.roles.read_fails = True

        result = await harness.infractions.approve(owner, infraction.id)

        assert isinstance(result.error, CollaboratorFailure)
        assert harness.store.cases["infraction"][infraction.id].status is InfractionStatus.PENDING_APPROVAL
        assert harness.roles.calls == []

    @pytest.mark.asyncio
    async def test_failed_marker_grant_is_reported_not_fatal(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer)
        harness.roles.failing.add(("grant", "suspended"))

        outcome = await approve(harness, owner, infraction.id)

        assert outcome.infraction.status is InfractionStatus.ACTIVE
        assert outcome.effects.failed == 1
        assert harness.store.cases["infraction"][infraction.id].status is InfractionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_warning_keeps_roles(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer, type="warning")

        outcome = await approve(harness, owner, infraction.id)

        assert outcome.infraction.expiry is None
        assert outcome.infraction.previous_roles == frozenset(MOD_ROLES)
        assert harness.roles.held("t") == MOD_ROLES

    @pytest.mark.asyncio
    async def test_blacklist_strips_roles(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer, type=InfractionType.BLACKLIST)

        outcome = await approve(harness, owner, infraction.id)

        assert outcome.infraction.expiry is None
        assert harness.roles.held("t") == {"blacklisted"}

    @pytest.mark.asyncio
    async def test_under_investigation_adds_marker_only(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer, type="under_investigation")

        await approve(harness, owner, infraction.id)

        assert harness.roles.held("t") == MOD_ROLES | {"under_investigation"}

    @pytest.mark.asyncio
    async def test_deny_notifies_issuer(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer)

        result = await harness.infractions.deny(owner, infraction.id, "Not enough evidence")

        assert result.value.status is InfractionStatus.DENIED
        assert result.value.denial_reason == "Not enough evidence"
        assert harness.notifier.events_for("ia") == ["infraction_denied"]
        assert harness.roles.held("t") == MOD_ROLES


class TestExpiry:
    @pytest.mark.asyncio
    async def test_not_expired_before_expiry(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer)
        await approve(harness, owner, infraction.id)

        result = await harness.infractions.expire(infraction.id, START + timedelta(weeks=1) - timedelta(seconds=1))

        assert result.value.status is InfractionStatus.ACTIVE
        assert harness.roles.held("t") == {"suspended"}

    @pytest.mark.asyncio
    async def test_expires_at_expiry_and_restores_snapshot(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer)
        await approve(harness, owner, infraction.id)

        result = await harness.infractions.expire(infraction.id, datetime(2024, 1, 8, tzinfo=timezone.utc))

        expired = result.value
        assert expired.status is InfractionStatus.COMPLETED
        assert expired.completed_by == SYSTEM_ACTOR
        assert harness.roles.held("t") == MOD_ROLES
        assert "suspension_ended" in harness.store.audit_actions(infraction.id)
        assert harness.notifier.events_for("t")[-1] == "suspension_expired"
        assert harness.notifier.events_in("log-chan") == ["suspension_expired"]

    @pytest.mark.asyncio
    async def test_sweep_expired(self, harness, cast):
        issuer, owner = cast
        first = await propose(harness, issuer)
        warning = await propose(harness, issuer, type="warning")
        await approve(harness, owner, first.id)
        await approve(harness, owner, warning.id)

        early = await harness.infractions.sweep_expired(START + timedelta(days=3))
        late = await harness.infractions.sweep_expired(START + timedelta(days=8))
        again = await harness.infractions.sweep_expired(START + timedelta(days=9))

        assert (early.processed, early.skipped) == (1, 1)
        assert (late.processed, late.succeeded) == (1, 1)
        assert again.processed == 0
        assert harness.store.cases["infraction"][warning.id].status is InfractionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_expiry_without_notification(self, tmp_path):
        harness = Harness.build(tmp_path, {"infractions": {"notify_on_expiration": False}})
        issuer = harness.hire("ia", "internal_affairs")
        owner = harness.hire("owner", "director")
        harness.hire("t", "moderator")
        infraction = await propose(harness, issuer, type="suspension_24h")
        await approve(harness, owner, infraction.id)

        await harness.infractions.expire(infraction.id, START + timedelta(hours=24))

        assert harness.notifier.events_for("t") == ["infraction_approved"]
        assert harness.roles.held("t") == MOD_ROLES

    @pytest.mark.asyncio
    async def test_expiry_keeps_marker_while_another_suspension_runs(self, harness, cast):
        issuer, owner = cast
        short = await propose(harness, issuer, type="suspension_24h")
        long = await propose(harness, issuer, type="suspension_2w")
        await approve(harness, owner, short.id)
        await approve(harness, owner, long.id)

        await harness.infractions.expire(short.id, START + timedelta(hours=24))

        assert harness.roles.held("t") == {"suspended"}
        assert ("revoke", "t", "suspended") not in harness.roles.calls
        assert harness.store.cases["infraction"][short.id].status is InfractionStatus.COMPLETED
        assert harness.store.cases["infraction"][long.id].previous_roles == frozenset(MOD_ROLES)

    @pytest.mark.asyncio
    async def test_roles_return_when_the_last_suspension_ends(self, harness, cast):
        issuer, owner = cast
        short = await propose(harness, issuer, type="suspension_24h")
        long = await propose(harness, issuer, type="suspension_2w")
        await approve(harness, owner, short.id)
        await approve(harness, owner, long.id)

        report = await harness.infractions.sweep_expired(START + timedelta(weeks=2))

        assert report.succeeded == 2
        assert harness.roles.held("t") == MOD_ROLES
        assert harness.roles.calls.count(("grant", "t", "moderator")) == 1

    @pytest.mark.asyncio
    async def test_shorter_later_suspension_keeps_roles_stripped(self, harness, cast):
        issuer, owner = cast
        long = await propose(harness, issuer, type="suspension_2w")
        short = await propose(harness, issuer, type="suspension_24h")
        await approve(harness, owner, long.id)
        await approve(harness, owner, short.id)

        await harness.infractions.expire(short.id, START + timedelta(hours=24))
        assert harness.roles.held("t") == {"suspended"}

        await harness.infractions.expire(long.id, START + timedelta(weeks=2))
        assert harness.roles.held("t") == MOD_ROLES


class TestManualRestore:
    @pytest.mark.asyncio
    async def test_restores_all_active_suspensions(self, harness, cast):
        issuer, owner = cast
        short = await propose(harness, issuer, type="suspension_24h")
        long = await propose(harness, issuer, type="suspension_2w")
        await approve(harness, owner, short.id)
        await approve(harness, owner, long.id)

        result = await harness.infractions.manual_restore(owner, "t")

        report = result.value
        assert sorted(report.completed_infractions) == sorted([short.id, long.id])
        assert report.failed == 0
        assert report.restored_roles == sorted(MOD_ROLES)
        assert harness.roles.held("t") == MOD_ROLES
        for infraction_id in (short.id, long.id):
            stored = harness.store.cases["infraction"][infraction_id]
            assert stored.status is InfractionStatus.MANUALLY_COMPLETED
            assert stored.completed_by == "owner"
        assert harness.store.audit_actions("t") == ["manual_role_restoration"]

    @pytest.mark.asyncio
    async def test_no_active_suspension(self, harness, cast):
        _, owner = cast

        result = await harness.infractions.manual_restore(owner, "t")

        assert isinstance(result.error, NotFound)

    @pytest.mark.asyncio
    async def test_requires_top_rank(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer)
        await approve(harness, owner, infraction.id)

        result = await harness.infractions.manual_restore(harness.hire("dd", "deputy_director"), "t")

        assert isinstance(result.error, PermissionDenied)

    @pytest.mark.asyncio
    async def test_partial_failure_is_reported(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer)
        await approve(harness, owner, infraction.id)
        harness.roles.failing.add(("grant", "moderator"))

        result = await harness.infractions.manual_restore(owner, "t")

        assert isinstance(result.error, PartialFailure)
        assert result.error.failed == 1
        report = result.error.report
        assert report.completed_infractions == [infraction.id]
        assert "moderator" not in report.restored_roles
        assert harness.store.cases["infraction"][infraction.id].status is InfractionStatus.MANUALLY_COMPLETED
        assert harness.roles.held("t") == {"moderation_category", "staff_team"}

    @pytest.mark.asyncio
    async def test_uncompleted_suspension_keeps_member_stripped(self, harness, cast):
        issuer, owner = cast
        short = await propose(harness, issuer, type="suspension_24h")
        long = await propose(harness, issuer, type="suspension_2w")
        await approve(harness, owner, short.id)
        await approve(harness, owner, long.id)
        harness.store.fail_upsert_ids.add(long.id)

        result = await harness.infractions.manual_restore(owner, "t")

        assert isinstance(result.error, PartialFailure)
        report = result.error.report
        assert report.completed_infractions == [short.id]
        assert report.restored_roles == []
        assert harness.roles.held("t") == {"suspended"}
        assert harness.store.cases["infraction"][long.id].status is InfractionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_expiry_after_manual_restore_is_a_no_op(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer)
        await approve(harness, owner, infraction.id)
        await harness.infractions.manual_restore(owner, "t")
        calls_before = list(harness.roles.calls)

        report = await harness.infractions.sweep_expired(START + timedelta(weeks=2))
        result = await harness.infractions.expire(infraction.id, START + timedelta(weeks=2))

        assert report.processed == 0
        assert result.value.status is InfractionStatus.MANUALLY_COMPLETED
        assert harness.roles.calls == calls_before

    @pytest.mark.asyncio
    async def test_racing_expiry_and_manual_restore_complete_once(self, harness, cast):
        issuer, owner = cast
        infraction = await propose(harness, issuer)
        await approve(harness, owner, infraction.id)
        at_expiry = START + timedelta(weeks=1)

        await asyncio.gather(
            harness.infractions.manual_restore(owner, "t"),
            harness.infractions.expire(infraction.id, at_expiry),
        )

        stored = harness.store.cases["infraction"][infraction.id]
        assert stored.status in (InfractionStatus.COMPLETED, InfractionStatus.MANUALLY_COMPLETED)
        assert harness.roles.calls.count(("grant", "t", "moderator")) == 1
        completions = [
            action for action in harness.store.audit_actions()
            if action in ("suspension_ended", "manual_role_restoration")
        ]
        assert len(completions) == 1


class TestDrafts:
    @pytest.mark.asyncio
    async def test_submit_complete_draft(self, harness, cast):
        issuer, _ = cast
        draft = harness.infractions.drafts.start("ia", "t")
        harness.infractions.drafts.update(draft.draft_id, "ia", type="suspension_48h", reason="Spamming", evidence=["a"])

        result = await harness.infractions.submit_draft(issuer, draft.draft_id)

        assert result.value.type is InfractionType.SUSPENSION_48H
        assert result.value.evidence == ["a"]
        assert harness.infractions.drafts.get(draft.draft_id) is None

    @pytest.mark.asyncio
    async def test_incomplete_draft(self, harness, cast):
        issuer, _ = cast
        draft = harness.infractions.drafts.start("ia", "t")

        result = await harness.infractions.submit_draft(issuer, draft.draft_id)

        assert isinstance(result.error, InvalidArgument)
        assert harness.infractions.drafts.get(draft.draft_id) is not None

    @pytest.mark.asyncio
    async def test_other_issuer_cannot_submit(self, harness, cast):
        draft = harness.infractions.drafts.start("ia", "t")
        harness.infractions.drafts.update(draft.draft_id, "ia", type="warning", reason="Rude")

        result = await harness.infractions.submit_draft(harness.hire("ia2", "internal_affairs"), draft.draft_id)

        assert isinstance(result.error, PermissionDenied)

    @pytest.mark.asyncio
    async def test_expired_draft(self, harness, cast):
        issuer, _ = cast
        draft = harness.infractions.drafts.start("ia", "t")
        harness.clock.advance(minutes=16)

        result = await harness.infractions.submit_draft(issuer, draft.draft_id)

        assert isinstance(result.error, NotFound)


@pytest.mark.asyncio
async def test_list_for_user(harness, cast):
    issuer, _ = cast
    harness.hire("other", "moderator")
    await propose(harness, issuer)
    await propose(harness, issuer, type="warning", user_id="other")

    result = await harness.infractions.list_for_user("t")

    assert [i.user_id for i in result.value] == ["t"]
