"""
Infraction lifecycle: disciplinary actions from proposal to completion.

Infractions are proposed by internal affairs, approved or denied by the top
rank and then enforced. Enforcement follows one rule throughout: the new
status is persisted first and only then are roles changed and notices sent,
so a failed role call can never leave the record disagreeing with what was
decided.

The staff roles a member held when an infraction was approved are kept in
``previous_roles``; when a suspension ends (by expiry or manually) exactly
that set is granted back. A suspension ending while another one of the same
member still runs hands its snapshot to the one that ends last instead.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, FrozenSet, Iterable, List

from staffdesk.configuration.workflow_settings import InfractionSettings
from staffdesk.datatypes.case_datatypes import (
    SYSTEM_ACTOR,
    AuditAction,
    CaseKind,
    Infraction,
    InfractionStatus,
    InfractionType,
    Notice,
    NoticeEvent,
)
from staffdesk.datatypes.rank_datatypes import StaffMember, StatusMarker
from staffdesk.datatypes.sweep_datatypes import RestorationReport, SweepReport
from staffdesk.errors import (
    CaseError,
    InvalidArgument,
    InvalidStateTransition,
    NotFound,
    PartialFailure,
    PermissionDenied,
    TargetNotStaff,
    case_operation,
)
from staffdesk.lifecycle.infraction_drafts import InfractionDraft, InfractionDraftStore
from staffdesk.lifecycle.lifecycle_base import LifecycleBase, coerce_enum
from staffdesk.ranks.permission_resolver import PermissionPreset
from staffdesk.services.side_effects import SideEffectReport
from staffdesk.util.logger import get_logger

logger = get_logger("infraction_lifecycle")


@dataclass(slots=True)
class ApprovalOutcome:
    """An approved infraction together with how its enforcement went."""
    infraction: Infraction
    effects: SideEffectReport = field(default_factory=SideEffectReport)


class InfractionLifecycle(LifecycleBase):
    """State machine for infractions.

    Args:
        settings: Expiry notification and draft lifetime settings.
        drafts: Draft store; one is created from ``settings`` when omitted.
        approval_channel: Channel where pending infractions are announced.
        announcement_channel: Channel where approved infractions are announced.
        staff_log_channel: Channel receiving expiry and restoration notices.
    """

    kind = CaseKind.INFRACTION

    def __init__(
        self,
        *args,
        settings: InfractionSettings | None = None,
        drafts: InfractionDraftStore | None = None,
        approval_channel: str | None = None,
        announcement_channel: str | None = None,
        staff_log_channel: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.settings = settings or InfractionSettings()
        self.drafts = drafts or InfractionDraftStore(self.settings.draft_ttl, self.clock)
        self.approval_channel = approval_channel
        self.announcement_channel = announcement_channel
        self.staff_log_channel = staff_log_channel

    def _notice(self, event: NoticeEvent, infraction: Infraction, **details) -> Notice:
        details.setdefault("type", infraction.type.value)
        details.setdefault("user_id", infraction.user_id)
        return Notice(event=event, case_kind=CaseKind.INFRACTION, case_id=infraction.id, details=details)

    def staff_snapshot(self, held_keys: Iterable[str], imposed: Iterable[str] = ()) -> FrozenSet[str]:
        """Staff roles among ``held_keys`` minus the roles an infraction is about to impose."""
        return self.resolver.directory.staff_roles_among(held_keys) - frozenset(imposed)

    async def _active_suspensions(self, user_id: str, exclude: str | None = None) -> List[Infraction]:
        return await self.persist(
            self.store.query_cases(
                CaseKind.INFRACTION,
                predicate=lambda i: i.user_id == user_id and i.type.is_suspension and i.id != exclude,
                status=InfractionStatus.ACTIVE.value,
            ),
            f"query active suspensions of {user_id}",
        )

    @asynccontextmanager
    async def _hold_member(self, user_id: str, infraction_id: str | None = None) -> AsyncIterator[None]:
        """Lock every enforcement change of ``user_id``, then the infraction itself.

        The member lock is always taken before any infraction lock, which lets
        expiry update the snapshot of another running suspension.
        """
        async with self.locks.hold(f"member:{user_id}"):
            if infraction_id is None:
                yield
                return
            async with self.locks.hold(self.lock_key(infraction_id)):
                yield

    async def _carry_over(self, roles: Iterable[str], remaining: List[Infraction]) -> Infraction:
        """Fold ``roles`` into the snapshot of the remaining suspension that ends last."""
        heir = max(remaining, key=lambda i: i.expiry or i.created_at)
        heir.previous_roles = frozenset(heir.previous_roles or ()) | frozenset(roles)
        await self.save(heir)
        return heir

    # ------------------------------------------------------------------
    # Proposal
    # ------------------------------------------------------------------

    @case_operation("INFRACTIONS")
    async def create(
        self,
        issuer: StaffMember,
        user_id: str,
        type: InfractionType | str,
        reason: str,
        evidence: Iterable[str] = (),
        appealable: bool = False,
    ) -> Infraction:
        return await self._create(issuer, user_id, type, reason, evidence, appealable)

    async def _create(
        self,
        issuer: StaffMember,
        user_id: str,
        type: InfractionType | str,
        reason: str,
        evidence: Iterable[str],
        appealable: bool,
    ) -> Infraction:
        self.resolver.authorize(issuer, PermissionPreset.INTERNAL_AFFAIRS_PLUS, action="issue infractions")
        user_id = str(user_id)
        type = coerce_enum(InfractionType, type, "infraction type")
        if not reason or not reason.strip():
            raise InvalidArgument("An infraction needs a reason.")
        if user_id == issuer.member_id:
            raise InvalidArgument("You cannot issue an infraction against yourself.")

        target_keys = await self.member_keys(user_id)
        if not self.resolver.is_staff(target_keys):
            raise TargetNotStaff("Infractions can only be issued against staff members.")
        if not self.resolver.is_overridden(issuer) and not self.resolver.can_act_on(issuer.rank_keys, target_keys):
            raise PermissionDenied("You cannot issue an infraction against a higher ranked member.")

        marker = type.imposed_marker
        if marker is not None and marker.value in target_keys:
            raise InvalidStateTransition(f"{user_id} is already marked {marker.value}.")

        infraction = Infraction(
            id=await self.new_id(),
            user_id=user_id,
            issuer_id=issuer.member_id,
            type=type,
            reason=reason.strip(),
            created_at=self.clock(),
            evidence=list(evidence),
            appealable=appealable,
        )
        await self.save(infraction)

        await self.audit(
            AuditAction.INFRACTION_CREATED,
            issuer.member_id,
            infraction.id,
            {"user_id": user_id, "type": type.value, "reason": infraction.reason},
        )
        await self.effects.log(
            SideEffectReport(),
            self.approval_channel,
            self._notice(NoticeEvent.INFRACTION_PENDING, infraction, issuer_id=issuer.member_id),
        )
        logger.info("[INFRACTIONS] %s proposed %s against %s (%s)", issuer.member_id, type.value, user_id, infraction.id)
        return infraction

    @case_operation("INFRACTIONS")
    async def submit_draft(self, issuer: StaffMember, draft_id: str) -> Infraction:
        draft: InfractionDraft | None = self.drafts.get(draft_id)
        if draft is None:
            raise NotFound("This infraction draft has expired or does not exist.")
        if draft.issuer_id != issuer.member_id:
            raise PermissionDenied("Only the issuer can submit this draft.")
        if not draft.is_complete:
            raise InvalidArgument("Choose an infraction type and give a reason before submitting.")

        infraction = await self._create(
            issuer, draft.user_id, draft.type, draft.reason, draft.evidence, draft.appealable
        )
        self.drafts.discard(draft_id)
        return infraction

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    @case_operation("INFRACTIONS")
    async def approve(self, actor: StaffMember, infraction_id: str) -> ApprovalOutcome:
        self.resolver.authorize(actor, PermissionPreset.TOP_ONLY, action="approve infractions")

        pending: Infraction = await self.load(infraction_id)
        async with self._hold_member(pending.user_id, infraction_id):
            infraction: Infraction = await self.load(infraction_id)
            if infraction.status is not InfractionStatus.PENDING_APPROVAL:
                raise InvalidStateTransition(f"Infraction is {infraction.status.value}, not pending approval.")

            # A failed read leaves the infraction pending
            held = await self.member_keys(infraction.user_id)
            marker = infraction.type.imposed_marker
            imposed = {marker.value} if marker else set()

            now = self.clock()
            infraction.previous_roles = self.staff_snapshot(held, imposed)
            infraction.status = InfractionStatus.ACTIVE
            infraction.approved_by = actor.member_id
            infraction.approved_at = now
            if infraction.type.is_suspension:
                infraction.duration = infraction.type.duration
                infraction.expiry = now + infraction.type.duration
            await self.save(infraction)

            effects = SideEffectReport()
            if infraction.type.strips_staff_roles:
                for key in sorted(infraction.previous_roles):
                    await self.effects.revoke(effects, infraction.user_id, key)
            if marker is not None:
                await self.effects.grant(effects, infraction.user_id, marker.value)

        await self.audit(
            AuditAction.INFRACTION_APPROVED,
            actor.member_id,
            infraction.id,
            {
                "type": infraction.type.value,
                "previous_roles": sorted(infraction.previous_roles),
                "expiry": infraction.expiry.isoformat() if infraction.expiry else None,
            },
        )
        notice = self._notice(
            NoticeEvent.INFRACTION_APPROVED,
            infraction,
            approved_by=actor.member_id,
            reason=infraction.reason,
            expiry=infraction.expiry.isoformat() if infraction.expiry else None,
        )
        await self.effects.notify(effects, infraction.user_id, notice)
        await self.effects.log(effects, self.announcement_channel, notice)

        if not effects.clean:
            logger.warning(
                "[INFRACTIONS] %s approved with %d failed side effect(s): %s",
                infraction.id, effects.failed, "; ".join(effects.failures),
            )
        logger.info("[INFRACTIONS] %s approved %s (%s)", actor.member_id, infraction.id, infraction.type.value)
        return ApprovalOutcome(infraction=infraction, effects=effects)

    @case_operation("INFRACTIONS")
    async def deny(self, actor: StaffMember, infraction_id: str, reason: str = "") -> Infraction:
        self.resolver.authorize(actor, PermissionPreset.TOP_ONLY, action="deny infractions")

        async with self.locks.hold(self.lock_key(infraction_id)):
            infraction: Infraction = await self.load(infraction_id)
            if infraction.status is not InfractionStatus.PENDING_APPROVAL:
                raise InvalidStateTransition(f"Infraction is {infraction.status.value}, not pending approval.")
            infraction.status = InfractionStatus.DENIED
            infraction.denied_by = actor.member_id
            infraction.denied_at = self.clock()
            infraction.denial_reason = reason or None
            await self.save(infraction)

        await self.audit(
            AuditAction.INFRACTION_DENIED,
            actor.member_id,
            infraction.id,
            {"reason": infraction.denial_reason},
        )
        await self.effects.notify(
            SideEffectReport(),
            infraction.issuer_id,
            self._notice(NoticeEvent.INFRACTION_DENIED, infraction, denied_by=actor.member_id, reason=reason),
        )
        logger.info("[INFRACTIONS] %s denied %s", actor.member_id, infraction.id)
        return infraction

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    async def _lift_suspension(self, user_id: str, roles: Iterable[str], effects: SideEffectReport) -> List[str]:
        """Revoke the suspended marker and grant ``roles`` back; returns the keys granted."""
        await self.effects.revoke(effects, user_id, StatusMarker.SUSPENDED.value)
        restored = []
        for key in sorted(roles):
            if await self.effects.grant(effects, user_id, key):
                restored.append(key)
        return restored

    async def _expire_locked(self, infraction: Infraction, now: datetime) -> bool:
        if not infraction.is_active_suspension or infraction.expiry is None or now < infraction.expiry:
            return False

        snapshot = infraction.previous_roles or frozenset()
        # Roles stay stripped while any other suspension of the member runs
        remaining = await self._active_suspensions(infraction.user_id, exclude=infraction.id)
        heir = await self._carry_over(snapshot, remaining) if remaining else None

        infraction.status = InfractionStatus.COMPLETED
        infraction.completed_by = SYSTEM_ACTOR
        infraction.completed_at = now
        await self.save(infraction)

        effects = SideEffectReport()
        if heir is None:
            restored = await self._lift_suspension(infraction.user_id, snapshot, effects)
        else:
            restored = []
            logger.info(
                "[INFRACTIONS] %s is still suspended by %s; %d role(s) carried over",
                infraction.user_id, heir.id, len(snapshot),
            )

        await self.audit(
            AuditAction.SUSPENSION_ENDED,
            SYSTEM_ACTOR,
            infraction.id,
            {
                "user_id": infraction.user_id,
                "restored_roles": restored,
                "carried_over_to": heir.id if heir else None,
                "failed_side_effects": effects.failed,
            },
        )
        if self.settings.notify_on_expiration:
            notice = self._notice(NoticeEvent.SUSPENSION_EXPIRED, infraction, restored_roles=restored)
            await self.effects.notify(effects, infraction.user_id, notice)
            await self.effects.log(effects, self.staff_log_channel, notice)

        logger.info(
            "[INFRACTIONS] Suspension %s of %s expired; restored %d role(s), %d side effect failure(s)",
            infraction.id, infraction.user_id, len(restored), effects.failed,
        )
        return True

    @case_operation("INFRACTIONS")
    async def expire(self, infraction_id: str, now: datetime | None = None) -> Infraction:
        """Complete ``infraction_id`` if it is an active suspension past its expiry; otherwise a no-op."""
        now = now or self.clock()
        found: Infraction = await self.load(infraction_id)
        async with self._hold_member(found.user_id, infraction_id):
            infraction: Infraction = await self.load(infraction_id)
            await self._expire_locked(infraction, now)
        return infraction

    async def sweep_expired(self, now: datetime | None = None) -> SweepReport:
        now = now or self.clock()
        report = SweepReport(name="suspension_expiry")
        active = await self.persist(
            self.store.query_cases(
                CaseKind.INFRACTION,
                predicate=lambda i: i.type.is_suspension,
                status=InfractionStatus.ACTIVE.value,
            ),
            "query active suspensions",
        )

        for candidate in active:
            report.processed += 1
            try:
                async with self._hold_member(candidate.user_id, candidate.id):
                    current: Infraction | None = await self.find(candidate.id)
                    expired = current is not None and await self._expire_locked(current, now)
            except CaseError as exc:
                report.failed += 1
                logger.warning("[SWEEP] Suspension %s: %s", candidate.id, exc.message)
                continue
            except Exception as exc:
                report.failed += 1
                logger.exception("[SWEEP] Unexpected error expiring %s: %s", candidate.id, exc)
                continue
            if expired:
                report.succeeded += 1
            else:
                report.skipped += 1
        return report

    # ------------------------------------------------------------------
    # Manual restoration
    # ------------------------------------------------------------------

    @case_operation("INFRACTIONS")
    async def manual_restore(self, actor: StaffMember, user_id: str) -> RestorationReport:
        """End every active suspension of ``user_id`` now and restore the captured roles.

        When some suspension cannot be completed the member stays suspended:
        the roles of the completed ones are carried over to it instead of
        being granted.

        Raises:
            NotFound: The member has no active suspension.
            PartialFailure: At least one status write or role change failed;
                the report is attached to the error.
        """
        self.resolver.authorize(actor, PermissionPreset.TOP_ONLY, action="restore suspended members")
        user_id = str(user_id)
        report = RestorationReport(user_id=user_id)
        outcome = SideEffectReport()

        async with self._hold_member(user_id):
            candidates = await self._active_suspensions(user_id)
            if not candidates:
                raise NotFound(f"{user_id} has no active suspension.")

            roles: set[str] = set()
            last: Infraction | None = None
            for candidate in candidates:
                async with self.locks.hold(self.lock_key(candidate.id)):
                    try:
                        current: Infraction | None = await self.find(candidate.id)
                        if current is None or not current.is_active_suspension:
                            continue
                        current.status = InfractionStatus.MANUALLY_COMPLETED
                        current.completed_by = actor.member_id
                        current.completed_at = self.clock()
                        await self.save(current)
                    except CaseError as exc:
                        outcome.failed += 1
                        outcome.failures.append(f"complete {candidate.id}: {exc.message}")
                        logger.warning("[INFRACTIONS] Could not complete %s: %s", candidate.id, exc.message)
                        continue
                outcome.succeeded += 1
                report.completed_infractions.append(current.id)
                roles.update(current.previous_roles or ())
                last = current

            if last is None and outcome.failed == 0:
                raise NotFound(f"{user_id} has no active suspension.")

            if last is not None:
                lifted = await self._restore_or_carry_over(user_id, roles, report, still_suspended=outcome.failed > 0)
                outcome.merge(lifted)
        report.succeeded, report.failed = outcome.succeeded, outcome.failed

        await self.audit(
            AuditAction.MANUAL_ROLE_RESTORATION,
            actor.member_id,
            user_id,
            {
                "infractions": report.completed_infractions,
                "restored_roles": report.restored_roles,
                "succeeded": report.succeeded,
                "failed": report.failed,
            },
        )
        if last is not None:
            await self.effects.notify(
                SideEffectReport(),
                user_id,
                self._notice(
                    NoticeEvent.SUSPENSION_MANUALLY_COMPLETED,
                    last,
                    restored_by=actor.member_id,
                    restored_roles=report.restored_roles,
                ),
            )

        if report.failed:
            raise PartialFailure(report.succeeded, report.failed, report)
        logger.info(
            "[INFRACTIONS] %s restored %s: %d suspension(s) ended, %d role(s) granted",
            actor.member_id, user_id, len(report.completed_infractions), len(report.restored_roles),
        )
        return report

    async def _restore_or_carry_over(
        self,
        user_id: str,
        roles: Iterable[str],
        report: RestorationReport,
        still_suspended: bool,
    ) -> SideEffectReport:
        effects = SideEffectReport()
        if still_suspended:
            try:
                remaining = await self._active_suspensions(user_id)
                if remaining:
                    await self._carry_over(roles, remaining)
                    return effects
            except CaseError as exc:
                effects.failed += 1
                effects.failures.append(f"carry over {', '.join(sorted(roles))}: {exc.message}")
                logger.error("[INFRACTIONS] Roles of %s could not be carried over: %s", user_id, exc.message)
                return effects
        report.restored_roles = await self._lift_suspension(user_id, roles, effects)
        return effects

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @case_operation("INFRACTIONS")
    async def get(self, infraction_id: str) -> Infraction:
        return await self.load(infraction_id)

    @case_operation("INFRACTIONS")
    async def list_for_user(self, user_id: str) -> List[Infraction]:
        user_id = str(user_id)
        return await self.persist(
            self.store.query_cases(CaseKind.INFRACTION, predicate=lambda i: i.user_id == user_id),
            f"query infractions of {user_id}",
        )
