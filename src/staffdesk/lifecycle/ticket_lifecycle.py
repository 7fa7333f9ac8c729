"""
Ticket lifecycle: support requests from creation to closure.

A ticket is ``open`` until it is closed by staff, by its creator or by the
inactivity sweep. Staff reports can additionally be elevated, which narrows
who may see them to the category above the reported member's.

All transitions on one ticket are serialized by its case lock; ticket
creation is serialized per creator so one member never ends up with two open
tickets.
"""

from __future__ import annotations

from datetime import datetime
from typing import List

from staffdesk.configuration.workflow_settings import TicketSettings
from staffdesk.datatypes.case_datatypes import (
    SYSTEM_ACTOR,
    AuditAction,
    CaseKind,
    IntentAction,
    Notice,
    NoticeEvent,
    ScheduledIntent,
    Ticket,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from staffdesk.datatypes.rank_datatypes import RankCategory, StaffMember
from staffdesk.datatypes.sweep_datatypes import SweepReport
from staffdesk.errors import (
    AlreadyClaimed,
    AlreadyClaimedByYou,
    AlreadyClosed,
    CannotRemoveCreator,
    CaseError,
    DuplicateActiveTicket,
    InvalidArgument,
    InvalidStateTransition,
    TargetNotStaff,
    case_operation,
)
from staffdesk.lifecycle.lifecycle_base import LifecycleBase, coerce_enum
from staffdesk.ranks.escalation import ReportEscalationResolver
from staffdesk.ranks.permission_resolver import PermissionPreset
from staffdesk.services.side_effects import SideEffectReport
from staffdesk.util.logger import get_logger

logger = get_logger("ticket_lifecycle")

# Non-claimers holding a rank in one of these categories may unclaim a ticket
UNCLAIM_CATEGORIES = frozenset({
    RankCategory.ADMINISTRATION,
    RankCategory.INTERNAL_AFFAIRS,
    RankCategory.DIRECTIVE,
})

RESTORE_VISIBILITY_RANK = "internal_affairs_director"

AUTO_CLOSE_REASON = "Closed automatically after a period of inactivity."


class TicketLifecycle(LifecycleBase):
    """State machine for support tickets.

    Args:
        settings: Inactivity and channel retention delays.
        escalation: Resolver used when a staff report is elevated.
        staff_log_channel: Channel receiving staff-facing notices.
        top_authority_id: Member notified when a directive-level report is elevated.
        **kwargs: Forwarded to :class:`LifecycleBase`.
    """

    kind = CaseKind.TICKET

    def __init__(
        self,
        *args,
        settings: TicketSettings | None = None,
        escalation: ReportEscalationResolver | None = None,
        staff_log_channel: str | None = None,
        top_authority_id: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.settings = settings or TicketSettings()
        self.escalation = escalation or ReportEscalationResolver()
        self.staff_log_channel = staff_log_channel
        self.top_authority_id = top_authority_id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_staff(self, actor: StaffMember, action: str) -> None:
        self.resolver.authorize(actor, PermissionPreset.MODERATOR_PLUS, action=action)

    def _require_staff_or_creator(self, actor: StaffMember, ticket: Ticket, action: str) -> None:
        if actor.member_id == ticket.creator_id:
            return
        self._require_staff(actor, action)

    @staticmethod
    def _require_open(ticket: Ticket, action: str) -> None:
        if not ticket.is_open:
            raise InvalidStateTransition(f"Cannot {action} on a closed ticket.")

    def _notice(self, event: NoticeEvent, ticket: Ticket, **details) -> Notice:
        return Notice(event=event, case_kind=CaseKind.TICKET, case_id=ticket.id, details=details)

    def can_view(self, member: StaffMember, ticket: Ticket) -> bool:
        """Whether ``member`` may see ``ticket``.

        Creators and participants always see their ticket. Staff see every
        ticket that is not elevated; elevated reports are limited to members at
        or above the lowest rank of the viewing category.
        """
        if member.member_id == ticket.creator_id or member.member_id in ticket.participants:
            return True
        if not ticket.elevated or ticket.viewing_category is None:
            return self.resolver.allows(member, PermissionPreset.MODERATOR_PLUS)
        floor = self.resolver.directory.ranks_in_category(ticket.viewing_category)
        return bool(floor) and self.resolver.allows(member, floor[0].key)

    # ------------------------------------------------------------------
    # Creation and reads
    # ------------------------------------------------------------------

    @case_operation("TICKETS")
    async def create(
        self,
        creator_id: str,
        category: TicketCategory | str,
        channel_ref: str,
        priority: TicketPriority | str = TicketPriority.MEDIUM,
    ) -> Ticket:
        creator_id = str(creator_id)
        category = coerce_enum(TicketCategory, category, "ticket category")
        priority = coerce_enum(TicketPriority, priority, "priority")

        async with self.locks.hold(f"ticket-creator:{creator_id}"):
            existing = await self.persist(
                self.store.query_cases(
                    CaseKind.TICKET,
                    predicate=lambda t: t.creator_id == creator_id,
                    status=TicketStatus.OPEN.value,
                ),
                "query open tickets",
            )
            if existing:
                raise DuplicateActiveTicket(f"You already have an open ticket ({existing[0].id}).")

            now = self.clock()
            ticket = Ticket(
                id=await self.new_id(),
                channel_ref=str(channel_ref),
                creator_id=creator_id,
                category=category,
                created_at=now,
                last_activity=now,
                priority=priority,
                participants={creator_id},
            )
            await self.save(ticket)

        await self.audit(
            AuditAction.TICKET_CREATED,
            creator_id,
            ticket.id,
            {"category": category.value, "priority": priority.value},
        )
        logger.info("[TICKETS] %s opened %s ticket %s", creator_id, category.value, ticket.id)
        return ticket

    @case_operation("TICKETS")
    async def get(self, ticket_id: str) -> Ticket:
        return await self.load(ticket_id)

    @case_operation("TICKETS")
    async def list_open(self) -> List[Ticket]:
        return await self.persist(
            self.store.query_cases(CaseKind.TICKET, status=TicketStatus.OPEN.value),
            "query open tickets",
        )

    # ------------------------------------------------------------------
    # Claiming
    # ------------------------------------------------------------------

    @case_operation("TICKETS")
    async def claim(self, actor: StaffMember, ticket_id: str) -> Ticket:
        self._require_staff(actor, "claim tickets")

        async with self.locks.hold(self.lock_key(ticket_id)):
            ticket: Ticket = await self.load(ticket_id)
            self._require_open(ticket, "claim")
            if ticket.claimed_by == actor.member_id:
                raise AlreadyClaimedByYou()
            if ticket.claimed_by is not None:
                raise AlreadyClaimed(ticket.claimed_by)

            ticket.claimed_by = actor.member_id
            ticket.participants.add(actor.member_id)
            ticket.last_activity = self.clock()
            await self.save(ticket)

        await self.audit(AuditAction.TICKET_CLAIMED, actor.member_id, ticket.id)
        await self.effects.log(
            SideEffectReport(),
            ticket.channel_ref,
            self._notice(NoticeEvent.TICKET_CLAIMED, ticket, claimed_by=actor.member_id),
        )
        logger.info("[TICKETS] %s claimed ticket %s", actor.member_id, ticket.id)
        return ticket

    @case_operation("TICKETS")
    async def unclaim(self, actor: StaffMember, ticket_id: str) -> Ticket:
        self._require_staff(actor, "unclaim tickets")

        async with self.locks.hold(self.lock_key(ticket_id)):
            ticket: Ticket = await self.load(ticket_id)
            self._require_open(ticket, "unclaim")
            if ticket.claimed_by is None:
                raise InvalidStateTransition("Ticket is not claimed.")
            if ticket.claimed_by != actor.member_id:
                self.resolver.authorize(
                    actor, None, UNCLAIM_CATEGORIES, action="unclaim a ticket claimed by someone else"
                )

            previous = ticket.claimed_by
            ticket.claimed_by = None
            await self.save(ticket)

        await self.audit(AuditAction.TICKET_UNCLAIMED, actor.member_id, ticket.id, {"previous_claimer": previous})
        logger.info("[TICKETS] %s unclaimed ticket %s (was %s)", actor.member_id, ticket.id, previous)
        return ticket

    # ------------------------------------------------------------------
    # Attributes and participants
    # ------------------------------------------------------------------

    @case_operation("TICKETS")
    async def set_priority(self, actor: StaffMember, ticket_id: str, priority: TicketPriority | str) -> Ticket:
        self._require_staff(actor, "change ticket priority")
        priority = coerce_enum(TicketPriority, priority, "priority")

        async with self.locks.hold(self.lock_key(ticket_id)):
            ticket: Ticket = await self.load(ticket_id)
            self._require_open(ticket, "change priority")
            previous = ticket.priority
            ticket.priority = priority
            await self.save(ticket)

        await self.audit(
            AuditAction.TICKET_PRIORITY_CHANGED,
            actor.member_id,
            ticket.id,
            {"from": previous.value, "to": priority.value},
        )
        return ticket

    @case_operation("TICKETS")
    async def add_participant(self, actor: StaffMember, ticket_id: str, member_id: str) -> Ticket:
        member_id = str(member_id)
        async with self.locks.hold(self.lock_key(ticket_id)):
            ticket: Ticket = await self.load(ticket_id)
            self._require_staff_or_creator(actor, ticket, "add members to a ticket")
            self._require_open(ticket, "add participants")
            if member_id in ticket.participants:
                raise InvalidArgument(f"{member_id} is already part of this ticket.")
            ticket.participants.add(member_id)
            await self.save(ticket)

        await self.audit(AuditAction.TICKET_PARTICIPANT_ADDED, actor.member_id, ticket.id, {"member_id": member_id})
        return ticket

    @case_operation("TICKETS")
    async def remove_participant(self, actor: StaffMember, ticket_id: str, member_id: str) -> Ticket:
        self._require_staff(actor, "remove members from a ticket")
        member_id = str(member_id)

        async with self.locks.hold(self.lock_key(ticket_id)):
            ticket: Ticket = await self.load(ticket_id)
            self._require_open(ticket, "remove participants")
            if member_id == ticket.creator_id:
                raise CannotRemoveCreator()
            if member_id not in ticket.participants:
                raise InvalidArgument(f"{member_id} is not part of this ticket.")
            ticket.participants.discard(member_id)
            await self.save(ticket)

        await self.audit(AuditAction.TICKET_PARTICIPANT_REMOVED, actor.member_id, ticket.id, {"member_id": member_id})
        return ticket

    @case_operation("TICKETS")
    async def record_activity(self, ticket_id: str) -> Ticket:
        async with self.locks.hold(self.lock_key(ticket_id)):
            ticket: Ticket = await self.load(ticket_id)
            self._require_open(ticket, "record activity")
            ticket.last_activity = self.clock()
            await self.save(ticket)
        return ticket

    # ------------------------------------------------------------------
    # Closing
    # ------------------------------------------------------------------

    async def _close_locked(self, ticket: Ticket, closer_id: str, reason: str, auto: bool) -> SideEffectReport:
        """Close an open ticket the caller holds the lock for, then run its side effects."""
        now = self.clock()
        ticket.status = TicketStatus.CLOSED
        ticket.closed_by = closer_id
        ticket.closed_at = now
        ticket.close_reason = reason
        await self.save(ticket)

        report = SideEffectReport()
        delay = self.settings.delete_closed_after
        if delay.total_seconds() > 0:
            await self._schedule_channel_deletion(ticket, now + delay, report)

        await self.audit(
            AuditAction.TICKET_CLOSED,
            closer_id,
            ticket.id,
            {"reason": reason, "automatic": auto},
        )

        event = NoticeEvent.TICKET_AUTO_CLOSED if auto else NoticeEvent.TICKET_CLOSED
        notice = self._notice(event, ticket, closed_by=closer_id, reason=reason)
        await self.effects.log(report, ticket.channel_ref, notice)
        await self.effects.log(report, self.staff_log_channel, notice)
        if closer_id != ticket.creator_id:
            await self.effects.notify(report, ticket.creator_id, notice)
        return report

    async def _schedule_channel_deletion(self, ticket: Ticket, due_at: datetime, report: SideEffectReport) -> None:
        try:
            intent = ScheduledIntent(
                id=await self.new_id("intent"),
                action=IntentAction.DELETE_CHANNEL,
                channel_ref=ticket.channel_ref,
                case_kind=CaseKind.TICKET,
                case_id=ticket.id,
                due_at=due_at,
            )
            await self.persist(self.store.upsert_intent(intent), f"schedule deletion of {ticket.channel_ref}")
        except CaseError as exc:
            report.failed += 1
            report.failures.append(exc.message)
            return
        report.succeeded += 1

    @case_operation("TICKETS")
    async def close(self, actor: StaffMember, ticket_id: str, reason: str = "") -> Ticket:
        async with self.locks.hold(self.lock_key(ticket_id)):
            ticket: Ticket = await self.load(ticket_id)
            self._require_staff_or_creator(actor, ticket, "close this ticket")
            if not ticket.is_open:
                raise AlreadyClosed("Ticket is already closed.")
            await self._close_locked(ticket, actor.member_id, reason or "No reason provided", auto=False)

        logger.info("[TICKETS] %s closed ticket %s", actor.member_id, ticket.id)
        return ticket

    # ------------------------------------------------------------------
    # Inactivity sweep
    # ------------------------------------------------------------------

    async def sweep_inactivity(self, now: datetime | None = None) -> SweepReport:
        """Remind on, then auto-close, open tickets without recent activity.

        Each ticket is handled under its own lock and re-read inside it, so a
        ticket closed or bumped concurrently is skipped instead of acted on
        twice. One failing ticket never stops the sweep.
        """
        now = now or self.clock()
        report = SweepReport(name="ticket_inactivity")
        open_tickets = await self.persist(
            self.store.query_cases(CaseKind.TICKET, status=TicketStatus.OPEN.value),
            "query open tickets",
        )

        for candidate in open_tickets:
            report.processed += 1
            try:
                acted = await self._sweep_one(candidate.id, now)
            except CaseError as exc:
                report.failed += 1
                logger.warning("[SWEEP] Ticket %s: %s", candidate.id, exc.message)
                continue
            except Exception as exc:
                report.failed += 1
                logger.exception("[SWEEP] Unexpected error on ticket %s: %s", candidate.id, exc)
                continue
            if acted:
                report.succeeded += 1
            else:
                report.skipped += 1
        return report

    async def _sweep_one(self, ticket_id: str, now: datetime) -> bool:
        async with self.locks.hold(self.lock_key(ticket_id)):
            ticket: Ticket | None = await self.find(ticket_id)
            if ticket is None or not ticket.is_open:
                return False

            idle = now - ticket.last_activity
            if idle >= self.settings.auto_close_after:
                await self._close_locked(ticket, SYSTEM_ACTOR, AUTO_CLOSE_REASON, auto=True)
                logger.info("[SWEEP] Auto-closed ticket %s after %s idle", ticket.id, idle)
                return True

            if idle >= self.settings.reminder_after and not ticket.reminder_sent:
                ticket.reminder_sent = True
                await self.save(ticket)
                await self.audit(AuditAction.TICKET_REMINDER_SENT, SYSTEM_ACTOR, ticket.id)
                await self.effects.log(
                    SideEffectReport(),
                    ticket.channel_ref,
                    self._notice(
                        NoticeEvent.TICKET_INACTIVITY_REMINDER,
                        ticket,
                        idle_hours=round(idle.total_seconds() / 3600, 1),
                        closes_after_hours=round(self.settings.auto_close_after.total_seconds() / 3600, 1),
                    ),
                )
                return True
        return False

    # ------------------------------------------------------------------
    # Staff report escalation
    # ------------------------------------------------------------------

    @case_operation("TICKETS")
    async def elevate(self, actor: StaffMember, ticket_id: str, reported_member_id: str) -> Ticket:
        self._require_staff(actor, "elevate reports")
        reported_member_id = str(reported_member_id)

        async with self.locks.hold(self.lock_key(ticket_id)):
            ticket: Ticket = await self.load(ticket_id)
            self._require_open(ticket, "elevate")
            if ticket.category is not TicketCategory.STAFF_REPORT:
                raise InvalidArgument("Only staff report tickets can be elevated.")
            if ticket.elevated:
                raise InvalidStateTransition("This report has already been elevated.")

            reported_rank = self.resolver.highest_rank(await self.member_keys(reported_member_id))
            if reported_rank is None:
                raise TargetNotStaff("The reported member does not hold a staff rank.")

            decision = self.escalation.resolve(reported_rank.category)
            ticket.elevated = True
            ticket.elevated_by = actor.member_id
            ticket.viewing_category = decision.viewing_category
            ticket.reported_member_id = reported_member_id
            await self.save(ticket)

        await self.audit(
            AuditAction.REPORT_ELEVATED,
            actor.member_id,
            ticket.id,
            {
                "reported_member_id": reported_member_id,
                "reported_category": reported_rank.category.value,
                "viewing_category": decision.viewing_category.value,
            },
        )

        report = SideEffectReport()
        notice = self._notice(
            NoticeEvent.REPORT_ELEVATED,
            ticket,
            reported_member_id=reported_member_id,
            viewing_category=decision.viewing_category.value,
        )
        await self.effects.log(report, ticket.channel_ref, notice)
        await self.effects.log(report, self.staff_log_channel, notice)
        if decision.notify_top_authority:
            if self.top_authority_id:
                await self.effects.notify(
                    report,
                    self.top_authority_id,
                    self._notice(
                        NoticeEvent.DIRECTIVE_REPORT,
                        ticket,
                        reported_member_id=reported_member_id,
                        elevated_by=actor.member_id,
                    ),
                )
            else:
                logger.warning("[TICKETS] Directive report %s elevated but no top authority is configured", ticket.id)

        logger.info(
            "[TICKETS] %s elevated report %s to %s", actor.member_id, ticket.id, decision.viewing_category.value
        )
        return ticket

    @case_operation("TICKETS")
    async def restore_visibility(self, actor: StaffMember, ticket_id: str) -> Ticket:
        self.resolver.authorize(actor, RESTORE_VISIBILITY_RANK, action="restore report visibility")

        async with self.locks.hold(self.lock_key(ticket_id)):
            ticket: Ticket = await self.load(ticket_id)
            if not ticket.elevated:
                raise InvalidStateTransition("This report is not elevated.")
            previous = ticket.viewing_category
            ticket.elevated = False
            ticket.elevated_by = None
            ticket.viewing_category = None
            ticket.reported_member_id = None
            await self.save(ticket)

        await self.audit(
            AuditAction.REPORT_RESTORED,
            actor.member_id,
            ticket.id,
            {"previous_viewing_category": previous.value if previous else None},
        )
        await self.effects.log(
            SideEffectReport(),
            ticket.channel_ref,
            self._notice(NoticeEvent.REPORT_RESTORED, ticket, restored_by=actor.member_id),
        )
        return ticket


