"""
Office lifecycle: internal affairs investigations.

An office is opened against one staff member, collects participants while
open, is closed with an outcome and finally receives a retention
disposition. Channel deletion is only ever requested as a scheduled intent.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Iterable, List

from staffdesk.configuration.workflow_settings import OfficeSettings
from staffdesk.datatypes.case_datatypes import (
    AuditAction,
    CaseKind,
    IntentAction,
    Notice,
    NoticeEvent,
    Office,
    OfficeDisposition,
    OfficeOutcome,
    OfficeStatus,
    ScheduledIntent,
)
from staffdesk.datatypes.rank_datatypes import StaffMember
from staffdesk.errors import (
    AlreadyClosed,
    InsufficientRankToInvestigate,
    InvalidArgument,
    InvalidStateTransition,
    TargetNotStaff,
    case_operation,
)
from staffdesk.lifecycle.lifecycle_base import LifecycleBase, coerce_enum
from staffdesk.ranks.permission_resolver import PermissionPreset
from staffdesk.services.side_effects import SideEffectReport
from staffdesk.util.logger import get_logger

logger = get_logger("office_lifecycle")

CLOSE_OFFICE_RANK = "internal_affairs"


class OfficeLifecycle(LifecycleBase):
    """State machine for investigation offices.

    Args:
        settings: Channel retention delay for ``delete_24h`` dispositions.
        staff_log_channel: Channel receiving staff-facing notices.
    """

    kind = CaseKind.OFFICE

    def __init__(
        self,
        *args,
        settings: OfficeSettings | None = None,
        staff_log_channel: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.settings = settings or OfficeSettings()
        self.staff_log_channel = staff_log_channel

    def _notice(self, event: NoticeEvent, office: Office, **details) -> Notice:
        return Notice(event=event, case_kind=CaseKind.OFFICE, case_id=office.id, details=details)

    @case_operation("OFFICES")
    async def create(
        self,
        actor: StaffMember,
        target_id: str,
        channel_ref: str,
        reason: str,
        evidence: Iterable[str] = (),
    ) -> Office:
        self.resolver.authorize(actor, PermissionPreset.INTERNAL_AFFAIRS_PLUS, action="open an office")
        target_id = str(target_id)
        if not reason or not reason.strip():
            raise InvalidArgument("An office needs a reason.")

        target_keys = await self.member_keys(target_id)
        if not self.resolver.is_staff(target_keys):
            raise TargetNotStaff("Offices can only be opened against staff members.")
        if self.resolver.member_level(target_keys) > self.resolver.member_level(actor.rank_keys):
            raise InsufficientRankToInvestigate()

        office = Office(
            id=await self.new_id(),
            channel_ref=str(channel_ref),
            target_id=target_id,
            creator_id=actor.member_id,
            reason=reason.strip(),
            created_at=self.clock(),
            evidence=list(evidence),
            participants={actor.member_id},
        )
        await self.save(office)

        await self.audit(
            AuditAction.OFFICE_CREATED,
            actor.member_id,
            office.id,
            {"target_id": target_id, "reason": office.reason},
        )
        await self.effects.log(
            SideEffectReport(),
            self.staff_log_channel,
            self._notice(NoticeEvent.OFFICE_CREATED, office, target_id=target_id, created_by=actor.member_id),
        )
        logger.info("[OFFICES] %s opened office %s against %s", actor.member_id, office.id, target_id)
        return office

    @case_operation("OFFICES")
    async def get(self, office_id: str) -> Office:
        return await self.load(office_id)

    @case_operation("OFFICES")
    async def list_open(self) -> List[Office]:
        return await self.persist(
            self.store.query_cases(CaseKind.OFFICE, status=OfficeStatus.OPEN.value),
            "query open offices",
        )

    @case_operation("OFFICES")
    async def add_participant(self, actor: StaffMember, office_id: str, member_id: str) -> Office:
        self.resolver.authorize(actor, PermissionPreset.INTERNAL_AFFAIRS_PLUS, action="add members to an office")
        member_id = str(member_id)

        async with self.locks.hold(self.lock_key(office_id)):
            office: Office = await self.load(office_id)
            if office.status is not OfficeStatus.OPEN:
                raise InvalidStateTransition("Cannot add participants to a closed office.")
            if member_id in office.participants:
                raise InvalidArgument(f"{member_id} is already part of this office.")
            if not self.resolver.is_staff(await self.member_keys(member_id)):
                raise TargetNotStaff("Only staff members can be added to an office.")
            office.participants.add(member_id)
            await self.save(office)

        await self.audit(AuditAction.OFFICE_PARTICIPANT_ADDED, actor.member_id, office.id, {"member_id": member_id})
        return office

    @case_operation("OFFICES")
    async def close(
        self,
        actor: StaffMember,
        office_id: str,
        outcome: OfficeOutcome | str,
        notes: str | None = None,
    ) -> Office:
        self.resolver.authorize(actor, CLOSE_OFFICE_RANK, action="close an office")
        outcome = coerce_enum(OfficeOutcome, outcome, "outcome")

        async with self.locks.hold(self.lock_key(office_id)):
            office: Office = await self.load(office_id)
            if office.status is OfficeStatus.CLOSED:
                raise AlreadyClosed("Office is already closed.")
            office.status = OfficeStatus.CLOSED
            office.outcome = outcome
            office.notes = notes
            office.closed_by = actor.member_id
            office.closed_at = self.clock()
            await self.save(office)

        await self.audit(
            AuditAction.OFFICE_CLOSED,
            actor.member_id,
            office.id,
            {"outcome": outcome.value, "notes": notes},
        )
        await self.effects.log(
            SideEffectReport(),
            self.staff_log_channel,
            self._notice(NoticeEvent.OFFICE_CLOSED, office, outcome=outcome.value, closed_by=actor.member_id),
        )
        logger.info("[OFFICES] %s closed office %s (%s)", actor.member_id, office.id, outcome.value)
        return office

    @case_operation("OFFICES")
    async def set_disposition(
        self,
        actor: StaffMember,
        office_id: str,
        disposition: OfficeDisposition | str,
    ) -> Office:
        self.resolver.authorize(actor, CLOSE_OFFICE_RANK, action="decide an office's retention")
        disposition = coerce_enum(OfficeDisposition, disposition, "disposition")
        if disposition is OfficeDisposition.UNDECIDED:
            raise InvalidArgument("Choose keep, delete_24h or delete_now.")

        async with self.locks.hold(self.lock_key(office_id)):
            office: Office = await self.load(office_id)
            if office.status is not OfficeStatus.CLOSED:
                raise InvalidStateTransition("Close the office before deciding what happens to it.")
            if office.disposition is not OfficeDisposition.UNDECIDED:
                raise InvalidStateTransition(f"Disposition already set to {office.disposition.value}.")

            # The intent goes first: a failed write leaves the office undecided and retryable
            delay = self._deletion_delay(disposition)
            if delay is not None:
                intent = ScheduledIntent(
                    id=await self.new_id("intent"),
                    action=IntentAction.DELETE_CHANNEL,
                    channel_ref=office.channel_ref,
                    case_kind=CaseKind.OFFICE,
                    case_id=office.id,
                    due_at=self.clock() + delay,
                )
                await self.persist(self.store.upsert_intent(intent), f"schedule deletion of {office.channel_ref}")

            office.disposition = disposition
            office.disposition_by = actor.member_id
            await self.save(office)

        await self.audit(
            AuditAction.OFFICE_DISPOSITION_SET,
            actor.member_id,
            office.id,
            {"disposition": disposition.value},
        )
        return office

    def _deletion_delay(self, disposition: OfficeDisposition) -> timedelta | None:
        if disposition is OfficeDisposition.DELETE_NOW:
            return timedelta(0)
        if disposition is OfficeDisposition.DELETE_24H:
            return self.settings.delete_delay
        return None
