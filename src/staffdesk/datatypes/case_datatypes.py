"""
Case records, audit entries, scheduled intents and notices.

Tickets, offices and infractions are mutable records owned by their
lifecycle; promotions and audit entries are immutable once written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Set

from staffdesk.datatypes.rank_datatypes import RankCategory, StatusMarker

SYSTEM_ACTOR = "system"


class CaseKind(Enum):
    TICKET = "ticket"
    OFFICE = "office"
    INFRACTION = "infraction"

    def __str__(self) -> str:
        return self.value


# ---------------------------------------------------------------------------
# Tickets
# ---------------------------------------------------------------------------

class TicketCategory(Enum):
    GENERAL = "general"
    IN_GAME = "in_game"
    STAFF_REPORT = "staff_report"


class TicketStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"


class TicketPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(slots=True)
class Ticket:
    """A support request.

    Attributes:
        id: Store-assigned case id.
        channel_ref: Opaque reference to the chat channel backing the ticket.
        creator_id: Member who opened the ticket.
        category: Ticket category; only staff reports can be elevated.
        last_activity: Timestamp used by the inactivity sweep.
        reminder_sent: True once the inactivity reminder went out.
        viewing_category: Lowest rank category allowed to see an elevated report.
    """
    id: str
    channel_ref: str
    creator_id: str
    category: TicketCategory
    created_at: datetime
    last_activity: datetime
    status: TicketStatus = TicketStatus.OPEN
    priority: TicketPriority = TicketPriority.MEDIUM
    claimed_by: str | None = None
    participants: Set[str] = field(default_factory=set)
    closed_by: str | None = None
    closed_at: datetime | None = None
    close_reason: str | None = None
    reminder_sent: bool = False
    elevated: bool = False
    elevated_by: str | None = None
    viewing_category: RankCategory | None = None
    reported_member_id: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status is TicketStatus.OPEN


# ---------------------------------------------------------------------------
# Offices
# ---------------------------------------------------------------------------

class OfficeStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"


class OfficeOutcome(Enum):
    NO_ACTION = "no_action"
    WARNING = "warning"
    INFRACTION = "infraction"
    DISMISSED = "dismissed"
    REFERRED = "referred"


class OfficeDisposition(Enum):
    UNDECIDED = "undecided"
    KEEP = "keep"
    DELETE_24H = "delete_24h"
    DELETE_NOW = "delete_now"


@dataclass(slots=True)
class Office:
    """An internal affairs investigation against one staff member."""
    id: str
    channel_ref: str
    target_id: str
    creator_id: str
    reason: str
    created_at: datetime
    evidence: List[str] = field(default_factory=list)
    participants: Set[str] = field(default_factory=set)
    status: OfficeStatus = OfficeStatus.OPEN
    outcome: OfficeOutcome | None = None
    notes: str | None = None
    closed_by: str | None = None
    closed_at: datetime | None = None
    disposition: OfficeDisposition = OfficeDisposition.UNDECIDED
    disposition_by: str | None = None


# ---------------------------------------------------------------------------
# Infractions
# ---------------------------------------------------------------------------

class InfractionType(Enum):
    WARNING = "warning"
    SUSPENSION_24H = "suspension_24h"
    SUSPENSION_48H = "suspension_48h"
    SUSPENSION_72H = "suspension_72h"
    SUSPENSION_1W = "suspension_1w"
    SUSPENSION_2W = "suspension_2w"
    DEMOTION = "demotion"
    BLACKLIST = "blacklist"
    UNDER_INVESTIGATION = "under_investigation"

    @property
    def is_suspension(self) -> bool:
        return self in SUSPENSION_DURATIONS

    @property
    def duration(self) -> timedelta | None:
        return SUSPENSION_DURATIONS.get(self)

    @property
    def imposed_marker(self) -> StatusMarker | None:
        """Status role applied when this infraction is enforced, if any."""
        if self.is_suspension:
            return StatusMarker.SUSPENDED
        if self is InfractionType.BLACKLIST:
            return StatusMarker.BLACKLISTED
        if self is InfractionType.UNDER_INVESTIGATION:
            return StatusMarker.UNDER_INVESTIGATION
        return None

    @property
    def strips_staff_roles(self) -> bool:
        return self.is_suspension or self is InfractionType.BLACKLIST


SUSPENSION_DURATIONS: Dict[InfractionType, timedelta] = {
    InfractionType.SUSPENSION_24H: timedelta(hours=24),
    InfractionType.SUSPENSION_48H: timedelta(hours=48),
    InfractionType.SUSPENSION_72H: timedelta(hours=72),
    InfractionType.SUSPENSION_1W: timedelta(weeks=1),
    InfractionType.SUSPENSION_2W: timedelta(weeks=2),
}


class InfractionStatus(Enum):
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    COMPLETED = "completed"
    MANUALLY_COMPLETED = "manually_completed"
    DENIED = "denied"


@dataclass(slots=True)
class Infraction:
    """A disciplinary action awaiting approval or in force.

    ``previous_roles`` is written once, when the infraction is approved, and is
    the exact set restored when a suspension ends.
    """
    id: str
    user_id: str
    issuer_id: str
    type: InfractionType
    reason: str
    created_at: datetime
    evidence: List[str] = field(default_factory=list)
    appealable: bool = False
    status: InfractionStatus = InfractionStatus.PENDING_APPROVAL
    approved_by: str | None = None
    approved_at: datetime | None = None
    denied_by: str | None = None
    denied_at: datetime | None = None
    denial_reason: str | None = None
    completed_by: str | None = None
    completed_at: datetime | None = None
    previous_roles: FrozenSet[str] | None = None
    duration: timedelta | None = None
    expiry: datetime | None = None

    @property
    def is_active_suspension(self) -> bool:
        return self.status is InfractionStatus.ACTIVE and self.type.is_suspension


# ---------------------------------------------------------------------------
# Immutable records
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Promotion:
    """Audit record of one rank change."""
    id: str
    staff_id: str
    old_rank: str
    new_rank: str
    reason: str
    promoter_id: str
    timestamp: datetime


class AuditAction(Enum):
    TICKET_CREATED = "ticket_created"
    TICKET_CLAIMED = "ticket_claimed"
    TICKET_UNCLAIMED = "ticket_unclaimed"
    TICKET_PRIORITY_CHANGED = "ticket_priority_changed"
    TICKET_PARTICIPANT_ADDED = "ticket_participant_added"
    TICKET_PARTICIPANT_REMOVED = "ticket_participant_removed"
    TICKET_REMINDER_SENT = "ticket_reminder_sent"
    TICKET_CLOSED = "ticket_closed"
    REPORT_ELEVATED = "report_elevated"
    REPORT_RESTORED = "report_restored"
    OFFICE_CREATED = "office_created"
    OFFICE_PARTICIPANT_ADDED = "office_participant_added"
    OFFICE_CLOSED = "office_closed"
    OFFICE_DISPOSITION_SET = "office_disposition_set"
    INFRACTION_CREATED = "infraction_created"
    INFRACTION_APPROVED = "infraction_approved"
    INFRACTION_DENIED = "infraction_denied"
    SUSPENSION_ENDED = "suspension_ended"
    MANUAL_ROLE_RESTORATION = "manual_role_restoration"
    RANK_CHANGED = "rank_changed"
    CHANNEL_DELETION_RELEASED = "channel_deletion_released"


@dataclass(frozen=True, slots=True)
class AuditLogEntry:
    action_type: AuditAction
    user_id: str
    details: Dict[str, Any]
    timestamp: datetime
    target_id: str | None = None


# ---------------------------------------------------------------------------
# Scheduled intents
# ---------------------------------------------------------------------------

class IntentAction(Enum):
    DELETE_CHANNEL = "delete_channel"


class IntentStatus(Enum):
    PENDING = "pending"
    DONE = "done"


@dataclass(slots=True)
class ScheduledIntent:
    """A persisted request for a deferred external action.

    The core never performs the action; the reconciliation scheduler hands due
    intents to an external handler and records the outcome.
    """
    id: str
    action: IntentAction
    channel_ref: str
    case_kind: CaseKind
    case_id: str
    due_at: datetime
    status: IntentStatus = IntentStatus.PENDING
    attempts: int = 0


# ---------------------------------------------------------------------------
# Notices
# ---------------------------------------------------------------------------

class NoticeEvent(Enum):
    TICKET_CLAIMED = "ticket_claimed"
    TICKET_INACTIVITY_REMINDER = "ticket_inactivity_reminder"
    TICKET_AUTO_CLOSED = "ticket_auto_closed"
    TICKET_CLOSED = "ticket_closed"
    REPORT_ELEVATED = "report_elevated"
    DIRECTIVE_REPORT = "directive_report"
    REPORT_RESTORED = "report_restored"
    OFFICE_CREATED = "office_created"
    OFFICE_CLOSED = "office_closed"
    INFRACTION_PENDING = "infraction_pending"
    INFRACTION_APPROVED = "infraction_approved"
    INFRACTION_DENIED = "infraction_denied"
    SUSPENSION_EXPIRED = "suspension_expired"
    SUSPENSION_MANUALLY_COMPLETED = "suspension_manually_completed"
    RANK_CHANGED = "rank_changed"


@dataclass(frozen=True, slots=True)
class Notice:
    """Structured notification; rendering belongs to the notifier."""
    event: NoticeEvent
    case_kind: CaseKind | None = None
    case_id: str | None = None
    details: Dict[str, Any] = field(default_factory=dict)
