"""
Expiring store for infractions being assembled step by step.

Issuers build an infraction over several interactions (pick the member, the
type, the reason, the evidence) before submitting it. Partial state lives here
keyed by draft id, is private to its issuer and disappears after a period
without updates.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List

from staffdesk.datatypes.case_datatypes import InfractionType
from staffdesk.errors import InvalidArgument, NotFound, PermissionDenied
from staffdesk.lifecycle.lifecycle_base import coerce_enum
from staffdesk.util.logger import get_logger

logger = get_logger("infraction_drafts")

_EDITABLE_FIELDS = frozenset({"user_id", "type", "reason", "evidence", "appealable"})


@dataclass(slots=True)
class InfractionDraft:
    draft_id: str
    issuer_id: str
    user_id: str
    created_at: datetime
    expires_at: datetime
    type: InfractionType | None = None
    reason: str | None = None
    evidence: List[str] = field(default_factory=list)
    appealable: bool = False

    @property
    def is_complete(self) -> bool:
        return self.type is not None and bool(self.reason and self.reason.strip())


class InfractionDraftStore:
    """In-memory drafts with a sliding time-to-live.

    Args:
        ttl: Lifetime of a draft after its last update.
        clock: Returns the current UTC time.
    """

    def __init__(self, ttl: timedelta, clock: Callable[[], datetime]) -> None:
        self.ttl = ttl
        self.clock = clock
        self._drafts: Dict[str, InfractionDraft] = {}

    def __len__(self) -> int:
        return len(self._drafts)

    def start(self, issuer_id: str, user_id: str) -> InfractionDraft:
        now = self.clock()
        draft = InfractionDraft(
            draft_id=uuid.uuid4().hex[:12],
            issuer_id=str(issuer_id),
            user_id=str(user_id),
            created_at=now,
            expires_at=now + self.ttl,
        )
        self._drafts[draft.draft_id] = draft
        logger.debug("[DRAFTS] %s started draft %s for %s", issuer_id, draft.draft_id, user_id)
        return replace(draft)

    def get(self, draft_id: str) -> InfractionDraft | None:
        """Copy of the draft, or None when it does not exist or has expired."""
        draft = self._drafts.get(draft_id)
        if draft is None:
            return None
        if draft.expires_at <= self.clock():
            del self._drafts[draft_id]
            return None
        return replace(draft, evidence=list(draft.evidence))

    def _owned(self, draft_id: str, issuer_id: str) -> InfractionDraft:
        if self.get(draft_id) is None:
            raise NotFound("This infraction draft has expired or does not exist.")
        draft = self._drafts[draft_id]
        if draft.issuer_id != str(issuer_id):
            raise PermissionDenied("Only the issuer can edit this draft.")
        return draft

    def update(self, draft_id: str, issuer_id: str, **changes) -> InfractionDraft:
        """Apply ``changes`` to the issuer's draft and extend its lifetime.

        Raises:
            NotFound: The draft is unknown or expired.
            PermissionDenied: ``issuer_id`` did not start the draft.
            InvalidArgument: A field is not editable or a type is unknown.
        """
        draft = self._owned(draft_id, issuer_id)

        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise InvalidArgument(f"Cannot edit draft fields: {', '.join(sorted(unknown))}.")

        if changes.get("type") is not None:
            changes["type"] = coerce_enum(InfractionType, changes["type"], "infraction type")
        if "evidence" in changes:
            changes["evidence"] = list(changes["evidence"] or [])
        if "user_id" in changes:
            changes["user_id"] = str(changes["user_id"])

        for name, value in changes.items():
            setattr(draft, name, value)
        draft.expires_at = self.clock() + self.ttl
        return replace(draft, evidence=list(draft.evidence))

    def discard(self, draft_id: str, issuer_id: str | None = None) -> bool:
        """Remove a draft; with ``issuer_id`` only the issuer's own draft is removed."""
        draft = self._drafts.get(draft_id)
        if draft is None:
            return False
        if issuer_id is not None and draft.issuer_id != str(issuer_id):
            raise PermissionDenied("Only the issuer can discard this draft.")
        del self._drafts[draft_id]
        return True

    def purge_expired(self, now: datetime | None = None) -> int:
        now = now or self.clock()
        expired = [key for key, draft in self._drafts.items() if draft.expires_at <= now]
        for key in expired:
            del self._drafts[key]
        if expired:
            logger.debug("[DRAFTS] Purged %d expired draft(s)", len(expired))
        return len(expired)
