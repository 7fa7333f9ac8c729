"""
Persistence protocol consumed by the lifecycles.

Implementations must return independent copies: mutating a record obtained
from :meth:`CaseStore.get_case` has no effect until it is passed back to
:meth:`CaseStore.upsert_case`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Protocol, Union, runtime_checkable

from staffdesk.datatypes.case_datatypes import (
    AuditLogEntry,
    CaseKind,
    Infraction,
    Office,
    Promotion,
    ScheduledIntent,
    Ticket,
)

CaseRecord = Union[Ticket, Office, Infraction]
CasePredicate = Callable[[CaseRecord], bool]


@runtime_checkable
class CaseStore(Protocol):
    async def get_case(self, kind: CaseKind, case_id: str) -> CaseRecord | None:
        ...

    async def upsert_case(self, kind: CaseKind, record: CaseRecord) -> None:
        ...

    async def query_cases(
        self,
        kind: CaseKind,
        predicate: CasePredicate | None = None,
        status: str | None = None,
    ) -> List[CaseRecord]:
        """Records of ``kind``, optionally filtered by status value and predicate, oldest id first."""
        ...

    async def append_audit(self, entry: AuditLogEntry) -> None:
        ...

    async def list_audit(self, target_id: str | None = None) -> List[AuditLogEntry]:
        ...

    async def allocate_id(self, kind: CaseKind | str) -> str:
        ...

    async def upsert_intent(self, intent: ScheduledIntent) -> None:
        ...

    async def due_intents(self, now: datetime) -> List[ScheduledIntent]:
        """Pending intents whose ``due_at`` is at or before ``now``."""
        ...

    async def insert_promotion(self, record: Promotion) -> None:
        ...

    async def list_promotions(self, staff_id: str) -> List[Promotion]:
        ...
