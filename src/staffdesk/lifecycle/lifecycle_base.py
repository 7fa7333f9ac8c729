"""
Plumbing shared by the case lifecycles.

Every lifecycle needs the same handful of things: the store, the permission
resolver, a clock, the per-case locks and a way to run collaborator calls
under a timeout. :class:`LifecycleBase` bundles them together with helpers that
translate persistence failures into :class:`CollaboratorFailure`.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Type, TypeVar

from staffdesk.database.case_store import CaseRecord, CaseStore
from staffdesk.datatypes.case_datatypes import AuditAction, AuditLogEntry, CaseKind
from staffdesk.datatypes.rank_datatypes import StaffMember
from staffdesk.errors import CollaboratorFailure, InvalidArgument, NotFound
from staffdesk.ranks.permission_resolver import PermissionResolver
from staffdesk.services.case_locks import KeyedLocks
from staffdesk.services.collaborators import bounded
from staffdesk.services.side_effects import SideEffects
from staffdesk.util.logger import get_logger

logger = get_logger("lifecycle")

T = TypeVar("T")
E = TypeVar("E", bound=Enum)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def coerce_enum(enum_cls: Type[E], value: Any, what: str) -> E:
    """Accept a member of ``enum_cls`` or its value; anything else is :class:`InvalidArgument`."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(str(member.value) for member in enum_cls)
        raise InvalidArgument(f"Unknown {what} {value!r}; expected one of {allowed}.") from exc


class LifecycleBase:
    """Dependencies and persistence helpers common to all lifecycles.

    Args:
        store: Case persistence.
        resolver: Authority gate.
        effects: Best-effort role and notification calls.
        clock: Returns the current UTC time.
        locks: Per-case locks; lifecycles that share records must share this.
        timeout: Seconds allowed for each persistence or role read.
    """

    kind: CaseKind

    def __init__(
        self,
        store: CaseStore,
        resolver: PermissionResolver,
        effects: SideEffects,
        clock: Clock = utc_now,
        locks: KeyedLocks | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.effects = effects
        self.clock = clock
        self.locks = locks if locks is not None else KeyedLocks()
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def persist(self, awaitable: Awaitable[T], what: str) -> T:
        """Run a store call; any failure becomes :class:`CollaboratorFailure`."""
        try:
            return await bounded(awaitable, self.timeout, what)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[PERSISTENCE] %s failed: %s", what, exc)
            raise CollaboratorFailure(f"{what} failed: {exc}") from exc

    def lock_key(self, case_id: str) -> str:
        return f"{self.kind.value}:{case_id}"

    async def load(self, case_id: str) -> Any:
        record = await self.persist(self.store.get_case(self.kind, case_id), f"load {self.kind.value} {case_id}")
        if record is None:
            raise NotFound(f"No {self.kind.value} with id {case_id}.")
        return record

    async def find(self, case_id: str) -> Any:
        return await self.persist(self.store.get_case(self.kind, case_id), f"load {self.kind.value} {case_id}")

    async def save(self, record: CaseRecord) -> None:
        await self.persist(self.store.upsert_case(self.kind, record), f"save {self.kind.value} {record.id}")

    async def new_id(self, kind: CaseKind | str | None = None) -> str:
        kind = kind or self.kind
        return await self.persist(self.store.allocate_id(kind), f"allocate {kind} id")

    async def audit(
        self,
        action: AuditAction,
        user_id: str,
        target_id: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        """Append an audit entry; the state change is already persisted, so a failure is only logged."""
        entry = AuditLogEntry(
            action_type=action,
            user_id=str(user_id),
            target_id=target_id,
            details=details or {},
            timestamp=self.clock(),
        )
        try:
            await bounded(self.store.append_audit(entry), self.timeout, f"audit {action.value}")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[AUDIT] Failed to record %s for %s: %s", action.value, target_id, exc)

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def member_keys(self, member_id: str) -> FrozenSet[str]:
        """Role keys currently held by ``member_id``; failures become :class:`CollaboratorFailure`."""
        try:
            keys = await bounded(
                self.effects.roles.member_rank_keys(str(member_id)), self.timeout, f"read roles of {member_id}"
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[ROLES] Could not read roles of %s: %s", member_id, exc)
            raise CollaboratorFailure(f"Could not read the roles of {member_id}: {exc}") from exc
        return frozenset(keys)

    async def member(self, member_id: str) -> StaffMember:
        return StaffMember.of(member_id, await self.member_keys(member_id))
