"""
Time-driven reconciliation of case state.

The scheduler owns no timers. Something else (a ``discord.ext.tasks`` loop, a
:class:`~staffdesk.scheduler.periodic_task.PeriodicTask` or a test) calls the
``on_*_tick`` methods; each tick re-enters the lifecycles with the current
time and reports what it did. A tick never runs twice concurrently: when the
previous run of the same sweep is still going the new one returns
immediately with ``overlapped=True``.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Set

from staffdesk.database.case_store import CaseStore
from staffdesk.datatypes.case_datatypes import (
    SYSTEM_ACTOR,
    AuditAction,
    AuditLogEntry,
    IntentStatus,
    ScheduledIntent,
)
from staffdesk.datatypes.sweep_datatypes import SweepReport
from staffdesk.lifecycle.infraction_drafts import InfractionDraftStore
from staffdesk.lifecycle.infraction_lifecycle import InfractionLifecycle
from staffdesk.lifecycle.lifecycle_base import Clock, utc_now
from staffdesk.lifecycle.ticket_lifecycle import TicketLifecycle
from staffdesk.services.collaborators import bounded
from staffdesk.util.logger import get_logger

logger = get_logger("reconciliation_scheduler")

IntentHandler = Callable[[ScheduledIntent], Awaitable[None]]


class ReconciliationScheduler:
    """Entry points for the periodic sweeps.

    Args:
        tickets: Ticket lifecycle (inactivity sweep).
        infractions: Infraction lifecycle (suspension expiry).
        drafts: Draft store to purge.
        store: Case store holding scheduled intents.
        intent_handler: Performs a due intent (e.g. deletes a channel); raising
            leaves the intent pending for the next tick. ``None`` leaves every
            intent pending.
        clock: Returns the current UTC time.
        timeout: Seconds allowed per intent handler call.
    """

    def __init__(
        self,
        tickets: TicketLifecycle,
        infractions: InfractionLifecycle,
        drafts: InfractionDraftStore,
        store: CaseStore,
        intent_handler: IntentHandler | None = None,
        clock: Clock = utc_now,
        timeout: float = 10.0,
    ) -> None:
        self.tickets = tickets
        self.infractions = infractions
        self.drafts = drafts
        self.store = store
        self.intent_handler = intent_handler
        self.clock = clock
        self.timeout = timeout
        self._running: Set[str] = set()

    def is_running(self, name: str) -> bool:
        return name in self._running

    async def _guarded(self, name: str, sweep: Callable[[], Awaitable[SweepReport]]) -> SweepReport:
        if name in self._running:
            logger.debug("[SWEEP] %s still in progress, skipping this tick", name)
            return SweepReport(name=name, overlapped=True)

        self._running.add(name)
        try:
            report = await sweep()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("[SWEEP] %s failed: %s", name, exc)
            report = SweepReport(name=name, failed=1)
        finally:
            self._running.discard(name)

        report.name = name
        if report.processed or report.failed:
            logger.info("[SWEEP] %s", report)
        else:
            logger.debug("[SWEEP] %s", report)
        return report

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def on_suspension_sweep_tick(self) -> SweepReport:
        return await self._guarded("suspension_expiry", lambda: self.infractions.sweep_expired(self.clock()))

    async def on_ticket_inactivity_sweep_tick(self) -> SweepReport:
        return await self._guarded("ticket_inactivity", lambda: self.tickets.sweep_inactivity(self.clock()))

    async def on_scheduled_intent_tick(self) -> SweepReport:
        return await self._guarded("scheduled_intents", self._release_due_intents)

    async def on_draft_purge_tick(self) -> SweepReport:
        return await self._guarded("draft_purge", self._purge_drafts)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def _purge_drafts(self) -> SweepReport:
        purged = self.drafts.purge_expired(self.clock())
        return SweepReport(processed=purged, succeeded=purged)

    async def _release_due_intents(self) -> SweepReport:
        report = SweepReport()
        now = self.clock()
        due = await bounded(self.store.due_intents(now), self.timeout, "load due intents")

        for intent in due:
            report.processed += 1
            if self.intent_handler is None:
                report.skipped += 1
                continue

            try:
                await bounded(self.intent_handler(intent), self.timeout, f"{intent.action.value} {intent.channel_ref}")
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                intent.attempts += 1
                report.failed += 1
                logger.warning(
                    "[SWEEP] Intent %s (%s %s) failed, attempt %d: %s",
                    intent.id, intent.action.value, intent.channel_ref, intent.attempts, exc,
                )
                await self._save_intent(intent)
                continue

            intent.status = IntentStatus.DONE
            intent.attempts += 1
            if await self._save_intent(intent):
                report.succeeded += 1
                await self._audit_release(intent)
            else:
                report.failed += 1
        return report

    async def _save_intent(self, intent: ScheduledIntent) -> bool:
        try:
            await bounded(self.store.upsert_intent(intent), self.timeout, f"save intent {intent.id}")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[SWEEP] Could not save intent %s: %s", intent.id, exc)
            return False
        return True

    async def _audit_release(self, intent: ScheduledIntent) -> None:
        entry = AuditLogEntry(
            action_type=AuditAction.CHANNEL_DELETION_RELEASED,
            user_id=SYSTEM_ACTOR,
            target_id=intent.case_id,
            details={
                "intent_id": intent.id,
                "channel_ref": intent.channel_ref,
                "case_kind": intent.case_kind.value,
            },
            timestamp=self.clock(),
        )
        try:
            await bounded(self.store.append_audit(entry), self.timeout, "audit intent release")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[SWEEP] Could not audit release of intent %s: %s", intent.id, exc)
