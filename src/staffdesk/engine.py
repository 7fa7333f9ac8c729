"""
Assembly of the workflow engine from configuration and collaborators.

Everything the lifecycles share (directory, resolver, locks, clock, side
effect runner) is created once here, so two lifecycles touching the same case
always contend for the same lock.
"""

from __future__ import annotations

from dataclasses import dataclass

from staffdesk.configuration.app_configuration import AppConfig
from staffdesk.database.case_store import CaseStore
from staffdesk.lifecycle.infraction_drafts import InfractionDraftStore
from staffdesk.lifecycle.infraction_lifecycle import InfractionLifecycle
from staffdesk.lifecycle.lifecycle_base import Clock, utc_now
from staffdesk.lifecycle.office_lifecycle import OfficeLifecycle
from staffdesk.lifecycle.promotion_service import PromotionService
from staffdesk.lifecycle.ticket_lifecycle import TicketLifecycle
from staffdesk.ranks.escalation import ReportEscalationResolver
from staffdesk.ranks.permission_resolver import PermissionResolver
from staffdesk.ranks.rank_directory import RankDirectory
from staffdesk.scheduler.reconciliation_scheduler import IntentHandler, ReconciliationScheduler
from staffdesk.services.case_locks import KeyedLocks
from staffdesk.services.collaborators import Notifier, RoleGateway
from staffdesk.services.side_effects import SideEffects
from staffdesk.util.logger import get_logger

logger = get_logger("engine")


@dataclass
class StaffDeskEngine:
    directory: RankDirectory
    resolver: PermissionResolver
    tickets: TicketLifecycle
    offices: OfficeLifecycle
    infractions: InfractionLifecycle
    promotions: PromotionService
    scheduler: ReconciliationScheduler

    @property
    def drafts(self) -> InfractionDraftStore:
        return self.infractions.drafts


def build_engine(
    config: AppConfig,
    store: CaseStore,
    roles: RoleGateway,
    notifier: Notifier,
    intent_handler: IntentHandler | None = None,
    clock: Clock = utc_now,
    directory: RankDirectory | None = None,
) -> StaffDeskEngine:
    """Wire every component of the engine.

    Args:
        config: Loaded application configuration.
        store: Case persistence, already initialized.
        roles: Role gateway for the managed guild.
        notifier: Notice delivery.
        intent_handler: Performs due scheduled intents; ``None`` leaves them pending.
        clock: Returns the current UTC time.
        directory: Rank directory to share with the adapters; built from the
            configured role ids when omitted.
    """
    directory = directory or RankDirectory(role_ids=config.role_ids)
    resolver = PermissionResolver(directory, config.override_member_ids)
    timeout = config.collaborator_timeout
    effects = SideEffects(roles, notifier, timeout)
    locks = KeyedLocks()
    channels = config.channels
    common = dict(clock=clock, locks=locks, timeout=timeout)

    tickets = TicketLifecycle(
        store,
        resolver,
        effects,
        settings=config.ticket_settings,
        escalation=ReportEscalationResolver(),
        staff_log_channel=config.staff_log_channel,
        top_authority_id=config.top_authority_id,
        **common,
    )
    offices = OfficeLifecycle(
        store,
        resolver,
        effects,
        settings=config.office_settings,
        staff_log_channel=config.staff_log_channel,
        **common,
    )
    infraction_settings = config.infraction_settings
    infractions = InfractionLifecycle(
        store,
        resolver,
        effects,
        settings=infraction_settings,
        drafts=InfractionDraftStore(infraction_settings.draft_ttl, clock),
        approval_channel=channels.get("infraction_approval"),
        announcement_channel=channels.get("infraction_announcement"),
        staff_log_channel=config.staff_log_channel,
        **common,
    )
    promotions = PromotionService(
        store,
        resolver,
        effects,
        settings=config.promotion_settings,
        staff_log_channel=config.staff_log_channel,
        **common,
    )
    scheduler = ReconciliationScheduler(
        tickets,
        infractions,
        infractions.drafts,
        store,
        intent_handler=intent_handler,
        clock=clock,
        timeout=timeout,
    )

    logger.info(
        "[ENGINE] Built with %d ranks, %d override member(s), collaborator timeout %.1fs",
        len(directory.all_ranks_low_to_high()), len(resolver.override_ids), timeout,
    )
    return StaffDeskEngine(
        directory=directory,
        resolver=resolver,
        tickets=tickets,
        offices=offices,
        infractions=infractions,
        promotions=promotions,
        scheduler=scheduler,
    )
