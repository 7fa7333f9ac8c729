"""Background cog driving the reconciliation ticks.

One ``tasks.loop`` per sweep:
- suspension expiry
- ticket inactivity
- scheduled intents (channel deletions)
- draft purge
"""

from __future__ import annotations

import discord
from discord.ext import commands, tasks

from staffdesk.configuration.workflow_settings import SweepSettings
from staffdesk.scheduler.reconciliation_scheduler import ReconciliationScheduler
from staffdesk.util.logger import get_logger

logger = get_logger("reconciliation_cog")


class ReconciliationCog(commands.Cog):
    """Runs the scheduler's ticks on the intervals from ``SweepSettings``.

    Intervals are applied in ``on_ready``; the loops wait for the client to be
    ready before their first iteration.
    """

    def __init__(self, bot: discord.Bot, scheduler: ReconciliationScheduler, settings: SweepSettings) -> None:
        self.bot = bot
        self.scheduler = scheduler
        self.settings = settings

    def _loops(self):
        return (
            ("SUSPENSION_SWEEP", self._suspension_task, self.settings.suspension_interval),
            ("TICKET_SWEEP", self._ticket_task, self.settings.ticket_interval),
            ("INTENT_SWEEP", self._intent_task, self.settings.intent_interval),
            ("DRAFT_PURGE", self._draft_task, self.settings.draft_purge_interval),
        )

    @tasks.loop(seconds=1)  # real interval set in on_ready
    async def _suspension_task(self) -> None:
        await self.scheduler.on_suspension_sweep_tick()

    @tasks.loop(seconds=1)
    async def _ticket_task(self) -> None:
        await self.scheduler.on_ticket_inactivity_sweep_tick()

    @tasks.loop(seconds=1)
    async def _intent_task(self) -> None:
        await self.scheduler.on_scheduled_intent_tick()

    @tasks.loop(seconds=1)
    async def _draft_task(self) -> None:
        await self.scheduler.on_draft_purge_tick()

    @_suspension_task.before_loop
    @_ticket_task.before_loop
    @_intent_task.before_loop
    @_draft_task.before_loop
    async def _before_tick(self) -> None:
        await self.bot.wait_until_ready()

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        for name, loop, interval in self._loops():
            loop.change_interval(seconds=interval)
            if not loop.is_running():
                loop.start()
                logger.info("[%s] Started (interval=%.1fs)", name, interval)

    def cog_unload(self) -> None:
        for name, loop, _ in self._loops():
            loop.cancel()
            logger.info("[%s] Stopped", name)


def setup(bot: discord.Bot, scheduler: ReconciliationScheduler, settings: SweepSettings) -> None:
    bot.add_cog(ReconciliationCog(bot, scheduler, settings))
