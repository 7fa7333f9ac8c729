"""
Tests for the ReconciliationCog.
"""

import unittest
from unittest.mock import AsyncMock, MagicMock

from staffdesk.bot import reconciliation_cog
from staffdesk.bot.reconciliation_cog import ReconciliationCog
from staffdesk.configuration.workflow_settings import SweepSettings


class TestReconciliationCog(unittest.IsolatedAsyncioTestCase):
    """
    Tests for the loops driving the scheduler ticks.
    """

    def setUp(self):
        self.bot = MagicMock()
        self.bot.wait_until_ready = AsyncMock()
        self.scheduler = MagicMock()
        self.scheduler.on_suspension_sweep_tick = AsyncMock()
        self.scheduler.on_ticket_inactivity_sweep_tick = AsyncMock()
        self.scheduler.on_scheduled_intent_tick = AsyncMock()
        self.scheduler.on_draft_purge_tick = AsyncMock()
        self.settings = SweepSettings(
            {
                "suspension_interval_seconds": 60,
                "ticket_interval_seconds": 120,
                "intent_interval_seconds": 180,
                "draft_purge_interval_seconds": 240,
            }
        )
        self.cog = ReconciliationCog(self.bot, self.scheduler, self.settings)

    def _mock_loops(self):
        loops = {}
        for name in ("_suspension_task", "_ticket_task", "_intent_task", "_draft_task"):
            loop = MagicMock()
            loop.is_running.return_value = False
            setattr(self.cog, name, loop)
            loops[name] = loop
        return loops

    async def test_tick_bodies_call_scheduler(self):
        """
        Each loop body runs exactly one scheduler tick.
        """
        await ReconciliationCog._suspension_task.coro(self.cog)
        await ReconciliationCog._ticket_task.coro(self.cog)
        await ReconciliationCog._intent_task.coro(self.cog)
        await ReconciliationCog._draft_task.coro(self.cog)

        self.scheduler.on_suspension_sweep_tick.assert_awaited_once()
        self.scheduler.on_ticket_inactivity_sweep_tick.assert_awaited_once()
        self.scheduler.on_scheduled_intent_tick.assert_awaited_once()
        self.scheduler.on_draft_purge_tick.assert_awaited_once()

    async def test_before_tick_waits_for_ready(self):
        await self.cog._before_tick()

        self.bot.wait_until_ready.assert_awaited_once()

    async def test_on_ready_applies_intervals_and_starts(self):
        """
        on_ready sets each configured interval and starts the loops.
        """
        loops = self._mock_loops()

        await self.cog.on_ready()

        loops["_suspension_task"].change_interval.assert_called_once_with(seconds=60.0)
        loops["_ticket_task"].change_interval.assert_called_once_with(seconds=120.0)
        loops["_intent_task"].change_interval.assert_called_once_with(seconds=180.0)
        loops["_draft_task"].change_interval.assert_called_once_with(seconds=240.0)
        for loop in loops.values():
            loop.start.assert_called_once()

    async def test_on_ready_does_not_restart_running_loops(self):
        loops = self._mock_loops()
        for loop in loops.values():
            loop.is_running.return_value = True

        await self.cog.on_ready()

        for loop in loops.values():
            loop.start.assert_not_called()

    def test_cog_unload_cancels_loops(self):
        loops = self._mock_loops()

        self.cog.cog_unload()

        for loop in loops.values():
            loop.cancel.assert_called_once()

    def test_setup_adds_cog(self):
        reconciliation_cog.setup(self.bot, self.scheduler, self.settings)

        self.bot.add_cog.assert_called_once()
        cog = self.bot.add_cog.call_args.args[0]
        self.assertIsInstance(cog, ReconciliationCog)
        self.assertIs(cog.scheduler, self.scheduler)


if __name__ == "__main__":
    unittest.main()
