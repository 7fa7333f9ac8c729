"""
Best-effort execution of role mutations and notifications.

State transitions are persisted first; the side effects that follow (granting
or revoking roles, sending notices) may fail independently. Each failure is
logged and counted in a :class:`SideEffectReport` instead of aborting the
operation.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List

from staffdesk.datatypes.case_datatypes import Notice
from staffdesk.services.collaborators import Notifier, RoleGateway, bounded
from staffdesk.util.logger import get_logger

logger = get_logger("side_effects")


@dataclass(slots=True)
class SideEffectReport:
    succeeded: int = 0
    failed: int = 0
    failures: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return self.failed == 0

    def merge(self, other: "SideEffectReport") -> "SideEffectReport":
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.failures.extend(other.failures)
        return self


class SideEffects:
    """Runs collaborator calls with a timeout, recording each outcome.

    Args:
        roles: Role gateway used for grants and revocations.
        notifier: Notifier used for member and channel notices.
        timeout: Seconds allowed for each individual call.
    """

    def __init__(self, roles: RoleGateway, notifier: Notifier, timeout: float) -> None:
        self.roles = roles
        self.notifier = notifier
        self.timeout = timeout

    async def attempt(
        self,
        report: SideEffectReport,
        what: str,
        call: Callable[[], Awaitable[object]],
    ) -> bool:
        try:
            await bounded(call(), self.timeout, what)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            report.failed += 1
            report.failures.append(f"{what}: {exc}")
            logger.warning("[SIDE EFFECTS] %s failed: %s", what, exc)
            return False
        report.succeeded += 1
        return True

    async def grant(self, report: SideEffectReport, member_id: str, key: str) -> bool:
        return await self.attempt(
            report, f"grant {key} to {member_id}", lambda: self.roles.grant_role(member_id, key)
        )

    async def revoke(self, report: SideEffectReport, member_id: str, key: str) -> bool:
        return await self.attempt(
            report, f"revoke {key} from {member_id}", lambda: self.roles.revoke_role(member_id, key)
        )

    async def notify(self, report: SideEffectReport, member_id: str | None, notice: Notice) -> bool:
        if not member_id:
            return False
        return await self.attempt(
            report, f"notify {member_id} of {notice.event.value}", lambda: self.notifier.notify(member_id, notice)
        )

    async def log(self, report: SideEffectReport, channel_ref: str | None, notice: Notice) -> bool:
        if not channel_ref:
            return False
        return await self.attempt(
            report,
            f"log {notice.event.value} to {channel_ref}",
            lambda: self.notifier.log_to_channel(channel_ref, notice),
        )
