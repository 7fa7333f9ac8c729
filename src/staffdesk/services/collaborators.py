"""
Protocols for the collaborators the lifecycles call out to.

The lifecycles only know these narrow interfaces; the Discord adapters in
``staffdesk.bot.discord_gateway`` and the fakes used by the tests implement
them. Every call is made through :func:`bounded` so a hung collaborator can
never stall a case lock forever.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, FrozenSet, Protocol, TypeVar, runtime_checkable

from staffdesk.datatypes.case_datatypes import Notice
from staffdesk.util.logger import get_logger

logger = get_logger("collaborators")

T = TypeVar("T")


class CollaboratorTimeout(Exception):
    """Raised by :func:`bounded` when a collaborator call exceeds its budget."""


@runtime_checkable
class RoleGateway(Protocol):
    """Reads and mutates the role keys a member holds on the chat platform."""

    async def member_rank_keys(self, member_id: str) -> FrozenSet[str]:
        ...

    async def grant_role(self, member_id: str, key: str) -> None:
        ...

    async def revoke_role(self, member_id: str, key: str) -> None:
        ...


@runtime_checkable
class Notifier(Protocol):
    """Delivers structured notices; rendering is the implementation's concern."""

    async def notify(self, member_id: str, notice: Notice) -> None:
        ...

    async def log_to_channel(self, channel_ref: str, notice: Notice) -> None:
        ...


async def bounded(awaitable: Awaitable[T], timeout: float, what: str = "collaborator call") -> T:
    """Await ``awaitable`` for at most ``timeout`` seconds.

    Raises:
        CollaboratorTimeout: If the call did not finish in time.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("[COLLABORATORS] %s timed out after %.1fs", what, timeout)
        raise CollaboratorTimeout(f"{what} timed out after {timeout:.1f}s") from exc
