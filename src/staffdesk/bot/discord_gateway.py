"""
py-cord implementations of the collaborator protocols.

The core speaks in role keys, member ids and channel refs (all strings); these
adapters translate them to Discord objects through the rank directory's role
id table. Failures are raised, never swallowed, so the caller's side-effect
accounting sees them.
"""

from __future__ import annotations

from typing import FrozenSet

import discord

from staffdesk.datatypes.case_datatypes import Notice, ScheduledIntent
from staffdesk.ranks.rank_directory import RankDirectory
from staffdesk.util.logger import get_logger

logger = get_logger("discord_gateway")

AUDIT_REASON = "StaffDesk workflow"


def render_notice(notice: Notice) -> str:
    """Plain-text fallback rendering of a notice."""
    title = notice.event.value.replace("_", " ").capitalize()
    if notice.case_kind and notice.case_id:
        title = f"{title} ({notice.case_kind.value} {notice.case_id})"
    lines = [f"**{title}**"]
    for key, value in notice.details.items():
        if value is None or value == [] or value == "":
            continue
        if isinstance(value, (list, tuple, set, frozenset)):
            value = ", ".join(str(v) for v in value)
        lines.append(f"{key.replace('_', ' ')}: {value}")
    return "\n".join(lines)


class _GuildBound:
    def __init__(self, bot: discord.Bot, guild_id: int) -> None:
        self.bot = bot
        self.guild_id = int(guild_id)

    def guild(self) -> discord.Guild:
        guild = self.bot.get_guild(self.guild_id)
        if guild is None:
            raise LookupError(f"Guild {self.guild_id} is not available")
        return guild

    async def member(self, member_id: str) -> discord.Member:
        guild = self.guild()
        member = guild.get_member(int(member_id))
        if member is None:
            member = await guild.fetch_member(int(member_id))
        return member


class DiscordRoleGateway(_GuildBound):
    """:class:`~staffdesk.services.collaborators.RoleGateway` over guild roles."""

    def __init__(self, bot: discord.Bot, guild_id: int, directory: RankDirectory) -> None:
        super().__init__(bot, guild_id)
        self.directory = directory

    def _role(self, key: str) -> discord.Role:
        role_id = self.directory.role_id_for(key)
        if role_id is None:
            raise LookupError(f"No role id configured for {key!r}")
        role = self.guild().get_role(role_id)
        if role is None:
            raise LookupError(f"Role {role_id} ({key}) does not exist in guild {self.guild_id}")
        return role

    async def member_rank_keys(self, member_id: str) -> FrozenSet[str]:
        member = await self.member(member_id)
        keys = (self.directory.key_for_role_id(role.id) for role in member.roles)
        return frozenset(key for key in keys if key is not None)

    async def grant_role(self, member_id: str, key: str) -> None:
        member = await self.member(member_id)
        role = self._role(key)
        if role in member.roles:
            return
        await member.add_roles(role, reason=AUDIT_REASON)
        logger.debug("[DISCORD] Granted %s to %s", key, member_id)

    async def revoke_role(self, member_id: str, key: str) -> None:
        member = await self.member(member_id)
        role = self._role(key)
        if role not in member.roles:
            return
        await member.remove_roles(role, reason=AUDIT_REASON)
        logger.debug("[DISCORD] Revoked %s from %s", key, member_id)


class DiscordNotifier:
    """:class:`~staffdesk.services.collaborators.Notifier` sending plain messages."""

    def __init__(self, bot: discord.Bot, render=render_notice) -> None:
        self.bot = bot
        self.render = render

    async def notify(self, member_id: str, notice: Notice) -> None:
        user = self.bot.get_user(int(member_id))
        if user is None:
            user = await self.bot.fetch_user(int(member_id))
        try:
            await user.send(self.render(notice))
        except discord.Forbidden:
            logger.info("[DISCORD] Could not DM %s: they may have DMs disabled.", member_id)
            raise

    async def log_to_channel(self, channel_ref: str, notice: Notice) -> None:
        channel = self.bot.get_channel(int(channel_ref))
        if channel is None:
            channel = await self.bot.fetch_channel(int(channel_ref))
        await channel.send(self.render(notice))


class DiscordChannelJanitor:
    """Performs due ``delete_channel`` intents.

    A channel that no longer exists counts as deleted, so the intent is
    marked done instead of being retried forever.
    """

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    async def __call__(self, intent: ScheduledIntent) -> None:
        channel = self.bot.get_channel(int(intent.channel_ref))
        try:
            if channel is None:
                channel = await self.bot.fetch_channel(int(intent.channel_ref))
            await channel.delete(reason=f"{AUDIT_REASON}: {intent.case_kind.value} {intent.case_id} retention ended")
        except discord.NotFound:
            logger.info("[DISCORD] Channel %s already gone", intent.channel_ref)
            return
        logger.info("[DISCORD] Deleted channel %s of %s %s", intent.channel_ref, intent.case_kind.value, intent.case_id)
