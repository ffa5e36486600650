"""
Discord implementations of the platform and audit log collaborators.

Every discord.py exception is converted here so nothing above this module
needs to import discord to handle failures.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, List, Sequence

import discord

from modledger.datatypes.moderation_datatypes import AuditEntry, EventKind
from modledger.moderation.errors import DeliveryFailed, MutationFailed
from modledger.util.logger import get_logger

logger = get_logger("discord_platform")

AUDIT_ACTIONS = {
    EventKind.BAN: discord.AuditLogAction.ban,
    EventKind.UNBAN: discord.AuditLogAction.unban,
    EventKind.KICK: discord.AuditLogAction.kick,
}

# Messages from the last day are purged on ban
BAN_DELETE_MESSAGE_SECONDS = 24 * 60 * 60


class DiscordPlatform:
    """Mutation and messaging surface backed by a :class:`discord.Guild`."""

    def __init__(self, guild: discord.Guild, client: discord.Client | None = None) -> None:
        self.guild = guild
        self.client = client

    @property
    def guild_id(self) -> int:
        return self.guild.id

    @property
    def guild_name(self) -> str:
        return self.guild.name

    def get_member(self, user_id: int) -> discord.Member | None:
        return self.guild.get_member(int(user_id))

    async def _resolve_member(self, user_id: int) -> discord.Member:
        member = self.get_member(user_id)
        if member is not None:
            return member
        try:
            return await self.guild.fetch_member(int(user_id))
        except discord.HTTPException as exc:
            raise MutationFailed(f"Member {user_id} is not in this server") from exc

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def ban(self, user_id: int, reason: str | None = None) -> None:
        try:
            await self.guild.ban(
                discord.Object(id=int(user_id)),
                reason=reason,
                delete_message_seconds=BAN_DELETE_MESSAGE_SECONDS,
            )
        except discord.HTTPException as exc:
            raise MutationFailed(f"Failed to ban {user_id}: {exc}") from exc

    async def unban(self, user_id: int, reason: str | None = None) -> None:
        try:
            await self.guild.unban(discord.Object(id=int(user_id)), reason=reason)
        except discord.HTTPException as exc:
            raise MutationFailed(f"Failed to unban {user_id}: {exc}") from exc

    async def kick(self, user_id: int, reason: str | None = None) -> None:
        try:
            await self.guild.kick(discord.Object(id=int(user_id)), reason=reason)
        except discord.HTTPException as exc:
            raise MutationFailed(f"Failed to kick {user_id}: {exc}") from exc

    async def add_role(self, user_id: int, role_id: int, reason: str | None = None) -> None:
        role = self.guild.get_role(int(role_id))
        if role is None:
            raise MutationFailed(f"Role {role_id} does not exist")
        member = await self._resolve_member(user_id)
        try:
            await member.add_roles(role, reason=reason)
        except discord.HTTPException as exc:
            raise MutationFailed(f"Failed to add role {role_id} to {user_id}: {exc}") from exc

    async def remove_role(self, user_id: int, role_id: int, reason: str | None = None) -> None:
        role = self.guild.get_role(int(role_id))
        if role is None:
            raise MutationFailed(f"Role {role_id} does not exist")
        member = await self._resolve_member(user_id)
        try:
            await member.remove_roles(role, reason=reason)
        except discord.HTTPException as exc:
            raise MutationFailed(f"Failed to remove role {role_id} from {user_id}: {exc}") from exc

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_direct_message(self, user_id: int, text: str) -> None:
        user: discord.abc.Messageable | None = self.get_member(user_id)
        try:
            if user is None and self.client is not None:
                user = self.client.get_user(int(user_id)) or await self.client.fetch_user(int(user_id))
            if user is None:
                raise DeliveryFailed(f"User {user_id} could not be resolved")
            await user.send(text)
        except discord.HTTPException as exc:
            raise DeliveryFailed(f"Cannot DM user {user_id}: {exc}") from exc

    async def send_channel_message(self, channel_id: int, text: str | None = None, *, embed: Any = None) -> None:
        channel = self.guild.get_channel(int(channel_id))
        if not isinstance(channel, discord.abc.Messageable):
            raise DeliveryFailed(f"Channel {channel_id} not found or not a text channel")
        try:
            await channel.send(content=text, embed=embed)
        except discord.HTTPException as exc:
            raise DeliveryFailed(f"Cannot post to channel {channel_id}: {exc}") from exc


class DiscordAuditLogSource:
    """Reads recent audit entries from a guild. Requires View Audit Log."""

    def __init__(self, guild: discord.Guild, limit: int = 5) -> None:
        self.guild = guild
        self.limit = limit

    async def fetch_recent_entries(self, kind: EventKind, within: timedelta) -> Sequence[AuditEntry]:
        action = AUDIT_ACTIONS.get(kind)
        if action is None:
            return []

        oldest_allowed = datetime.now(timezone.utc) - within
        entries: List[AuditEntry] = []
        async for entry in self.guild.audit_logs(limit=self.limit, action=action):
            # Newest first; everything after the first stale entry is stale too
            if entry.created_at < oldest_allowed:
                break
            if entry.user is None:
                continue
            entries.append(
                AuditEntry(
                    id=entry.id,
                    kind=kind,
                    target_id=getattr(entry.target, "id", None),
                    moderator_id=entry.user.id,
                    created_at=entry.created_at,
                    reason=entry.reason,
                )
            )
        return entries
