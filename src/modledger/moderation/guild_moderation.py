"""
Per-guild wiring of the moderation components.

Each guild gets exactly one suppressor, activity log, orchestrator and
massban runner for the lifetime of the process; the echo suppression only
works if the command path and the gateway listener share the same ledger.
The confirmation registry is shared across guilds since its keys already
include the channel.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import discord

from modledger.configuration.app_configuration import app_config
from modledger.configuration.moderation_settings import ModerationSettings
from modledger.datatypes.case_datatypes import Case
from modledger.moderation.activity_log import ActivityLog
from modledger.moderation.audit_correlator import AuditCorrelator
from modledger.moderation.batch_runner import MassbanRunner
from modledger.moderation.case_orchestrator import CaseOrchestrator
from modledger.moderation.confirmation import ConfirmationRegistry
from modledger.moderation.event_suppressor import SelfActionSuppressor
from modledger.platform.discord_platform import DiscordAuditLogSource, DiscordPlatform
from modledger.repositories.case_repo import GuildCases
from modledger.repositories.mute_repo import GuildMutes
from modledger.ui.case_embed import build_case_embed
from modledger.util.logger import get_logger

logger = get_logger("guild_moderation")


@dataclass(slots=True)
class GuildModeration:
    """The moderation components bound to one guild."""

    guild_id: int
    platform: DiscordPlatform
    orchestrator: CaseOrchestrator
    massban: MassbanRunner

    @property
    def suppressor(self) -> SelfActionSuppressor:
        return self.orchestrator.suppressor


class GuildModerationRegistry:
    """Builds and caches one :class:`GuildModeration` per guild."""

    def __init__(self, settings: ModerationSettings | None = None) -> None:
        self._settings = settings
        self._guilds: Dict[int, GuildModeration] = {}
        self.confirmations = ConfirmationRegistry()

    @property
    def settings(self) -> ModerationSettings:
        return self._settings or app_config.moderation

    def get(self, guild: discord.Guild, client: discord.Client | None = None) -> GuildModeration:
        existing = self._guilds.get(guild.id)
        if existing is not None:
            return existing

        settings = self.settings
        platform = DiscordPlatform(guild, client)

        async def post_case(case: Case) -> None:
            channel_id = settings.case_log_channel
            if channel_id:
                await platform.send_channel_message(channel_id, embed=build_case_embed(case))

        orchestrator = CaseOrchestrator(
            platform=platform,
            cases=GuildCases(guild.id),
            mutes=GuildMutes(guild.id),
            correlator=AuditCorrelator(DiscordAuditLogSource(guild), window_seconds=settings.audit_window),
            activity_log=ActivityLog(platform, settings.log_channel),
            settings=settings,
            suppressor=SelfActionSuppressor(default_ttl=settings.suppression_ttl),
            case_poster=post_case,
        )
        massban = MassbanRunner(
            orchestrator,
            confirmations=self.confirmations,
            limit=settings.massban_limit,
            suppression_ttl=settings.massban_suppression_ttl,
            confirmation_timeout=settings.confirmation_timeout,
        )
        moderation = GuildModeration(guild_id=guild.id, platform=platform, orchestrator=orchestrator, massban=massban)
        self._guilds[guild.id] = moderation
        logger.debug("[GUILD MODERATION] Initialised moderation components for guild %s", guild.id)
        return moderation

    def forget(self, guild_id: int) -> None:
        """Drop a guild's components, e.g. after the bot left it."""
        self._guilds.pop(guild_id, None)

    async def shutdown(self) -> None:
        await self.confirmations.shutdown()
        self._guilds.clear()


# Module-level singleton shared by the cogs
guild_moderation = GuildModerationRegistry()
