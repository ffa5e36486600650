"""Event listener cog for Modledger.

Feeds gateway membership events into the per-guild case orchestrator,
routes plain messages to pending confirmations, starts the unmute scheduler
and handles application command errors.
"""

import discord
from discord.ext import commands

from modledger.configuration.app_configuration import app_config
from modledger.datatypes.moderation_datatypes import EventKind, ModerationEvent
from modledger.moderation.guild_moderation import guild_moderation
from modledger.scheduler.unmute_scheduler import UnmuteScheduler
from modledger.util.logger import get_logger

logger = get_logger("events_listener_cog")

GENERIC_ERROR_REPLY = "Something went wrong while running this command."


class EventsListenerCog(commands.Cog):
    """Cog containing membership listeners, lifecycle and command error handlers."""

    def __init__(self, discord_bot_instance):
        """Initialize the events listener cog.

        Parameters
        ----------
        discord_bot_instance:
            The Discord bot instance to attach this cog to.
        """
        self.bot = discord_bot_instance
        self.unmute_scheduler = UnmuteScheduler(
            self._lift_expired_mutes,
            lambda: app_config.moderation.unmute_check_interval,
        )
        logger.info("Events listener cog loaded")

    async def _lift_expired_mutes(self, guild: discord.Guild) -> None:
        await guild_moderation.get(guild, self.bot).orchestrator.lift_expired_mutes()

    async def _dispatch(self, guild: discord.Guild, kind: EventKind, user: discord.abc.User) -> None:
        event = ModerationEvent(kind=kind, user_id=user.id, username=str(user))
        orchestrator = guild_moderation.get(guild, self.bot).orchestrator
        try:
            await orchestrator.handle_event(event)
        except Exception:
            logger.exception("[EVENTS] Failed to process %s of %s in guild %s", kind.value, user.id, guild.id)

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self):
        """Log the connection and start the unmute scheduler."""
        if self.bot.user:
            logger.info("Bot connected as %s (ID: %s)", self.bot.user, self.bot.user.id)
        else:
            logger.warning("Bot partially connected, but user information not yet available.")

        logger.info("--==--==--==--==--==--==--==--==--==--==--==--==--==--==--==--==--")
        self.unmute_scheduler.start(self.bot)

    @commands.Cog.listener(name="on_member_ban")
    async def on_member_ban(self, guild: discord.Guild, user: discord.User | discord.Member):
        await self._dispatch(guild, EventKind.BAN, user)

    @commands.Cog.listener(name="on_member_unban")
    async def on_member_unban(self, guild: discord.Guild, user: discord.User):
        await self._dispatch(guild, EventKind.UNBAN, user)

    @commands.Cog.listener(name="on_member_remove")
    async def on_member_remove(self, member: discord.Member):
        # Leaves, kicks and bans all arrive here; only audited kicks become cases
        await self._dispatch(member.guild, EventKind.KICK, member)

    @commands.Cog.listener(name="on_member_join")
    async def on_member_join(self, member: discord.Member):
        await self._dispatch(member.guild, EventKind.MEMBER_JOIN, member)

    @commands.Cog.listener(name="on_guild_remove")
    async def on_guild_remove(self, guild: discord.Guild):
        guild_moderation.forget(guild.id)

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message):
        """Offer moderator replies to any pending confirmation in the channel."""
        if message.author.bot or message.guild is None:
            return
        await guild_moderation.confirmations.resolve(message.channel.id, message.author.id, message.content)

    @commands.Cog.listener(name="on_application_command_error")
    async def on_application_command_error(self, application_context: discord.ApplicationContext, error: Exception):
        """Log unexpected command errors with traceback and reply generically."""
        if isinstance(error, commands.CommandNotFound):
            return

        command_name = getattr(application_context.command, "name", "<unknown>")
        logger.error("[EVENTS] Error in command '%s': %s", command_name, error, exc_info=error)

        try:
            await application_context.respond(GENERIC_ERROR_REPLY, ephemeral=True)
        except discord.InteractionResponded:
            await application_context.followup.send(GENERIC_ERROR_REPLY, ephemeral=True)

    def cog_unload(self):
        self.bot.loop.create_task(self.unmute_scheduler.shutdown())


def setup(discord_bot_instance):
    """Register the EventsListenerCog with the bot."""
    discord_bot_instance.add_cog(EventsListenerCog(discord_bot_instance))
