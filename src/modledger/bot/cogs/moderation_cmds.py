"""
Moderation cog: slash commands for disciplinary actions.

Every command defers ephemerally, checks the invoker's Discord permission,
then hands the work to the guild's case orchestrator and renders the
returned outcome. Hierarchy checks, case creation and user notification all
live in the orchestrator; nothing here touches the database.

Permissions
- warn: moderate_members
- mute, unmute: manage_roles
- kick: kick_members
- ban, softban, unban, forceban, massban: ban_members
"""

import re
from typing import List

import discord
from discord import Option
from discord.ext import commands

from modledger.datatypes.moderation_datatypes import CommandOutcome, MassbanOutcome, OutcomeStatus
from modledger.moderation.guild_moderation import guild_moderation
from modledger.util.discord_utils import format_duration, has_permissions, is_valid_snowflake, parse_delay
from modledger.util.logger import get_logger

logger = get_logger("moderation_cog")

NO_PERMISSION_REPLY = "You do not have permission to use this command."
NOT_NOTIFIED_SUFFIX = " (failed to message user)"

ID_SEPARATOR = re.compile(r"[\s,]+")


def render_outcome(outcome: CommandOutcome, success_text: str) -> str:
    """Turn a command outcome into the reply shown to the moderator."""
    if outcome.status is not OutcomeStatus.SUCCESS:
        return outcome.detail or "The command could not be completed."

    text = success_text
    if outcome.case is not None:
        text += f" (case #{outcome.case.case_number})"
    if not outcome.notified:
        text += NOT_NOTIFIED_SUFFIX
    if outcome.detail:
        text += f". {outcome.detail}"
    return text


def render_massban_outcome(outcome: MassbanOutcome) -> str:
    if outcome.status is OutcomeStatus.SUCCESS:
        text = f"Banned {len(outcome.batch.succeeded)} user(s) for: {outcome.reason}"
        if outcome.batch.failed:
            failed = ", ".join(str(user_id) for user_id in outcome.batch.failed)
            text += f"\nFailed to ban: {failed}"
        if outcome.batch.unrecorded:
            unrecorded = ", ".join(str(user_id) for user_id in outcome.batch.unrecorded)
            text += f"\nBanned but no case was recorded: {unrecorded}"
        return text
    return outcome.detail or "Massban cancelled."


def parse_user_ids(raw: str) -> tuple[List[int], List[str]]:
    """Split a list of ids separated by spaces or commas into valid ids and rejects."""
    valid: List[int] = []
    invalid: List[str] = []
    for token in ID_SEPARATOR.split(raw.strip()):
        if not token:
            continue
        token = token.strip("<@!>")
        if is_valid_snowflake(token):
            valid.append(int(token))
        else:
            invalid.append(token)
    return valid, invalid


class ModerationActionCog(commands.Cog):
    """Cog containing the punitive slash commands."""

    def __init__(self, discord_bot_instance):
        self.discord_bot_instance = discord_bot_instance
        logger.info("Moderation cog loaded")

    def _orchestrator(self, ctx: discord.ApplicationContext):
        return guild_moderation.get(ctx.guild, self.discord_bot_instance).orchestrator

    async def _check(self, ctx: discord.ApplicationContext, permission_name: str) -> bool:
        """Defer the response and verify the invoker holds ``permission_name``."""
        await ctx.defer(ephemeral=True)
        if ctx.guild is None:
            await ctx.send_followup("This command can only be used in a server.")
            return False
        if not has_permissions(ctx, **{permission_name: True}):
            await ctx.send_followup(NO_PERMISSION_REPLY)
            return False
        return True

    @commands.slash_command(name="warn", description="Warn a member.")
    async def warn(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to warn.", required=True),  # type: ignore
        reason: Option(str, "Reason for the warning.", required=True),  # type: ignore
    ) -> None:
        if not await self._check(ctx, "moderate_members"):
            return
        outcome = await self._orchestrator(ctx).warn(ctx.author, user, reason)
        await ctx.send_followup(render_outcome(outcome, f"Warned {user.mention}"))

    @commands.slash_command(name="mute", description="Mute a member, optionally for a limited time.")
    async def mute(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to mute.", required=True),  # type: ignore
        duration: Option(str, "How long, e.g. 30m, 2h, 1d12h. Empty for indefinite.", default=None),  # type: ignore
        reason: Option(str, "Reason for the mute.", default=None),  # type: ignore
    ) -> None:
        if not await self._check(ctx, "manage_roles"):
            return
        delay = parse_delay(duration)
        if duration and delay is None:
            await ctx.send_followup(f"`{duration}` is not a valid duration. Use something like `30m` or `2h`.")
            return

        outcome = await self._orchestrator(ctx).mute(ctx.author, user, delay, reason)
        if outcome.updated_existing:
            text = f"Updated the mute of {user.mention}"
        elif delay:
            text = f"Muted {user.mention} for {format_duration(int(delay.total_seconds()))}"
        else:
            text = f"Muted {user.mention}"
        await ctx.send_followup(render_outcome(outcome, text))

    @commands.slash_command(name="unmute", description="Unmute a member now or after a delay.")
    async def unmute(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to unmute.", required=True),  # type: ignore
        duration: Option(str, "Unmute after this delay instead of now, e.g. 1h.", default=None),  # type: ignore
        reason: Option(str, "Reason for the unmute.", default=None),  # type: ignore
    ) -> None:
        if not await self._check(ctx, "manage_roles"):
            return
        delay = parse_delay(duration)
        if duration and delay is None:
            await ctx.send_followup(f"`{duration}` is not a valid duration. Use something like `30m` or `2h`.")
            return

        outcome = await self._orchestrator(ctx).unmute(ctx.author, user, delay, reason)
        if delay:
            text = f"{user.mention} will be unmuted in {format_duration(int(delay.total_seconds()))}"
            # The timed marker is for this reply only
            outcome.detail = None
        else:
            text = f"Unmuted {user.mention}"
        await ctx.send_followup(render_outcome(outcome, text))

    @commands.slash_command(name="kick", description="Kick a member from the server.")
    async def kick(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to kick.", required=True),  # type: ignore
        reason: Option(str, "Reason for the kick.", default=None),  # type: ignore
    ) -> None:
        if not await self._check(ctx, "kick_members"):
            return
        outcome = await self._orchestrator(ctx).kick(ctx.author, user, reason)
        await ctx.send_followup(render_outcome(outcome, f"Kicked {user}"))

    @commands.slash_command(name="ban", description="Ban a member from the server.")
    async def ban(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to ban.", required=True),  # type: ignore
        reason: Option(str, "Reason for the ban.", default=None),  # type: ignore
    ) -> None:
        if not await self._check(ctx, "ban_members"):
            return
        outcome = await self._orchestrator(ctx).ban(ctx.author, user, reason)
        await ctx.send_followup(render_outcome(outcome, f"Banned {user}"))

    @commands.slash_command(name="softban", description="Ban and unban a member to purge their recent messages.")
    async def softban(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to softban.", required=True),  # type: ignore
        reason: Option(str, "Reason for the softban.", default=None),  # type: ignore
    ) -> None:
        if not await self._check(ctx, "ban_members"):
            return
        outcome = await self._orchestrator(ctx).softban(ctx.author, user, reason)
        await ctx.send_followup(render_outcome(outcome, f"Softbanned {user}"))

    @commands.slash_command(name="unban", description="Unban a user by id.")
    async def unban(
        self,
        ctx: discord.ApplicationContext,
        user_id: Option(str, "Id of the user to unban.", required=True),  # type: ignore
        reason: Option(str, "Reason for the unban.", default=None),  # type: ignore
    ) -> None:
        if not await self._check(ctx, "ban_members"):
            return
        if not is_valid_snowflake(user_id):
            await ctx.send_followup("That is not a valid user id.")
            return
        outcome = await self._orchestrator(ctx).unban(ctx.author, int(user_id), reason)
        await ctx.send_followup(render_outcome(outcome, f"Unbanned `{user_id}`"))

    @commands.slash_command(name="forceban", description="Ban a user by id, even if they are not in the server.")
    async def forceban(
        self,
        ctx: discord.ApplicationContext,
        user_id: Option(str, "Id of the user to ban.", required=True),  # type: ignore
        reason: Option(str, "Reason for the ban.", default=None),  # type: ignore
    ) -> None:
        if not await self._check(ctx, "ban_members"):
            return
        if not is_valid_snowflake(user_id):
            await ctx.send_followup("That is not a valid user id.")
            return
        outcome = await self._orchestrator(ctx).forceban(ctx.author, int(user_id), reason)
        await ctx.send_followup(render_outcome(outcome, f"Forcebanned `{user_id}`"))

    @commands.slash_command(name="massban", description="Ban many users by id. The reason is asked for afterwards.")
    async def massban(
        self,
        ctx: discord.ApplicationContext,
        user_ids: Option(str, "User ids separated by spaces or commas.", required=True),  # type: ignore
    ) -> None:
        if not await self._check(ctx, "ban_members"):
            return
        ids, invalid = parse_user_ids(user_ids)
        if invalid:
            await ctx.send_followup(f"Invalid user id(s): {', '.join(invalid)}")
            return

        channel = ctx.channel
        runner = guild_moderation.get(ctx.guild, self.discord_bot_instance).massban

        async def report(outcome: MassbanOutcome) -> None:
            await channel.send(f"{ctx.author.mention} {render_massban_outcome(outcome)}")

        rejected = runner.request_massban(ctx.author, ids, channel.id, report)
        if rejected is not None:
            await ctx.send_followup(render_massban_outcome(rejected))
            return
        await ctx.send_followup(
            f"About to ban {len(ids)} user(s). Reply in this channel with the reason within "
            f"{int(runner.confirmation_timeout)} seconds, or `cancel` to abort."
        )


def setup(discord_bot_instance):
    """Cog setup entry point."""
    discord_bot_instance.add_cog(ModerationActionCog(discord_bot_instance))
