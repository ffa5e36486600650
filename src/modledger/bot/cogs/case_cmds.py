"""
Case history cog: slash commands that read or annotate cases without
touching membership.
"""

import discord
from discord import Option
from discord.ext import commands

from modledger.bot.cogs.moderation_cmds import NO_PERMISSION_REPLY, render_outcome
from modledger.datatypes.case_datatypes import CaseType
from modledger.moderation.guild_moderation import guild_moderation
from modledger.ui.case_embed import build_case_embed, build_case_list_embed, build_mutes_embed
from modledger.util.discord_utils import has_permissions
from modledger.util.logger import get_logger

logger = get_logger("case_cog")

CASE_TYPE_CHOICES = [case_type.label for case_type in CaseType]


class CaseCog(commands.Cog):
    """Cog containing case history commands. All require moderate_members."""

    def __init__(self, discord_bot_instance):
        self.discord_bot_instance = discord_bot_instance
        logger.info("Case cog loaded")

    def _moderation(self, ctx: discord.ApplicationContext):
        return guild_moderation.get(ctx.guild, self.discord_bot_instance)

    async def _check(self, ctx: discord.ApplicationContext) -> bool:
        await ctx.defer(ephemeral=True)
        if ctx.guild is None:
            await ctx.send_followup("This command can only be used in a server.")
            return False
        if not has_permissions(ctx, moderate_members=True):
            await ctx.send_followup(NO_PERMISSION_REPLY)
            return False
        return True

    @commands.slash_command(name="note", description="Add a note to a user's history.")
    async def note(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user the note is about.", required=True),  # type: ignore
        body: Option(str, "The note.", required=True),  # type: ignore
    ) -> None:
        if not await self._check(ctx):
            return
        outcome = await self._moderation(ctx).orchestrator.note(ctx.author.id, user.id, body)
        await ctx.send_followup(render_outcome(outcome, f"Noted on {user.mention}"))

    @commands.slash_command(name="update", description="Append a note to an existing case.")
    async def update(
        self,
        ctx: discord.ApplicationContext,
        case_number: Option(int, "Number of the case.", required=True, min_value=1),  # type: ignore
        body: Option(str, "The note to append.", required=True),  # type: ignore
    ) -> None:
        if not await self._check(ctx):
            return
        outcome = await self._moderation(ctx).orchestrator.update_case(ctx.author.id, case_number, body)
        await ctx.send_followup(render_outcome(outcome, "Updated"))

    @commands.slash_command(name="addcase", description="Record an action taken outside the bot.")
    async def addcase(
        self,
        ctx: discord.ApplicationContext,
        case_type: Option(str, "Kind of case.", choices=CASE_TYPE_CHOICES, required=True),  # type: ignore
        user_id: Option(str, "Id of the user.", required=True),  # type: ignore
        reason: Option(str, "Reason for the case.", default=None),  # type: ignore
    ) -> None:
        if not await self._check(ctx):
            return
        outcome = await self._moderation(ctx).orchestrator.add_case(ctx.author, case_type, user_id, reason)
        await ctx.send_followup(render_outcome(outcome, f"Added {case_type.lower()} case for `{user_id}`"))

    @commands.slash_command(name="case", description="Show a case.")
    async def case(
        self,
        ctx: discord.ApplicationContext,
        case_number: Option(int, "Number of the case.", required=True, min_value=1),  # type: ignore
    ) -> None:
        if not await self._check(ctx):
            return
        found = await self._moderation(ctx).orchestrator.cases.find_by_case_number(case_number)
        if found is None:
            await ctx.send_followup("Case not found")
            return
        await ctx.send_followup(embed=build_case_embed(found))

    @commands.slash_command(name="cases", description="List a user's cases.")
    async def cases(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to look up.", required=True),  # type: ignore
    ) -> None:
        if not await self._check(ctx):
            return
        history = await self._moderation(ctx).orchestrator.cases.find_by_user_id(user.id)
        await ctx.send_followup(embed=build_case_list_embed(user.id, history))

    @commands.slash_command(name="mutes", description="List currently muted members.")
    async def mutes(self, ctx: discord.ApplicationContext) -> None:
        if not await self._check(ctx):
            return
        live = await self._moderation(ctx).orchestrator.mutes.get_live_mutes()
        await ctx.send_followup(embed=build_mutes_embed(live))


def setup(discord_bot_instance):
    discord_bot_instance.add_cog(CaseCog(discord_bot_instance))
