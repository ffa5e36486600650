"""
Embeds for cases posted to the case log channel and shown by /case.
"""

from typing import List

import discord

from modledger.datatypes.case_datatypes import Case, CaseType, MuteState
from modledger.util.logger import get_logger

logger = get_logger("case_embed")

# Max notes shown on a single case embed
MAX_NOTES_SHOWN = 10
# Max cases listed by /cases before truncating
MAX_CASES_LISTED = 20


CASE_EMOJIS = {
    CaseType.NOTE: "📝",
    CaseType.WARN: "⚠️",
    CaseType.MUTE: "🔇",
    CaseType.UNMUTE: "🔊",
    CaseType.KICK: "👢",
    CaseType.BAN: "🔨",
    CaseType.UNBAN: "🔓",
    CaseType.SOFTBAN: "🧹",
}

CASE_COLORS = {
    CaseType.NOTE: discord.Color.light_grey(),
    CaseType.WARN: discord.Color.gold(),
    CaseType.MUTE: discord.Color.orange(),
    CaseType.UNMUTE: discord.Color.green(),
    CaseType.KICK: discord.Color.red(),
    CaseType.BAN: discord.Color.dark_red(),
    CaseType.UNBAN: discord.Color.green(),
    CaseType.SOFTBAN: discord.Color.red(),
}


def _user(user_id: int | None) -> str:
    return f"<@{user_id}> (`{user_id}`)" if user_id else "Unknown"


def build_case_embed(case: Case) -> discord.Embed:
    """
    Render a single case with its notes.

    Args:
        case: The case to render.

    Returns:
        discord.Embed: Embed titled with the case number and type.
    """
    emoji = CASE_EMOJIS.get(case.type, "⚙️")
    embed = discord.Embed(
        title=f"{emoji} Case #{case.case_number} | {case.type.label}",
        color=CASE_COLORS.get(case.type, discord.Color.blurple()),
        timestamp=case.created_at,
    )
    embed.add_field(name="User", value=_user(case.user_id), inline=True)
    embed.add_field(name="Moderator", value=_user(case.moderator_id), inline=True)
    embed.add_field(name="Reason", value=case.reason or "No reason given", inline=False)

    if case.related_case_id is not None:
        embed.add_field(name="Related case", value=f"id {case.related_case_id}", inline=True)

    for note in case.notes[:MAX_NOTES_SHOWN]:
        embed.add_field(
            name=f"Note by {note.moderator_id}",
            value=f"{note.body}\n<t:{int(note.created_at.timestamp())}:R>",
            inline=False,
        )
    if len(case.notes) > MAX_NOTES_SHOWN:
        embed.add_field(name="…", value=f"{len(case.notes) - MAX_NOTES_SHOWN} more note(s)", inline=False)

    footer = "Automatic case" if case.automatic else "Manual case"
    if case.audit_log_id is not None:
        footer += f" | audit entry {case.audit_log_id}"
    embed.set_footer(text=footer)
    return embed


def build_case_list_embed(user_id: int, cases: List[Case]) -> discord.Embed:
    """Summarise a user's history, newest first."""
    embed = discord.Embed(
        title=f"Cases for {user_id}",
        color=discord.Color.blurple(),
        description=None if cases else "No cases on record.",
    )
    for case in list(reversed(cases))[:MAX_CASES_LISTED]:
        when = f"<t:{int(case.created_at.timestamp())}:d>"
        embed.add_field(
            name=f"#{case.case_number} {CASE_EMOJIS.get(case.type, '')} {case.type.label}",
            value=f"{case.reason or 'No reason given'} ({when})",
            inline=False,
        )
    if len(cases) > MAX_CASES_LISTED:
        embed.set_footer(text=f"Showing {MAX_CASES_LISTED} of {len(cases)} cases")
    return embed


def build_mutes_embed(mutes: List[MuteState]) -> discord.Embed:
    """List live mutes with their expiry."""
    embed = discord.Embed(title="Muted members", color=discord.Color.orange())
    if not mutes:
        embed.description = "Nobody is muted."
        return embed

    lines = []
    for mute in mutes:
        expiry = f"<t:{int(mute.expires_at.timestamp())}:R>" if mute.expires_at else "never"
        case = f"case id {mute.case_id}" if mute.case_id is not None else "no case"
        lines.append(f"<@{mute.user_id}>: expires {expiry} ({case})")
    embed.description = "\n".join(lines)
    return embed
