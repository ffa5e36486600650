"""
discord_utils.py
================

Low-level Discord helpers for Modledger.

Stateless functions for permission checks, duration parsing and formatting,
and id validation. Nothing here holds state or talks to the database.
"""

import re
from datetime import timedelta
from typing import Any

import discord

from modledger.util.logger import get_logger

logger = get_logger("discord_utils")

# Human-friendly label for a permanent duration
PERMANENT_DURATION = "Till the end of time"

SNOWFLAKE_PATTERN = re.compile(r"^[0-9]{17,20}$")

DELAY_PATTERN = re.compile(r"^(?:(\d+)\s*([dhms]))+$", re.IGNORECASE)
DELAY_PART_PATTERN = re.compile(r"(\d+)\s*([dhms])", re.IGNORECASE)
DELAY_UNIT_SECONDS = {"d": 86400, "h": 3600, "m": 60, "s": 1}


def has_permissions(application_context: discord.ApplicationContext, **required_permissions) -> bool:
    """
    Check if the command issuer has all specified permissions in the guild.

    Args:
        application_context (discord.ApplicationContext): The command context.
        **required_permissions: Permission flags to check.

    Returns:
        bool: True if all permissions are present, False otherwise.
    """
    if not isinstance(application_context.author, discord.Member):
        return False
    return all(
        getattr(application_context.author.guild_permissions, permission_name, False)
        for permission_name in required_permissions
    )


def can_act_on(actor: Any, target: Any) -> bool:
    """
    Decide whether ``actor`` may moderate ``target``.

    The guild owner may act on anyone but themselves; nobody may act on the
    owner or on themselves; otherwise the actor's top role must be strictly
    above the target's.

    Args:
        actor: Member issuing the command.
        target: Member the command targets.

    Returns:
        bool: True if the action is allowed.
    """
    if actor.id == target.id:
        return False

    guild = getattr(actor, "guild", None)
    owner_id = getattr(guild, "owner_id", None)
    if owner_id is not None:
        if target.id == owner_id:
            return False
        if actor.id == owner_id:
            return True

    actor_role = getattr(actor, "top_role", None)
    target_role = getattr(target, "top_role", None)
    if actor_role is None or target_role is None:
        return False
    return actor_role > target_role


def is_valid_snowflake(value: Any) -> bool:
    """Return True if ``value`` looks like a Discord id (17-20 digits)."""
    return bool(SNOWFLAKE_PATTERN.match(str(value).strip()))


def format_duration(seconds: int) -> str:
    """
    Convert a duration in seconds to a human-readable string.

    Args:
        seconds (int): Duration in seconds.

    Returns:
        str: Human-readable duration string.
    """
    if seconds == 0:
        return PERMANENT_DURATION
    elif seconds < 60:
        return f"{seconds} secs"
    elif seconds < 3600:
        mins = seconds // 60
        return f"{mins} mins"
    elif seconds < 86400:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours != 1 else ''}"
    else:
        days = seconds // 86400
        return f"{days} day{'s' if days != 1 else ''}"


def parse_delay(value: str | None) -> timedelta | None:
    """
    Parse a compact delay string such as ``"2h30m"`` or ``"1d"``.

    Returns:
        timedelta | None: The parsed delay, or None if ``value`` is empty or
        not a delay string (callers treat it as part of the reason then).
    """
    if not value:
        return None
    text = value.strip()
    if not DELAY_PATTERN.match(text):
        return None

    seconds = sum(
        int(amount) * DELAY_UNIT_SECONDS[unit.lower()]
        for amount, unit in DELAY_PART_PATTERN.findall(text)
    )
    return timedelta(seconds=seconds) if seconds > 0 else None
