"""Periodic lifting of expired mutes.

Timed mutes are persisted with their expiry, so a restart loses nothing: the
scheduler simply walks every guild on a fixed interval and asks its case
orchestrator to lift whatever has run out.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import discord

from modledger.util.logger import get_logger

logger = get_logger("unmute_scheduler")


class UnmuteScheduler:
    """
    Background task that lifts expired mutes in every guild.

    Args:
        per_guild_coro: Async callable lifting the expired mutes of one guild.
        get_interval: Callable returning the interval in seconds (called at start).
    """

    def __init__(
        self,
        per_guild_coro: Callable[[discord.Guild], Awaitable[Any]],
        get_interval: Callable[[], float],
    ) -> None:
        self._per_guild_coro = per_guild_coro
        self._get_interval = get_interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, guilds: list[discord.Guild]) -> None:
        """Lift expired mutes in each guild; one guild failing does not stop the rest."""
        for guild in guilds:
            try:
                await self._per_guild_coro(guild)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("[UNMUTE SCHEDULER] Failed to lift mutes in guild %s: %s", guild.id, exc)

    async def _run_loop(self, bot: discord.Bot, interval: float) -> None:
        logger.info("[UNMUTE SCHEDULER] Checking expired mutes every %.1fs", interval)
        try:
            while True:
                await self.run_once(list(bot.guilds))
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("[UNMUTE SCHEDULER] Cancelled")
            raise

    def start(self, bot: discord.Bot) -> None:
        """Start the background task if not already running."""
        if self.running:
            logger.debug("[UNMUTE SCHEDULER] Already running")
            return
        self._task = asyncio.create_task(self._run_loop(bot, self._get_interval()), name="modledger-unmute-scheduler")

    async def shutdown(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[UNMUTE SCHEDULER] Shutdown complete")
