"""
Best-effort delivery of moderation notices to the affected user.

The user is told by DM and/or by a mention in a configured channel. Failures
never escape this module; they only turn the returned ``delivered`` flag
False so the moderator can be told.
"""

from __future__ import annotations

import re
from typing import Any

from modledger.moderation.errors import DeliveryFailed
from modledger.platform.base import ModerationPlatform
from modledger.util.logger import get_logger

logger = get_logger("notification")

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")


def render_template(template: str, **values: Any) -> str:
    """Substitute ``{name}`` placeholders; unknown or None-valued ones are left verbatim.

    >>> render_template("Banned from {guild_name}: {reason} {oops}", guild_name="G", reason="spam")
    'Banned from G: spam {oops}'
    """

    def replace(match: re.Match[str]) -> str:
        value = values.get(match.group(1))
        return match.group(0) if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(replace, template)


class UserNotifier:
    """
    Sends a rendered notice through the enabled transports.

    Args:
        platform: Guild messaging surface.
        message_channel_id: Fallback channel where the user is mentioned.
    """

    def __init__(self, platform: ModerationPlatform, message_channel_id: int | None = None) -> None:
        self._platform = platform
        self.message_channel_id = message_channel_id

    async def notify(self, user_id: int, message: str, use_direct: bool, use_channel: bool) -> bool:
        """
        Attempt every enabled transport and report whether any succeeded.

        With both transports disabled nothing is sent and the result is True:
        no notice was required, so none went missing.
        """
        if not use_direct and not use_channel:
            return True

        delivered = False

        if use_direct:
            try:
                await self._platform.send_direct_message(user_id, message)
                delivered = True
            except DeliveryFailed as exc:
                logger.debug("[NOTIFICATION] DM to %s failed: %s", user_id, exc)
            except Exception as exc:
                logger.error("[NOTIFICATION] Unexpected error sending DM to %s: %s", user_id, exc)

        if use_channel and self.message_channel_id:
            try:
                await self._platform.send_channel_message(self.message_channel_id, f"<@!{user_id}> {message}")
                delivered = True
            except DeliveryFailed as exc:
                logger.warning("[NOTIFICATION] Channel notice for %s failed: %s", user_id, exc)
            except Exception as exc:
                logger.error(
                    "[NOTIFICATION] Unexpected error posting notice for %s in %s: %s",
                    user_id,
                    self.message_channel_id,
                    exc,
                )

        return delivered
