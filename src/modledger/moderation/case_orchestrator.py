"""
Case orchestration for one guild.

Every moderation action ends up here, whether a moderator ran a command or
the gateway reported a ban/unban/kick done through Discord's own UI. The
orchestrator decides whether the action opens a new case, updates an open
one, or is an echo of the bot's own mutation that must be dropped.

Ordering rules
- Suppressions are registered before the mutation call is issued, since the
  gateway echo can arrive before the HTTP response does.
- Kick and ban notify the user before the mutation (a removed user may no
  longer be reachable); warn and mute notify after it.
- A failed mutation never produces a case.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict

from modledger.configuration.moderation_settings import ModerationSettings
from modledger.datatypes.case_datatypes import Case, CaseType
from modledger.datatypes.moderation_datatypes import (
    CommandOutcome,
    EventKind,
    ModerationEvent,
    OutcomeStatus,
    SUPPRESSIBLE_EVENTS,
)
from modledger.moderation.activity_log import ActivityLog, LogType
from modledger.moderation.audit_correlator import AuditCorrelator
from modledger.moderation.errors import DeliveryFailed, MutationFailed
from modledger.moderation.event_suppressor import SelfActionSuppressor
from modledger.moderation.notification import UserNotifier, render_template
from modledger.platform.base import CaseStore, ModerationPlatform, MuteStore
from modledger.util.discord_utils import can_act_on, format_duration, is_valid_snowflake
from modledger.util.logger import get_logger

logger = get_logger("case_orchestrator")

AuthorityCheck = Callable[[Any, Any], bool]
CasePoster = Callable[[Case], Awaitable[None]]

EVENT_CASE_TYPES: Dict[EventKind, CaseType] = {
    EventKind.BAN: CaseType.BAN,
    EventKind.UNBAN: CaseType.UNBAN,
    EventKind.KICK: CaseType.KICK,
}

EVENT_LOG_TYPES: Dict[EventKind, LogType] = {
    EventKind.BAN: LogType.MEMBER_BAN,
    EventKind.UNBAN: LogType.MEMBER_UNBAN,
    EventKind.KICK: LogType.MEMBER_KICK,
}


class CaseOrchestrator:
    """
    Turns observed events and moderator commands into cases.

    Args:
        platform: Guild mutation and messaging surface.
        cases: Case store for this guild.
        mutes: Mute store for this guild.
        correlator: Audit log attribution for observed events.
        activity_log: Server activity log sink.
        settings: Moderation settings (templates, channels, TTLs).
        suppressor: Ledger of the bot's own pending echoes.
        notifier: User notification transport; built from ``platform`` if omitted.
        authority: ``(actor, target) -> bool`` capability check.
        case_poster: Posts newly created cases to the case log channel.
        clock: Aware UTC time source for mute expiry.
    """

    def __init__(
        self,
        platform: ModerationPlatform,
        cases: CaseStore,
        mutes: MuteStore,
        correlator: AuditCorrelator,
        activity_log: ActivityLog,
        settings: ModerationSettings | None = None,
        suppressor: SelfActionSuppressor | None = None,
        notifier: UserNotifier | None = None,
        authority: AuthorityCheck = can_act_on,
        case_poster: CasePoster | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.platform = platform
        self.cases = cases
        self.mutes = mutes
        self.correlator = correlator
        self.activity_log = activity_log
        self.settings = settings or ModerationSettings()
        self.suppressor = suppressor or SelfActionSuppressor(default_ttl=self.settings.suppression_ttl)
        self.notifier = notifier or UserNotifier(platform, self.settings.message_channel)
        self.authority = authority
        self.case_poster = case_poster
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._user_locks: Dict[int, asyncio.Lock] = {}

    def _lock_for(self, user_id: int) -> asyncio.Lock:
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        return lock

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def check_authority(self, actor: Any, target: Any) -> bool:
        """Return True if ``actor`` may moderate ``target``."""
        try:
            return bool(self.authority(actor, target))
        except Exception as exc:
            logger.error("[CASE ORCHESTRATOR] Authority check failed for %s -> %s: %s", actor.id, target.id, exc)
            return False

    def suppress(self, kind: EventKind, user_id: int, log_type: LogType, ttl: float | None = None) -> None:
        """Mark the echo of an upcoming mutation in both the event and the activity log ledgers."""
        self.activity_log.ignore_next(log_type, user_id, ttl)
        self.suppressor.register(kind, user_id, ttl)

    async def record_case(
        self,
        case_type: CaseType,
        user_id: int,
        moderator_id: int | None = None,
        reason: str | None = None,
        *,
        automatic: bool = False,
        audit_log_id: int | None = None,
        related_case_id: int | None = None,
        post_in_case_log: bool = True,
    ) -> Case:
        """Create a case and post it to the case log channel."""
        case = await self.cases.create_case(
            type=case_type,
            user_id=user_id,
            moderator_id=moderator_id,
            reason=reason,
            automatic=automatic,
            audit_log_id=audit_log_id,
            related_case_id=related_case_id,
        )
        logger.info(
            "[CASE ORCHESTRATOR] Created %s case #%d for user %s in guild %s (automatic=%s)",
            case_type.value,
            case.case_number,
            user_id,
            self.platform.guild_id,
            automatic,
        )
        if post_in_case_log and self.case_poster is not None:
            try:
                await self.case_poster(case)
            except DeliveryFailed as exc:
                logger.warning("[CASE ORCHESTRATOR] Could not post case #%d: %s", case.case_number, exc)
        return case

    async def _notify(self, user_id: int, action: str, template_name: str, reason: str, duration: timedelta | None = None) -> bool:
        message = render_template(
            self.settings.template(template_name),
            guild_name=self.platform.guild_name,
            reason=reason,
            time=format_duration(int(duration.total_seconds())) if duration else None,
        )
        return await self.notifier.notify(
            user_id,
            message,
            use_direct=self.settings.dm_enabled(action),
            use_channel=self.settings.channel_message_enabled(action),
        )

    # ------------------------------------------------------------------
    # Observed events
    # ------------------------------------------------------------------

    async def handle_event(self, event: ModerationEvent) -> Case | None:
        """
        Process a ban, unban, kick or join reported by the gateway.

        Returns:
            Case | None: The automatic case created, or None when the event
            was the bot's own echo, a plain leave, or a join.
        """
        if event.kind is EventKind.MEMBER_JOIN:
            await self.alert_on_rejoin(event.user_id)
            return None

        if event.kind not in SUPPRESSIBLE_EVENTS:
            return None

        if self.suppressor.is_suppressed(event.kind, event.user_id):
            self.suppressor.consume(event.kind, event.user_id)
            # The command writes its own entry; the echo's mark goes with the echo
            self.activity_log.consume_ignore(EVENT_LOG_TYPES[event.kind], event.user_id)
            logger.debug(
                "[CASE ORCHESTRATOR] Dropped echo of own %s for user %s",
                event.kind.value,
                event.user_id,
            )
            return None

        match = await self.correlator.correlate(event.kind, event.user_id)

        # A member leaving on their own looks exactly like a kick on the gateway
        if event.kind is EventKind.KICK and match is None:
            return None

        case = await self.record_case(
            EVENT_CASE_TYPES[event.kind],
            event.user_id,
            moderator_id=match.moderator_id if match else None,
            reason=match.reason if match else None,
            automatic=True,
            audit_log_id=match.audit_entry_id if match else None,
        )
        await self.activity_log.record(
            EVENT_LOG_TYPES[event.kind],
            {"mod": match.moderator_id if match else None, "user": event.user_id},
            ignore_id=event.user_id,
        )
        return case

    async def alert_on_rejoin(self, user_id: int) -> bool:
        """Post an alert when a member with prior cases joins. Returns True if an alert was sent."""
        channel_id = self.settings.alert_channel
        if not self.settings.alert_on_rejoin or not channel_id:
            return False

        prior_cases = await self.cases.find_by_user_id(user_id)
        if not prior_cases:
            return False

        try:
            await self.platform.send_channel_message(
                channel_id,
                f"<@!{user_id}> (`{user_id}`) joined with {len(prior_cases)} prior record(s)",
            )
        except DeliveryFailed as exc:
            logger.warning("[CASE ORCHESTRATOR] Could not post rejoin alert for %s: %s", user_id, exc)
            return False

        await self.activity_log.record(
            LogType.MEMBER_JOIN_WITH_PRIOR_RECORDS,
            {"user": user_id, "count": len(prior_cases)},
        )
        return True

    # ------------------------------------------------------------------
    # Case-only commands
    # ------------------------------------------------------------------

    async def note(self, actor_id: int, user_id: int, body: str) -> CommandOutcome:
        """Add a NOTE case to a user's history."""
        case = await self.record_case(CaseType.NOTE, user_id, actor_id, body)
        return CommandOutcome(status=OutcomeStatus.SUCCESS, case=case)

    async def update_case(self, actor_id: int, case_number: int, body: str) -> CommandOutcome:
        """Append a note to an existing case."""
        case = await self.cases.find_by_case_number(case_number)
        if case is None:
            return CommandOutcome.failed("Case not found")

        await self.cases.add_note(case.id, actor_id, body)
        await self.activity_log.record(
            LogType.CASE_UPDATE,
            {"mod": actor_id, "case_number": case.case_number},
        )
        return CommandOutcome(
            status=OutcomeStatus.SUCCESS,
            case=await self.cases.get_case(case.id),
            updated_existing=True,
        )

    async def add_case(self, actor: Any, case_type: CaseType | str, user_id: int | str, reason: str | None = None) -> CommandOutcome:
        """Manually record a case for an action taken outside the bot."""
        if not is_valid_snowflake(user_id):
            return CommandOutcome.failed("Invalid user id")
        user_id = int(user_id)

        member = self.platform.get_member(user_id)
        if member is not None and not self.check_authority(actor, member):
            return CommandOutcome.denied("Cannot add case on this user: insufficient permissions")

        if isinstance(case_type, str):
            parsed = CaseType.parse(case_type)
            if parsed is None:
                return CommandOutcome.failed("Invalid case type")
            case_type = parsed

        case = await self.record_case(case_type, user_id, actor.id, reason)
        await self.activity_log.record(
            LogType.CASE_CREATE,
            {"mod": actor.id, "user": user_id, "case_number": case.case_number, "case_type": case_type.value.upper()},
        )
        return CommandOutcome(status=OutcomeStatus.SUCCESS, case=case)

    # ------------------------------------------------------------------
    # Punitive commands
    # ------------------------------------------------------------------

    async def warn(self, actor: Any, target: Any, reason: str) -> CommandOutcome:
        """Warn a member: case first, then the notice."""
        if not self.check_authority(actor, target):
            return CommandOutcome.denied("Cannot warn: insufficient permissions")

        case = await self.record_case(CaseType.WARN, target.id, actor.id, reason)
        notified = await self._notify(target.id, "warn", "warn_message", reason) if reason else True
        await self.activity_log.record(LogType.MEMBER_WARN, {"mod": actor.id, "user": target.id})
        return CommandOutcome(status=OutcomeStatus.SUCCESS, notified=notified, case=case)

    async def mute(self, actor: Any, target: Any, duration: timedelta | None = None, reason: str | None = None) -> CommandOutcome:
        """
        Mute a member, or extend an existing mute.

        A live mute is updated in place: its case gets the reason as a note
        and no second Mute case is opened. Only fresh mutes notify the user.
        """
        role_id = self.settings.mute_role
        if not role_id:
            return CommandOutcome.failed("Cannot mute: no mute role specified")
        if not self.check_authority(actor, target):
            return CommandOutcome.denied("Cannot mute: insufficient permissions")

        user_id = target.id
        expires_at = self._clock() + duration if duration else None

        async with self._lock_for(user_id):
            existing = await self.mutes.find_live_mute(user_id)

            try:
                await self.platform.add_role(user_id, role_id, reason=reason)
            except MutationFailed as exc:
                logger.warning("[CASE ORCHESTRATOR] Mute of %s failed: %s", user_id, exc)
                return CommandOutcome.failed("Could not mute the user")

            await self.mutes.upsert_mute(user_id, expires_at)

            if existing is not None and existing.case_id is not None:
                if reason:
                    await self.cases.add_note(existing.case_id, actor.id, reason)
                case = await self.cases.get_case(existing.case_id)
                updated_existing = True
            else:
                case = await self.record_case(CaseType.MUTE, user_id, actor.id, reason)
                await self.mutes.set_case_id(user_id, case.id)
                updated_existing = False

        notified = True
        if reason and not updated_existing:
            template = "timed_mute_message" if duration else "mute_message"
            notified = await self._notify(user_id, "mute", template, reason, duration)

        await self.activity_log.record(LogType.MEMBER_MUTE, {"mod": actor.id, "user": user_id})
        return CommandOutcome(
            status=OutcomeStatus.SUCCESS,
            notified=notified,
            case=case,
            updated_existing=updated_existing,
        )

    async def unmute(self, actor: Any, target: Any, duration: timedelta | None = None, reason: str | None = None) -> CommandOutcome:
        """
        Lift a mute now, or reschedule it to end after ``duration``.

        The UNMUTE case references the Mute case it ends.
        """
        role_id = self.settings.mute_role
        if not role_id:
            return CommandOutcome.failed("Cannot unmute: no mute role specified")
        if not self.check_authority(actor, target):
            return CommandOutcome.denied("Cannot unmute: insufficient permissions")

        user_id = target.id
        async with self._lock_for(user_id):
            mute = await self.mutes.find_live_mute(user_id)
            if mute is None:
                return CommandOutcome.failed("Cannot unmute: member is not muted")

            if duration:
                await self.mutes.upsert_mute(user_id, self._clock() + duration)
                reason = f"Timed unmute: {reason}" if reason else "Timed unmute"
            else:
                try:
                    await self.platform.remove_role(user_id, role_id, reason=reason)
                except MutationFailed as exc:
                    logger.warning("[CASE ORCHESTRATOR] Unmute of %s failed: %s", user_id, exc)
                    return CommandOutcome.failed("Could not unmute the user")
                await self.mutes.clear_mute(user_id)

            case = await self.record_case(
                CaseType.UNMUTE,
                user_id,
                actor.id,
                reason,
                related_case_id=mute.case_id,
            )

        await self.activity_log.record(LogType.MEMBER_UNMUTE, {"mod": actor.id, "user": user_id})
        return CommandOutcome(status=OutcomeStatus.SUCCESS, case=case, detail="timed" if duration else None)

    async def lift_expired_mutes(self) -> list[int]:
        """
        Remove the mute role from every member whose mute has run out.

        A member who left the server has nothing to lift, so the row is just
        cleared. A failed role removal keeps the row for the next pass.

        Returns:
            list[int]: User ids whose mute state was cleared.
        """
        role_id = self.settings.mute_role
        lifted: list[int] = []
        for mute in await self.mutes.get_expired(self._clock()):
            user_id = mute.user_id
            async with self._lock_for(user_id):
                # Re-check under the lock; a concurrent /mute may have extended it
                if await self.mutes.find_live_mute(user_id) is not None:
                    continue

                if role_id and self.platform.get_member(user_id) is not None:
                    try:
                        await self.platform.remove_role(user_id, role_id, reason="Mute expired")
                    except MutationFailed as exc:
                        logger.warning("[CASE ORCHESTRATOR] Could not lift expired mute of %s: %s", user_id, exc)
                        continue

                await self.mutes.clear_mute(user_id)
            lifted.append(user_id)
            await self.activity_log.record(LogType.MEMBER_TIMED_UNMUTE, {"user": user_id})

        if lifted:
            logger.info("[CASE ORCHESTRATOR] Lifted %d expired mute(s) in guild %s", len(lifted), self.platform.guild_id)
        return lifted

    async def kick(self, actor: Any, target: Any, reason: str | None = None) -> CommandOutcome:
        """Kick a member. The notice goes out before the kick."""
        if not self.check_authority(actor, target):
            return CommandOutcome.denied("Cannot kick: insufficient permissions")

        user_id = target.id
        notified = True
        if reason:
            notified = await self._notify(user_id, "kick", "kick_message", reason)

        self.suppress(EventKind.KICK, user_id, LogType.MEMBER_KICK)
        try:
            await self.platform.kick(user_id, reason=reason)
        except MutationFailed as exc:
            logger.warning("[CASE ORCHESTRATOR] Kick of %s failed: %s", user_id, exc)
            return CommandOutcome.failed("Failed to kick member")

        case = await self.record_case(CaseType.KICK, user_id, actor.id, reason)
        await self.activity_log.record(LogType.MEMBER_KICK, {"mod": actor.id, "user": user_id})
        return CommandOutcome(status=OutcomeStatus.SUCCESS, notified=notified, case=case)

    async def ban(self, actor: Any, target: Any, reason: str | None = None) -> CommandOutcome:
        """Ban a member. The notice goes out before the ban."""
        if not self.check_authority(actor, target):
            return CommandOutcome.denied("Cannot ban: insufficient permissions")

        user_id = target.id
        notified = True
        if reason:
            notified = await self._notify(user_id, "ban", "ban_message", reason)

        self.suppress(EventKind.BAN, user_id, LogType.MEMBER_BAN)
        try:
            await self.platform.ban(user_id, reason=reason)
        except MutationFailed as exc:
            logger.warning("[CASE ORCHESTRATOR] Ban of %s failed: %s", user_id, exc)
            return CommandOutcome.failed("Failed to ban member")

        case = await self.record_case(CaseType.BAN, user_id, actor.id, reason)
        await self.activity_log.record(LogType.MEMBER_BAN, {"mod": actor.id, "user": user_id})
        return CommandOutcome(status=OutcomeStatus.SUCCESS, notified=notified, case=case)

    async def forceban(self, actor: Any, user_id: int, reason: str | None = None) -> CommandOutcome:
        """Ban by id, including users who are not in the server."""
        member = self.platform.get_member(user_id)
        if member is not None and not self.check_authority(actor, member):
            return CommandOutcome.denied("Cannot forceban this user: insufficient permissions")

        self.suppress(EventKind.BAN, user_id, LogType.MEMBER_BAN)
        try:
            await self.platform.ban(user_id, reason=reason)
        except MutationFailed as exc:
            logger.warning("[CASE ORCHESTRATOR] Forceban of %s failed: %s", user_id, exc)
            return CommandOutcome.failed("Failed to forceban member")

        case = await self.record_case(CaseType.BAN, user_id, actor.id, reason)
        await self.activity_log.record(LogType.MEMBER_FORCEBAN, {"mod": actor.id, "user": user_id})
        return CommandOutcome(status=OutcomeStatus.SUCCESS, case=case)

    async def softban(self, actor: Any, target: Any, reason: str | None = None) -> CommandOutcome:
        """Ban and immediately unban to purge a member's recent messages."""
        if not self.check_authority(actor, target):
            return CommandOutcome.denied("Cannot softban: insufficient permissions")

        user_id = target.id
        self.suppress(EventKind.BAN, user_id, LogType.MEMBER_BAN)
        self.suppress(EventKind.UNBAN, user_id, LogType.MEMBER_UNBAN)
        try:
            await self.platform.ban(user_id, reason=reason)
        except MutationFailed as exc:
            logger.warning("[CASE ORCHESTRATOR] Softban of %s failed: %s", user_id, exc)
            return CommandOutcome.failed("Failed to softban member")

        try:
            await self.platform.unban(user_id, reason="Softban")
        except MutationFailed as exc:
            # The ban stuck, so the history has to say ban
            logger.error("[CASE ORCHESTRATOR] Softban of %s could not lift the ban: %s", user_id, exc)
            case = await self.record_case(CaseType.BAN, user_id, actor.id, reason)
            await self.activity_log.record(LogType.MEMBER_BAN, {"mod": actor.id, "user": user_id})
            return CommandOutcome(
                status=OutcomeStatus.SUCCESS,
                case=case,
                detail="Unban step failed, the member remains banned",
            )

        case = await self.record_case(CaseType.SOFTBAN, user_id, actor.id, reason)
        await self.activity_log.record(LogType.MEMBER_SOFTBAN, {"mod": actor.id, "user": user_id})
        return CommandOutcome(status=OutcomeStatus.SUCCESS, case=case)

    async def unban(self, actor: Any, user_id: int, reason: str | None = None) -> CommandOutcome:
        """Lift a ban by user id."""
        self.suppress(EventKind.UNBAN, user_id, LogType.MEMBER_UNBAN)
        try:
            await self.platform.unban(user_id, reason=reason)
        except MutationFailed as exc:
            logger.warning("[CASE ORCHESTRATOR] Unban of %s failed: %s", user_id, exc)
            return CommandOutcome.failed("Failed to unban member")

        case = await self.record_case(CaseType.UNBAN, user_id, actor.id, reason)
        await self.activity_log.record(LogType.MEMBER_UNBAN, {"mod": actor.id, "user": user_id})
        return CommandOutcome(status=OutcomeStatus.SUCCESS, case=case)
