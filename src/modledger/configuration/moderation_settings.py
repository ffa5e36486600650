from typing import Any, Dict


DEFAULT_TEMPLATES: Dict[str, str] = {
    "warn_message": "You have received a warning on {guild_name}: {reason}",
    "mute_message": "You have been muted on {guild_name}. Reason given: {reason}",
    "timed_mute_message": "You have been muted on {guild_name} for {time}. Reason given: {reason}",
    "kick_message": "You have been kicked from {guild_name}. Reason given: {reason}",
    "ban_message": "You have been banned from {guild_name}. Reason given: {reason}",
}


class ModerationSettings:
    """Typed accessors over the ``moderation`` section of the app config.

    Missing or malformed values fall back to the defaults below, so an empty
    section yields a working (if quiet) configuration.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    def _channel(self, key: str) -> int | None:
        value = self.data.get(key)
        try:
            return int(value) if value else None
        except (TypeError, ValueError):
            return None

    # Notification switches
    def dm_enabled(self, action: str) -> bool:
        """Whether the user should be DMed for ``action`` (warn/mute/kick/ban)."""
        return bool(self.data.get(f"dm_on_{action}", action == "warn"))

    def channel_message_enabled(self, action: str) -> bool:
        """Whether the fallback channel should be used for ``action``."""
        return bool(self.data.get(f"message_on_{action}", False))

    def template(self, name: str) -> str:
        value = self.data.get(name)
        return str(value) if value else DEFAULT_TEMPLATES.get(name, "")

    @property
    def message_channel(self) -> int | None:
        return self._channel("message_channel")

    @property
    def mute_role(self) -> int | None:
        return self._channel("mute_role")

    @property
    def alert_on_rejoin(self) -> bool:
        return bool(self.data.get("alert_on_rejoin", False))

    @property
    def alert_channel(self) -> int | None:
        return self._channel("alert_channel")

    @property
    def case_log_channel(self) -> int | None:
        return self._channel("case_log_channel")

    @property
    def log_channel(self) -> int | None:
        return self._channel("log_channel")

    # Timings and limits
    @property
    def suppression_ttl(self) -> float:
        return float(self.data.get("suppression_ttl_seconds", 15.0))

    @property
    def massban_suppression_ttl(self) -> float:
        return float(self.data.get("massban_suppression_ttl_seconds", 120.0))

    @property
    def massban_limit(self) -> int:
        return int(self.data.get("massban_limit", 100))

    @property
    def confirmation_timeout(self) -> float:
        return float(self.data.get("confirmation_timeout_seconds", 60.0))

    @property
    def audit_window(self) -> float:
        return float(self.data.get("audit_window_seconds", 10.0))

    @property
    def unmute_check_interval(self) -> float:
        return float(self.data.get("unmute_check_interval_seconds", 30.0))
