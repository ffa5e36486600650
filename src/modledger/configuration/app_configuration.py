"""
YAML application configuration.

``config/app_config.yml`` is read once at import and again on ``reload()``.
The file is read under a shared ``fcntl`` lock so an editor saving it at the
same moment cannot hand us half a document. A missing or unparsable file
yields an empty mapping; every accessor has a default.
"""

from __future__ import annotations

import fcntl
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from modledger.configuration.moderation_settings import ModerationSettings
from modledger.util.logger import get_logger

logger = get_logger("app_configuration")

CONFIG_PATH = Path(os.getenv("MODLEDGER_CONFIG") or "./config/app_config.yml").resolve()
DEFAULT_DATABASE_PATH = "./data/modledger.db"


class AppConfig:
    """Cached view of the configuration file."""

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    def _read(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as handle:
                fcntl.flock(handle.fileno(), fcntl.LOCK_SH)
                try:
                    loaded = yaml.safe_load(handle)
                finally:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] %s does not exist, using defaults", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Could not read %s: %s", self.config_path, exc)
            return {}

        if not isinstance(loaded, dict):
            logger.warning("[APP CONFIGURATION] %s is not a mapping, using defaults", self.config_path)
            return {}
        return loaded

    def reload(self) -> Dict[str, Any]:
        """Re-read the file and return the new mapping."""
        self._data = self._read()
        logger.debug("[APP CONFIGURATION] Loaded %d top-level keys from %s", len(self._data), self.config_path)
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    @property
    def moderation(self) -> ModerationSettings:
        section = self._data.get("moderation")
        return ModerationSettings(section if isinstance(section, dict) else {})

    @property
    def database_path(self) -> Path:
        return Path(str(self._data.get("database_path") or DEFAULT_DATABASE_PATH)).resolve()


app_config = AppConfig(CONFIG_PATH)
