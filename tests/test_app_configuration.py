from pathlib import Path

import pytest

from modledger.configuration.app_configuration import AppConfig
from modledger.configuration.moderation_settings import DEFAULT_TEMPLATES, ModerationSettings


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "app_config.yml"


def test_app_config_reads_moderation_section(config_path: Path) -> None:
    config_path.write_text(
        "\n".join(
            [
                "database_path: ./data/test.db",
                "moderation:",
                "  dm_on_ban: true",
                "  mute_role: '123456789012345678'",
                "  massban_limit: 25",
                "  ban_message: 'Gone from {guild_name}'",
            ]
        ),
        encoding="utf-8",
    )

    config = AppConfig(config_path)
    moderation = config.moderation

    assert moderation.dm_enabled("ban") is True
    assert moderation.mute_role == 123456789012345678
    assert moderation.massban_limit == 25
    assert moderation.template("ban_message") == "Gone from {guild_name}"
    assert config.database_path.name == "test.db"


def test_app_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = AppConfig(tmp_path / "does_not_exist.yml")

    assert config.data == {}
    assert config.moderation.suppression_ttl == pytest.approx(15.0)
    assert config.database_path.name == "modledger.db"


def test_reload_picks_up_changes(config_path: Path) -> None:
    config_path.write_text("moderation:\n  massban_limit: 10\n", encoding="utf-8")
    config = AppConfig(config_path)
    config_path.write_text("moderation:\n  massban_limit: 20\n", encoding="utf-8")

    config.reload()

    assert config.moderation.massban_limit == 20


def test_moderation_settings_defaults() -> None:
    settings = ModerationSettings()

    assert settings.dm_enabled("warn") is True
    assert settings.dm_enabled("kick") is False
    assert settings.channel_message_enabled("warn") is False
    assert settings.mute_role is None
    assert settings.massban_suppression_ttl == pytest.approx(120.0)
    assert settings.confirmation_timeout == pytest.approx(60.0)
    assert settings.template("warn_message") == DEFAULT_TEMPLATES["warn_message"]


def test_malformed_channel_is_ignored() -> None:
    settings = ModerationSettings({"log_channel": "not-a-number"})

    assert settings.log_channel is None


def test_non_mapping_document_is_ignored(config_path: Path) -> None:
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    assert AppConfig(config_path).data == {}


def test_invalid_yaml_is_ignored(config_path: Path) -> None:
    config_path.write_text("moderation: [unclosed\n", encoding="utf-8")

    assert AppConfig(config_path).data == {}
