from pathlib import Path

import pytest
import yaml

from modwarden.configuration.app_configuration import (
    DEFAULT_DATABASE_PATH,
    DEFAULT_MUTE_ROLE_NAME,
    AppConfig,
)


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "app_config.yml"


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOG_CHANNEL_ID", raising=False)
    monkeypatch.delenv("MUTE_ROLE_NAME", raising=False)


def test_app_config_reload_parses_yaml(config_path: Path) -> None:
    config_payload = {
        "log_channel_id": 555,
        "mute_role_name": "Silenced",
        "lock_role_id": "777",
        "rate_limit": {"max_actions": 5, "window_seconds": 120},
        "invites": {"settle_delay_seconds": 3, "refresh_interval_seconds": 60},
        "voice_watch": {"channel_id": 1, "notification_channel_id": 2, "ping_role_id": 3, "dwell_seconds": 10},
        "database": {"path": str(config_path.parent / "history.db")},
    }
    config_path.write_text(yaml.safe_dump(config_payload), encoding="utf-8")

    config = AppConfig(config_path)

    assert config.get("mute_role_name") == "Silenced"
    assert config.log_channel_id == 555
    assert config.mute_role_name == "Silenced"
    assert config.lock_role_id == 777
    assert config.rate_limit_max_actions == 5
    assert config.rate_limit_window_seconds == pytest.approx(120.0)
    assert config.invite_settle_delay == pytest.approx(3.0)
    assert config.invite_refresh_interval == pytest.approx(60.0)
    assert config.voice_watch_channel_id == 1
    assert config.voice_notification_channel_id == 2
    assert config.voice_ping_role_id == 3
    assert config.voice_dwell_seconds == pytest.approx(10.0)
    assert config.database_path == config_path.parent / "history.db"


def test_app_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = AppConfig(tmp_path / "does_not_exist.yml")

    assert config.data == {}
    assert config.log_channel_id is None
    assert config.mute_role_name == DEFAULT_MUTE_ROLE_NAME
    assert config.rate_limit_max_actions == 3
    assert config.rate_limit_window_seconds == pytest.approx(3600.0)
    assert config.invite_settle_delay == pytest.approx(7.0)
    assert config.voice_watch_channel_id is None
    assert config.database_path == Path(DEFAULT_DATABASE_PATH).resolve()


def test_app_config_non_mapping_is_ignored(config_path: Path) -> None:
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    config = AppConfig(config_path)

    assert config.data == {}


def test_environment_overrides(config_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path.write_text(yaml.safe_dump({"log_channel_id": 1, "mute_role_name": "Muted"}), encoding="utf-8")
    monkeypatch.setenv("LOG_CHANNEL_ID", "42")
    monkeypatch.setenv("MUTE_ROLE_NAME", "Quiet")

    config = AppConfig(config_path)

    assert config.log_channel_id == 42
    assert config.mute_role_name == "Quiet"


def test_invalid_ids_are_ignored(config_path: Path) -> None:
    config_path.write_text(yaml.safe_dump({"lock_role_id": "not-an-id", "voice_watch": "nope"}), encoding="utf-8")

    config = AppConfig(config_path)

    assert config.lock_role_id is None
    assert config.voice_watch_channel_id is None


def test_reload_picks_up_changes(config_path: Path) -> None:
    config_path.write_text(yaml.safe_dump({"mute_role_name": "A"}), encoding="utf-8")
    config = AppConfig(config_path)

    config_path.write_text(yaml.safe_dump({"mute_role_name": "B"}), encoding="utf-8")
    config.reload()

    assert config.mute_role_name == "B"
