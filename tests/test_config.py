"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from kbsync.config import Settings, SyncConfig, TelegramConfig, load_settings


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for key in ("KBSYNC_CONFIG", "KBSYNC_LOG_LEVEL", "KBSYNC_TELEGRAM__TOKEN",
                "KBSYNC_SYNC__MAX_EVENT_MESSAGES", "KBSYNC_DATA_DIR"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("KBSYNC_CONFIG_DIR", str(tmp_path / "config"))


class TestDefaults:
    def test_sync_defaults(self):
        cfg = SyncConfig()
        assert cfg.max_event_messages == 10
        assert "Super Group" in cfg.outdated_notice

    def test_event_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            SyncConfig(max_event_messages=0)

    def test_bot_id_from_token(self):
        assert TelegramConfig(token="123456:ABC").get_bot_id() == 123456
        assert TelegramConfig(token="123456:ABC", bot_id=7).get_bot_id() == 7
        assert TelegramConfig().get_bot_id() == 0

    def test_db_path_defaults_to_data_dir(self, tmp_path):
        settings = Settings(data_dir=str(tmp_path))
        assert settings.get_db_path() == tmp_path / "kbsync.db"


class TestLoadSettings:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("KBSYNC_TELEGRAM__TOKEN", "99:xyz")
        monkeypatch.setenv("KBSYNC_SYNC__MAX_EVENT_MESSAGES", "3")
        settings = load_settings()
        assert settings.telegram.token == "99:xyz"
        assert settings.sync.max_event_messages == 3

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "kbsync.yaml"
        path.write_text(
            "service_name: deploybot\n"
            "telegram:\n"
            "  token: '5:abc'\n"
            "sync:\n"
            "  max_event_messages: 4\n"
        )
        settings = load_settings(path)
        assert settings.service_name == "deploybot"
        assert settings.telegram.get_bot_id() == 5
        assert settings.sync.max_event_messages == 4

    def test_env_wins_over_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "kbsync.yaml"
        path.write_text("log_level: DEBUG\nsync:\n  max_event_messages: 4\n")
        monkeypatch.setenv("KBSYNC_LOG_LEVEL", "WARNING")
        settings = load_settings(path)
        assert settings.log_level == "WARNING"
        assert settings.sync.max_event_messages == 4

    def test_default_config_location(self, tmp_path):
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text("service_name: fromdefault\n")
        assert load_settings().service_name == "fromdefault"

    def test_missing_file_is_ignored(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml")
        assert settings.service_name == "kbsync"
