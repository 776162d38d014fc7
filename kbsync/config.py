"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from kbsync.utils.platform import get_config_dir, get_data_dir


class TelegramConfig(BaseModel):
    token: str = ""
    api_base: str = "https://api.telegram.org"
    timeout: float = 10.0
    bot_id: int = 0

    def get_bot_id(self) -> int:
        """Explicit bot_id, or the numeric prefix of the token."""
        if self.bot_id:
            return self.bot_id
        prefix = self.token.split(":", 1)[0]
        return int(prefix) if prefix.isdigit() else 0


class StoreConfig(BaseModel):
    db_path: str = ""


class SyncConfig(BaseModel):
    max_event_messages: int = Field(default=10, ge=1)
    outdated_notice: str = (
        "Message can be outdated. Bot can't edit messages created before "
        "converting to the Super Group"
    )
    slow_inline_answer: float = 1.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KBSYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    service_name: str = "kbsync"
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    data_dir: str = ""
    log_level: str = "INFO"
    log_json: bool = False

    def get_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir)
        return get_data_dir()

    def get_db_path(self) -> Path:
        if self.store.db_path:
            return Path(self.store.db_path)
        return self.get_data_dir() / "kbsync.db"


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("KBSYNC_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    # YAML values are defaults; environment variables win
    env_settings = Settings()
    env_data = env_settings.model_dump(exclude_unset=True)
    return Settings(**_deep_merge(yaml_data, env_data))
