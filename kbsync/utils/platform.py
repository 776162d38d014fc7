"""Where kbsync keeps its config file and message database."""

from __future__ import annotations

import os
import sys
from pathlib import Path

APP_NAME = "kbsync"


def _user_dir(override_var: str, xdg_var: str, xdg_default: Path, windows_var: str) -> Path:
    override = os.environ.get(override_var)
    if override:
        return Path(override).expanduser()

    if sys.platform == "win32":
        base = os.environ.get(windows_var)
        return Path(base) / APP_NAME if base else Path.home() / "AppData" / APP_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME
    return Path(os.environ.get(xdg_var) or xdg_default) / APP_NAME


def get_config_dir() -> Path:
    """Holds ``config.yaml``; ``KBSYNC_CONFIG_DIR`` overrides."""
    return _user_dir("KBSYNC_CONFIG_DIR", "XDG_CONFIG_HOME", Path.home() / ".config", "APPDATA")


def get_data_dir() -> Path:
    """Holds ``kbsync.db`` unless ``store.db_path`` is set; ``KBSYNC_DATA_DIR`` overrides."""
    return _user_dir(
        "KBSYNC_DATA_DIR", "XDG_DATA_HOME", Path.home() / ".local" / "share", "LOCALAPPDATA"
    )
