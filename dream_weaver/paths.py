from __future__ import annotations

import os
import sys
from pathlib import Path

APP_DIR_NAME = "DreamWeaver"
HOME_ENV_VAR = "DREAM_WEAVER_HOME"


def data_directory() -> Path:
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override)
    if os.name == "nt":
        local_appdata = os.environ.get("LOCALAPPDATA")
        base = Path(local_appdata) if local_appdata else Path.home() / "AppData" / "Local"
        return base / APP_DIR_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME
    xdg = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / "dream-weaver"


def database_path() -> Path:
    return data_directory() / "dream_weaver.sqlite3"


def config_path() -> Path:
    return data_directory() / "config.json"


def ensure_directories() -> None:
    data_directory().mkdir(parents=True, exist_ok=True)
