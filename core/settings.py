"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``.

    ``TASKSYNC_DATA_DIR`` in the environment takes precedence over the
    platform default.
    """

    platform_id = (platform or sys.platform).lower()
    environ = dict(os.environ if env is None else env)
    override = environ.get("TASKSYNC_DATA_DIR")
    if override:
        return Path(override).expanduser()

    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


APP_NAME = "TaskSync"


DATA_DIR = get_default_data_dir(APP_NAME)
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "tasksync.db"
SESSION_PATH = DATA_DIR / "session.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


@dataclass(frozen=True)
class RemoteSettings:
    url: str = _env("TASKSYNC_REMOTE_URL")
    api_key: str = _env("TASKSYNC_API_KEY")
    table: str = "tasks"
    timeout_sec: float = _env_float("TASKSYNC_REMOTE_TIMEOUT", 10.0)

    @property
    def configured(self) -> bool:
        return bool(self.url)


REMOTE = RemoteSettings()


@dataclass(frozen=True)
class SyncSettings:
    enabled: bool = True
    auto_push_on_edit: bool = True
    change_poll_interval_sec: int = 15
    connectivity_probe_interval_sec: int = 10
    connectivity_probe_timeout_sec: float = 3.0
    log_max_bytes: int = 1_000_000
    log_backup_count: int = 3


SYNC = SyncSettings()


@dataclass(frozen=True)
class ThemeColors:
    surface_bg: str = "#F8FAFC"
    outline: str = "#E5E7EB"
    text_subtle: str = "#6B7280"
    online: str = "#16A34A"
    offline: str = "#D97706"
    error: str = "#DC2626"


@dataclass(frozen=True)
class UISettings:
    app_title: str = APP_NAME
    theme_mode: str = "system"
    color_scheme_seed: str = "#4F46E5"
    window_min_width: int = 520
    window_min_height: int = 600
    content_max_width: int = 760
    status_refresh_interval_sec: int = 30
    theme: ThemeColors = ThemeColors()


UI = UISettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "LOG_DIR",
    "DB_PATH",
    "SESSION_PATH",
    "SYNC_LOG_PATH",
    "REMOTE",
    "SYNC",
    "UI",
    "get_default_data_dir",
]
