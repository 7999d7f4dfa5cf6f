"""Simple JSON-backed store for the signed-in session."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from core.settings import SESSION_PATH


@dataclass
class SessionConfig:
    """Identity handed over by the authentication provider, persisted to ``session.json``."""

    user_id: Optional[str] = None
    access_token: Optional[str] = None
    expires_at: Optional[str] = None  # RFC3339


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def load_session_config(path: Optional[Path] = None) -> SessionConfig:
    target = path or SESSION_PATH
    data = _load_raw(target)
    return SessionConfig(
        user_id=data.get("user_id"),
        access_token=data.get("access_token"),
        expires_at=data.get("expires_at"),
    )


def save_session_config(config: SessionConfig, path: Optional[Path] = None) -> None:
    target = path or SESSION_PATH
    _ensure_parent(target)
    payload = json.dumps(asdict(config), ensure_ascii=False, indent=2, sort_keys=True)
    tmp = target.with_suffix(".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(target)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def clear_session_config(path: Optional[Path] = None) -> None:
    target = path or SESSION_PATH
    try:
        target.unlink()
    except FileNotFoundError:
        pass


__all__ = [
    "SessionConfig",
    "clear_session_config",
    "load_session_config",
    "save_session_config",
]
