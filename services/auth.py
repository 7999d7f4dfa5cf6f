# tasksync/services/auth.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from core.settings import SESSION_PATH
from datetime_utils import ensure_utc, parse_rfc3339, to_rfc3339_utc, utc_now
from storage.config import (
    SessionConfig,
    clear_session_config,
    load_session_config,
    save_session_config,
)


logger = logging.getLogger("tasksync.auth")


@dataclass(frozen=True)
class UserSession:
    user_id: str
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        if not self.user_id:
            return False
        if self.expires_at is None:
            return True
        return ensure_utc(self.expires_at) > (ensure_utc(now) or utc_now())


class SessionProvider:
    """Opaque identity provider backed by ``session.json``.

    The authentication flow itself lives outside this application; whatever
    performs it hands the result to :meth:`sign_in`. ``TASKSYNC_USER_ID`` and
    ``TASKSYNC_ACCESS_TOKEN`` act as a fallback when no file is present.
    """

    def __init__(self, path: Path | str | None = None, *, use_env: bool = True) -> None:
        self.path = Path(path or SESSION_PATH)
        self.use_env = use_env
        self._cached: Optional[UserSession] = None

    def current(self) -> Optional[UserSession]:
        if self._cached is None:
            self._cached = self._load()
        return self._cached

    def is_signed_in(self) -> bool:
        session = self.current()
        return bool(session and session.is_valid())

    def user_id(self) -> Optional[str]:
        session = self.current()
        if session and session.is_valid():
            return session.user_id
        return None

    def access_token(self) -> Optional[str]:
        session = self.current()
        if session and session.is_valid():
            return session.access_token
        return None

    def sign_in(
        self,
        user_id: str,
        access_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> UserSession:
        if not user_id or not user_id.strip():
            raise ValueError("user_id must not be empty")
        session = UserSession(user_id.strip(), access_token, ensure_utc(expires_at))
        save_session_config(
            SessionConfig(
                user_id=session.user_id,
                access_token=session.access_token,
                expires_at=to_rfc3339_utc(session.expires_at),
            ),
            self.path,
        )
        self._cached = session
        logger.info("Signed in as %s", session.user_id)
        return session

    def sign_out(self) -> None:
        clear_session_config(self.path)
        self._cached = None
        logger.info("Signed out")

    def _load(self) -> Optional[UserSession]:
        config = load_session_config(self.path)
        if config.user_id:
            return UserSession(
                user_id=config.user_id,
                access_token=config.access_token,
                expires_at=parse_rfc3339(config.expires_at),
            )
        if self.use_env:
            user_id = os.environ.get("TASKSYNC_USER_ID", "").strip()
            if user_id:
                return UserSession(
                    user_id=user_id,
                    access_token=os.environ.get("TASKSYNC_ACCESS_TOKEN") or None,
                )
        return None


__all__ = ["SessionProvider", "UserSession"]
