"""Remote task store client used by the reconciliation engine."""

from __future__ import annotations

import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from core.errors import NotFoundError, SyncError, TransportError, ValidationError
from core.settings import REMOTE, SYNC, RemoteSettings
from datetime_utils import parse_rfc3339, utc_now


logger = logging.getLogger("tasksync.sync.gateway")

_RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}
_AUTH_STATUS = {401, 403}
_UPDATABLE_FIELDS = {"title", "description", "completed", "is_deleted"}


@dataclass
class RemoteTask:
    """One row of the remote ``tasks`` table."""

    server_id: str
    title: str
    description: Optional[str] = None
    completed: bool = False
    is_deleted: bool = False
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RemoteTask":
        server_id = row.get("id")
        if not server_id:
            raise ValidationError("Remote row without id")
        return cls(
            server_id=str(server_id),
            title=str(row.get("title") or ""),
            description=row.get("description") or None,
            completed=bool(row.get("completed")),
            is_deleted=bool(row.get("is_deleted")),
            user_id=row.get("user_id"),
            created_at=parse_rfc3339(row.get("created_at")),
            updated_at=parse_rfc3339(row.get("updated_at")),
        )


class Subscription(ABC):
    @abstractmethod
    def cancel(self) -> None:
        ...


class RemoteGateway(ABC):
    """Request/response + change-notification interface of the remote store."""

    @abstractmethod
    def fetch_all(self, user_id: str) -> List[RemoteTask]:
        ...

    @abstractmethod
    def insert(
        self,
        user_id: str,
        title: str,
        description: Optional[str],
        completed: bool = False,
    ) -> RemoteTask:
        ...

    @abstractmethod
    def update(self, server_id: str, fields: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    def soft_delete(self, server_id: str) -> None:
        ...

    @abstractmethod
    def subscribe_to_changes(self, user_id: str, callback: Callable[[], None]) -> Subscription:
        ...


class ChangeSubscription(Subscription):
    """Polls a fingerprint of the user's rows and fires ``callback`` when it moves.

    Delivery is at-least-once: a change made by this very client also fires.
    """

    def __init__(
        self,
        fingerprint: Callable[[], str],
        callback: Callable[[], None],
        *,
        interval_sec: float = SYNC.change_poll_interval_sec,
        name: str = "tasksync-changes",
    ) -> None:
        self._fingerprint = fingerprint
        self._callback = callback
        self.interval_sec = interval_sec
        self._last: Optional[str] = None
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> "ChangeSubscription":
        self._thread.start()
        return self

    def poll_once(self) -> bool:
        """Fetch the fingerprint once; return True when the callback fired."""

        try:
            current = self._fingerprint()
        except TransportError as exc:
            logger.debug("Change poll failed: %s", exc)
            return False
        except SyncError as exc:
            logger.warning("Change poll rejected (%s): %s", exc.kind, exc)
            return False
        except Exception:
            logger.exception("Change poll failed")
            return False
        previous, self._last = self._last, current
        if previous is None or previous == current:
            return False
        logger.debug("Remote change detected")
        try:
            self._callback()
        except Exception:
            logger.exception("Change callback failed")
        return True

    def cancel(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)

    @property
    def active(self) -> bool:
        return not self._stop.is_set()

    def _run(self) -> None:
        self.poll_once()
        while not self._stop.wait(self.interval_sec):
            self.poll_once()


class RestGateway(RemoteGateway):
    """Gateway speaking the PostgREST dialect (``/rest/v1/<table>``)."""

    def __init__(
        self,
        settings: RemoteSettings = REMOTE,
        *,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        http: Optional[requests.Session] = None,
        poll_interval_sec: float = SYNC.change_poll_interval_sec,
    ) -> None:
        self.settings = settings
        self.token_provider = token_provider
        self.http = http or requests.Session()
        self.poll_interval_sec = poll_interval_sec

    @property
    def endpoint(self) -> str:
        return f"{self.settings.url.rstrip('/')}/rest/v1/{self.settings.table}"

    # ------------------------------------------------------------------
    # RemoteGateway
    def fetch_all(self, user_id: str) -> List[RemoteTask]:
        rows = self._request(
            "GET",
            params={
                "select": "*",
                "user_id": f"eq.{user_id}",
                "is_deleted": "eq.false",
                "order": "created_at.desc",
            },
        )
        return [RemoteTask.from_row(row) for row in rows or []]

    def insert(
        self,
        user_id: str,
        title: str,
        description: Optional[str],
        completed: bool = False,
    ) -> RemoteTask:
        rows = self._request(
            "POST",
            json={
                "user_id": user_id,
                "title": title,
                "description": description,
                "completed": bool(completed),
            },
        )
        if not rows:
            raise ValidationError("Insert returned no row")
        return RemoteTask.from_row(rows[0])

    def update(self, server_id: str, fields: Mapping[str, Any]) -> None:
        payload = {key: value for key, value in fields.items() if key in _UPDATABLE_FIELDS}
        if not payload:
            return
        rows = self._request("PATCH", params={"id": f"eq.{server_id}"}, json=payload)
        if not rows:
            raise NotFoundError(f"Remote task {server_id} not found", status=404)

    def soft_delete(self, server_id: str) -> None:
        self.update(server_id, {"is_deleted": True})

    def subscribe_to_changes(self, user_id: str, callback: Callable[[], None]) -> ChangeSubscription:
        subscription = ChangeSubscription(
            lambda: self.fingerprint(user_id),
            callback,
            interval_sec=self.poll_interval_sec,
        )
        return subscription.start()

    # ------------------------------------------------------------------
    def fingerprint(self, user_id: str) -> str:
        rows = self._request(
            "GET",
            params={
                "select": "id,updated_at,is_deleted",
                "user_id": f"eq.{user_id}",
                "order": "id.asc",
            },
        )
        digest = hashlib.sha1()
        for row in rows or []:
            digest.update(f"{row.get('id')}|{row.get('updated_at')}|{row.get('is_deleted')}\n".encode("utf-8"))
        return digest.hexdigest()

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Prefer": "return=representation",
        }
        if self.settings.api_key:
            headers["apikey"] = self.settings.api_key
        token = self.token_provider() if self.token_provider else None
        token = token or self.settings.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(
        self,
        method: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if not self.settings.url:
            raise TransportError("Remote URL is not configured")
        started = utc_now()
        try:
            response = self.http.request(
                method,
                self.endpoint,
                params=params,
                json=json,
                headers=self._headers(),
                timeout=self.settings.timeout_sec,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {self.settings.table}: {exc}") from exc

        status = int(response.status_code)
        elapsed_ms = int((utc_now() - started).total_seconds() * 1000)
        logger.debug("%s %s -> %s (%d ms)", method, self.settings.table, status, elapsed_ms)

        if status >= 400:
            message = _error_message(response)
            if status == 404:
                raise NotFoundError(message, status=status)
            if status in _RETRYABLE_STATUS or status >= 500:
                raise TransportError(message, status=status)
            if status in _AUTH_STATUS:
                raise TransportError(f"Session rejected: {message}", status=status)
            raise ValidationError(message, status=status)

        if status == 204 or not response.content:
            return []
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"Malformed response from remote: {exc}", status=status) from exc


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("message", "error_description", "error", "hint"):
            if payload.get(key):
                return str(payload[key])
    text = (response.text or "").strip()
    return text[:500] or f"HTTP {response.status_code}"


__all__ = [
    "ChangeSubscription",
    "RemoteGateway",
    "RemoteTask",
    "RestGateway",
    "Subscription",
]
