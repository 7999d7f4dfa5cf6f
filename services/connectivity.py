"""Online/offline tracking for the reconciliation engine."""

from __future__ import annotations

import logging
import socket
import threading
from enum import Enum
from typing import Callable, List, Optional
from urllib.parse import urlparse

from core.settings import REMOTE, SYNC


logger = logging.getLogger("tasksync.sync.connectivity")


class ConnectivityStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


Listener = Callable[[ConnectivityStatus], None]


def tcp_probe(url: str = REMOTE.url, timeout: float = SYNC.connectivity_probe_timeout_sec) -> bool:
    """Return True when a TCP connection to the host behind ``url`` succeeds."""

    parsed = urlparse(url or "")
    host = parsed.hostname
    if not host:
        return False
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class ConnectivityMonitor:
    """Best-effort connectivity signal with explicit start/stop lifecycle.

    ``set_online`` is the entry point for any platform signal; the optional
    probe loop feeds it periodically. Listeners hear transitions only.
    """

    def __init__(
        self,
        probe: Optional[Callable[[], bool]] = None,
        *,
        initial: bool = False,
        interval_sec: float = SYNC.connectivity_probe_interval_sec,
    ) -> None:
        self.probe = probe
        self.interval_sec = interval_sec
        self._online = bool(initial)
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def status(self) -> ConnectivityStatus:
        return ConnectivityStatus.ONLINE if self._online else ConnectivityStatus.OFFLINE

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def set_online(self, online: bool) -> bool:
        """Record the current signal; return True when it was a transition."""

        with self._lock:
            if bool(online) == self._online:
                return False
            self._online = bool(online)
            listeners = list(self._listeners)
        status = self.status
        logger.info("Connectivity changed: %s", status.value)
        for listener in listeners:
            try:
                listener(status)
            except Exception:
                logger.exception("Connectivity listener failed")
        return True

    def check_now(self) -> bool:
        if self.probe is None:
            return self._online
        try:
            online = bool(self.probe())
        except Exception as exc:
            logger.debug("Connectivity probe failed: %s", exc)
            online = False
        self.set_online(online)
        return online

    # ----- lifecycle -----
    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self.check_now()
        if self.probe is None:
            return
        self._thread = threading.Thread(target=self._run, name="tasksync-connectivity", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    def _run(self) -> None:
        while not self._stop.wait(self.interval_sec):
            self.check_now()


__all__ = ["ConnectivityMonitor", "ConnectivityStatus", "tcp_probe"]
