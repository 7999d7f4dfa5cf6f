"""Wiring of the sync stack with an explicit start/shutdown lifecycle."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from core.settings import REMOTE, SYNC, RemoteSettings
from services.auth import SessionProvider
from services.connectivity import ConnectivityMonitor, tcp_probe
from services.local_store import LocalTaskStore
from services.remote_gateway import RemoteGateway, RestGateway
from services.sync_engine import ReconciliationEngine
from services.tasks import TaskService
from storage.db import init_db, make_session_factory


logger = logging.getLogger("tasksync")


@dataclass
class AppContext:
    store: LocalTaskStore
    sessions: SessionProvider
    gateway: RemoteGateway
    monitor: ConnectivityMonitor
    engine: ReconciliationEngine
    tasks: TaskService
    started: bool = False

    def start(self) -> None:
        if self.started:
            return
        # The engine subscribes first so it hears the monitor's first transition.
        self.engine.start()
        self.monitor.start()
        self.started = True
        logger.info("TaskSync started (online=%s)", self.monitor.is_online)

    def sign_in(self, user_id: str, access_token: Optional[str] = None) -> None:
        self.sessions.sign_in(user_id, access_token)
        self.engine.resubscribe()
        self.engine.request_initial()

    def sign_out(self) -> None:
        self.sessions.sign_out()
        self.engine.resubscribe()

    def shutdown(self) -> None:
        if not self.started:
            return
        self.engine.close()
        self.monitor.stop()
        self.started = False
        logger.info("TaskSync stopped")


def build_context(
    *,
    db_engine: Optional[Engine] = None,
    remote: RemoteSettings = REMOTE,
    sessions: Optional[SessionProvider] = None,
    gateway: Optional[RemoteGateway] = None,
    monitor: Optional[ConnectivityMonitor] = None,
) -> AppContext:
    engine_db = init_db(db_engine)
    store = LocalTaskStore(make_session_factory(engine_db))
    sessions = sessions or SessionProvider()
    gateway = gateway or RestGateway(remote, token_provider=sessions.access_token)
    if monitor is None:
        probe = (lambda: tcp_probe(remote.url)) if remote.configured else None
        monitor = ConnectivityMonitor(probe, initial=False)
    sync_engine = ReconciliationEngine(store, gateway, monitor, sessions)
    tasks = TaskService(store, sync_engine, auto_push=SYNC.auto_push_on_edit)
    return AppContext(
        store=store,
        sessions=sessions,
        gateway=gateway,
        monitor=monitor,
        engine=sync_engine,
        tasks=tasks,
    )


__all__ = ["AppContext", "build_context"]
