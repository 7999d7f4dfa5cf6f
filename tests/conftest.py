import os
import sys
import tempfile
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
for _path in (ROOT, ROOT / "tests"):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))

# Must happen before core.settings is imported anywhere.
os.environ.setdefault("TASKSYNC_DATA_DIR", tempfile.mkdtemp(prefix="tasksync-tests-"))

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from services.connectivity import ConnectivityMonitor
from services.local_store import LocalTaskStore
from services.sync_engine import ReconciliationEngine
from services.tasks import TaskService
from storage.db import init_db, make_session_factory

from fakes import FakeGateway, InlineExecutor, StaticSessions


@pytest.fixture()
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture()
def store(session_factory):
    return LocalTaskStore(session_factory)


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def monitor():
    return ConnectivityMonitor(initial=False)


@pytest.fixture()
def sessions():
    return StaticSessions()


@pytest.fixture()
def sync_engine(store, gateway, monitor, sessions):
    engine = ReconciliationEngine(store, gateway, monitor, sessions, executor=InlineExecutor())
    engine.start()
    yield engine
    engine.close()


@pytest.fixture()
def service(store, sync_engine):
    return TaskService(store, sync_engine, auto_push=True)
