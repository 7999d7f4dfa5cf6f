# tasksync/storage/db.py
from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from core.settings import DB_PATH

# Ensure SQLModel metadata is populated
import models.task  # noqa: F401
import models.sync_meta  # noqa: F401
from storage import migrations


SessionFactory = Callable[[], Session]

_engine: Optional[Engine] = None


def create_db_engine(path: Optional[Path] = None) -> Engine:
    target = Path(path or DB_PATH)
    target.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{target.as_posix()}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


def get_engine() -> Engine:
    """Return (and lazily create) the engine bound to ``DB_PATH``."""

    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def init_db(engine: Optional[Engine] = None) -> Engine:
    actual = engine or get_engine()
    SQLModel.metadata.create_all(actual)
    migrations.run_all(actual)
    return actual


def get_session() -> Session:
    return Session(get_engine())


def make_session_factory(engine: Engine) -> SessionFactory:
    def factory() -> Session:
        return Session(engine)

    return factory


__all__ = [
    "SessionFactory",
    "create_db_engine",
    "get_engine",
    "get_session",
    "init_db",
    "make_session_factory",
]
