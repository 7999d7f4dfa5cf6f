"""Local persistence of the task list and its sync bookkeeping."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from core.errors import StorageError
from datetime_utils import ensure_utc, utc_now
from models.sync_meta import SyncMeta
from models.task import SYNC_SYNCED, Task, clone_task
from storage.db import SessionFactory, get_session


logger = logging.getLogger("tasksync.sync.store")

_TIMESTAMP_FIELDS = ("created_at", "updated_at", "last_synced_at")


def _normalise(task: Task) -> Task:
    # SQLite hands datetimes back naive.
    for name in _TIMESTAMP_FIELDS:
        setattr(task, name, ensure_utc(getattr(task, name)))
    return task


class LocalTaskStore:
    """Authoritative local view of every task known to this client.

    ``save_all`` is the only write path: it replaces the whole task table in a
    single transaction. Callers that need read-modify-write semantics use
    :meth:`editing`, which holds the store lock for the whole cycle.
    """

    def __init__(self, session_factory: SessionFactory = get_session) -> None:
        self._session_factory = session_factory
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    # ----- task list -----
    def load_all(self) -> List[Task]:
        try:
            with self._session_factory() as session:
                rows = session.exec(select(Task).order_by(Task.position.asc())).all()
                return [_normalise(clone_task(row)) for row in rows]
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load tasks: {exc}") from exc

    def save_all(self, tasks: Iterable[Task]) -> None:
        items = list(tasks)
        seen = set()
        for task in items:
            if task.id in seen:
                raise StorageError(f"Duplicate task id {task.id}")
            seen.add(task.id)

        with self._lock:
            try:
                with self._session_factory() as session:
                    for existing in session.exec(select(Task)).all():
                        session.delete(existing)
                    session.flush()
                    for position, task in enumerate(items):
                        row = clone_task(task)
                        row.position = position
                        session.add(row)
                    session.commit()
            except SQLAlchemyError as exc:
                logger.error("Saving %d tasks failed: %s", len(items), exc)
                raise StorageError(f"Failed to save tasks: {exc}") from exc

        for position, task in enumerate(items):
            task.position = position

    @contextmanager
    def editing(self) -> Iterator[List[Task]]:
        """Load the task list, let the caller mutate it in place, then save it.

        Nothing is written when the body raises.
        """

        with self._lock:
            tasks = self.load_all()
            yield tasks
            self.save_all(tasks)

    def get(self, task_id: str) -> Optional[Task]:
        """Find a task by its local id or, failing that, by its server id."""

        if not task_id:
            return None
        tasks = self.load_all()
        for task in tasks:
            if task.id == task_id:
                return task
        for task in tasks:
            if task.server_id and task.server_id == task_id:
                return task
        return None

    def upsert(self, task: Task) -> None:
        with self.editing() as tasks:
            for index, existing in enumerate(tasks):
                if existing.id == task.id:
                    tasks[index] = task
                    break
            else:
                tasks.append(task)

    def remove(self, task_id: str) -> bool:
        with self.editing() as tasks:
            before = len(tasks)
            tasks[:] = [task for task in tasks if task.id != task_id]
            return len(tasks) != before

    def pending_count(self) -> int:
        try:
            with self._session_factory() as session:
                stmt = select(func.count()).select_from(Task).where(Task.sync_status != SYNC_SYNCED)
                return int(session.exec(stmt).one())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to count pending tasks: {exc}") from exc

    # ----- metadata -----
    def get_meta(self) -> SyncMeta:
        try:
            with self._session_factory() as session:
                meta = session.get(SyncMeta, 1)
                if meta is None:
                    return SyncMeta(id=1)
                return SyncMeta(
                    id=1,
                    last_pull_at=ensure_utc(meta.last_pull_at),
                    last_push_at=ensure_utc(meta.last_push_at),
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load sync metadata: {exc}") from exc

    def update_meta(self, **fields) -> None:
        with self._lock:
            try:
                with self._session_factory() as session:
                    meta = session.get(SyncMeta, 1)
                    if meta is None:
                        meta = SyncMeta(id=1)
                    for key, value in fields.items():
                        setattr(meta, key, value)
                    session.add(meta)
                    session.commit()
            except SQLAlchemyError as exc:
                raise StorageError(f"Failed to save sync metadata: {exc}") from exc

    def get_last_pull_at(self) -> Optional[datetime]:
        return self.get_meta().last_pull_at

    def set_last_pull_at(self, moment: Optional[datetime] = None) -> None:
        self.update_meta(last_pull_at=ensure_utc(moment) or utc_now())

    def get_last_push_at(self) -> Optional[datetime]:
        return self.get_meta().last_push_at

    def set_last_push_at(self, moment: Optional[datetime] = None) -> None:
        self.update_meta(last_push_at=ensure_utc(moment) or utc_now())


__all__ = ["LocalTaskStore"]
