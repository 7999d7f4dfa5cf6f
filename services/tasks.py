# tasksync/services/tasks.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from core.settings import SYNC
from datetime_utils import UTC, bump, ensure_utc, utc_now
from models.task import EDITABLE_FIELDS, SYNC_PENDING, Task, clone_task, new_task_id
from services.local_store import LocalTaskStore
from services.sync_engine import ReconciliationEngine, SyncReport


logger = logging.getLogger("tasksync.tasks")

_MIN_DATETIME = datetime.min.replace(tzinfo=UTC)


@dataclass
class TaskListing:
    active: List[Task] = field(default_factory=list)
    completed: List[Task] = field(default_factory=list)


def _clean_title(title: Optional[str]) -> str:
    value = (title or "").strip()
    if not value:
        raise ValueError("Task title must not be empty")
    return value


def _clean_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    value = description.strip()
    return value or None


def _newest_first(tasks: List[Task]) -> List[Task]:
    return sorted(tasks, key=lambda t: ensure_utc(t.created_at) or _MIN_DATETIME, reverse=True)


class TaskService:
    """Operations the presentation layer calls.

    Every mutation lands in the local store first and returns immediately;
    the network part is handed to the reconciliation engine.
    """

    def __init__(
        self,
        store: LocalTaskStore,
        engine: ReconciliationEngine,
        *,
        auto_push: bool = SYNC.auto_push_on_edit,
    ) -> None:
        self.store = store
        self.engine = engine
        self.auto_push = auto_push
        self._listeners: List[Callable[[], None]] = []
        engine.add_listener(self._emit)

    # ------------------------------------------------------------------
    # Observers
    def subscribe(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Task listener failed")

    # ------------------------------------------------------------------
    # Observable state
    @property
    def is_online(self) -> bool:
        return self.engine.monitor.is_online

    @property
    def pending_count(self) -> int:
        return self.store.pending_count()

    @property
    def last_sync_time(self) -> Optional[datetime]:
        return self.store.get_last_pull_at()

    @property
    def is_signed_in(self) -> bool:
        return bool(self.engine.user_id)

    # ------------------------------------------------------------------
    # Queries
    def get_task(self, task_id: str) -> Optional[Task]:
        task = self.store.get(task_id)
        if task is None or task.is_deleted:
            return None
        return task

    def list_tasks(self) -> TaskListing:
        visible = [task for task in self.store.load_all() if not task.is_deleted]
        ordered = _newest_first(visible)
        return TaskListing(
            active=[task for task in ordered if not task.completed],
            completed=[task for task in ordered if task.completed],
        )

    # ------------------------------------------------------------------
    # Mutations
    def create_task(self, title: str, description: Optional[str] = None) -> Task:
        now = utc_now()
        task = Task(
            id=new_task_id(),
            title=_clean_title(title),
            description=_clean_description(description),
            completed=False,
            created_at=now,
            updated_at=now,
            sync_status=SYNC_PENDING,
        )
        with self.store.editing() as tasks:
            tasks.append(task)
        logger.info("Task %s created locally", task.id)
        self._after_local_change()
        return clone_task(task)

    def update_task(self, task_id: str, **fields) -> Optional[Task]:
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported task fields: {', '.join(sorted(unknown))}")
        if "title" in fields:
            fields["title"] = _clean_title(fields["title"])
        if "description" in fields:
            fields["description"] = _clean_description(fields["description"])
        if "completed" in fields:
            fields["completed"] = bool(fields["completed"])

        updated: Optional[Task] = None
        with self.store.editing() as tasks:
            target = self._locate(tasks, task_id)
            if target is not None and not target.is_deleted:
                for key, value in fields.items():
                    setattr(target, key, value)
                target.updated_at = bump(target.updated_at)
                target.sync_status = SYNC_PENDING
                target.last_error = None
                target.error_kind = None
                updated = clone_task(target)
        if updated is None:
            logger.debug("Update ignored: task %s not found", task_id)
            return None
        self._after_local_change()
        return updated

    def toggle_completed(self, task_id: str) -> Optional[Task]:
        task = self.get_task(task_id)
        if task is None:
            return None
        return self.update_task(task.id, completed=not task.completed)

    def delete_task(self, task_id: str) -> bool:
        found = False
        with self.store.editing() as tasks:
            target = self._locate(tasks, task_id)
            if target is not None and not target.is_deleted:
                found = True
                if target.server_id:
                    target.is_deleted = True
                    target.updated_at = bump(target.updated_at)
                    target.sync_status = SYNC_PENDING
                    target.last_error = None
                    target.error_kind = None
                else:
                    # Never reached the server: nothing to tell it.
                    tasks.remove(target)
        if not found:
            return False
        self._after_local_change()
        return True

    # ------------------------------------------------------------------
    # Sync
    def sync_now(self) -> SyncReport:
        """Push everything queued, failed records included, then refresh."""

        report = self.engine.push(retry_rejected=True)
        if not report.skipped and not report.attempted:
            self.engine.pull()
        logger.info(report.summary())
        return report

    def refresh(self) -> bool:
        return self.engine.pull()

    # ------------------------------------------------------------------
    def _locate(self, tasks: List[Task], task_id: str) -> Optional[Task]:
        for task in tasks:
            if task.id == task_id:
                return task
        for task in tasks:
            if task.server_id and task.server_id == task_id:
                return task
        return None

    def _after_local_change(self) -> None:
        self._emit()
        if self.auto_push and self.is_online:
            self.engine.request_push()


__all__ = ["TaskListing", "TaskService"]
