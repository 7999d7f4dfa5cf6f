from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from core.errors import NotFoundError, StorageError, SyncError
from core.settings import SYNC, SYNC_LOG_PATH
from datetime_utils import ensure_utc, later_of, utc_now
from models.task import SYNC_ERROR, SYNC_PENDING, SYNC_SYNCED, Task
from services.connectivity import ConnectivityMonitor, ConnectivityStatus
from services.local_store import LocalTaskStore
from services.remote_gateway import RemoteGateway, RemoteTask, Subscription


PUSH = "push"
PULL = "pull"

_RETRYABLE_KINDS = {"transport"}


def _ensure_logger(path: Path | str = SYNC_LOG_PATH) -> logging.Logger:
    logger = logging.getLogger("tasksync.sync")
    if not logger.handlers:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path,
            maxBytes=SYNC.log_max_bytes,
            backupCount=SYNC.log_backup_count,
            encoding="utf-8",
        )
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


@dataclass
class SyncReport:
    """Aggregate outcome of one push pass."""

    succeeded: int = 0
    failed: int = 0
    purged: int = 0
    skipped: bool = False
    reason: Optional[str] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed

    def summary(self) -> str:
        if self.skipped:
            return f"Sync skipped: {self.reason or 'unavailable'}"
        if not self.attempted:
            return "All tasks are synced"
        parts = [f"Synced {self.succeeded} task{'s' if self.succeeded != 1 else ''}"]
        if self.failed:
            parts.append(f"{self.failed} failed")
        return ", ".join(parts)


@dataclass
class MergeResult:
    added: int = 0
    updated: int = 0
    removed: int = 0
    kept_local: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed)


def is_pushable(task: Task, retry_rejected: bool = False) -> bool:
    if task.sync_status == SYNC_PENDING:
        return True
    if task.sync_status == SYNC_ERROR:
        return retry_rejected or (task.error_kind or "transport") in _RETRYABLE_KINDS
    return False


def _task_from_remote(item: RemoteTask, now: datetime) -> Task:
    return Task(
        id=item.server_id,
        server_id=item.server_id,
        title=item.title,
        description=item.description,
        completed=item.completed,
        created_at=ensure_utc(item.created_at) or now,
        updated_at=ensure_utc(item.updated_at) or now,
        is_deleted=False,
        last_synced_at=now,
        sync_status=SYNC_SYNCED,
    )


def _apply_remote(local: Task, item: RemoteTask, now: datetime) -> bool:
    changed = (local.title, local.description, local.completed) != (
        item.title,
        item.description,
        item.completed,
    )
    local.title = item.title
    local.description = item.description
    local.completed = item.completed
    local.updated_at = later_of(local.updated_at, item.updated_at) or now
    local.last_synced_at = now
    local.sync_status = SYNC_SYNCED
    local.last_error = None
    local.error_kind = None
    return changed


def merge_remote(tasks: List[Task], remote: Iterable[RemoteTask], now: Optional[datetime] = None) -> MergeResult:
    """Merge a full remote snapshot into ``tasks`` in place.

    Local records that are not ``synced`` are left untouched. Synced records
    the remote no longer reports are dropped.
    """

    now = now or utc_now()
    result = MergeResult()
    by_server = {task.server_id: task for task in tasks if task.server_id}
    seen = set()

    for item in remote:
        if item.is_deleted:
            continue
        seen.add(item.server_id)
        local = by_server.get(item.server_id)
        if local is None:
            created = _task_from_remote(item, now)
            tasks.append(created)
            by_server[item.server_id] = created
            result.added += 1
        elif local.sync_status != SYNC_SYNCED:
            result.kept_local += 1
        elif _apply_remote(local, item, now):
            result.updated += 1

    survivors = [task for task in tasks if task.sync_status != SYNC_SYNCED or task.server_id in seen]
    result.removed = len(tasks) - len(survivors)
    tasks[:] = survivors
    return result


def _find(tasks: List[Task], task_id: str) -> Optional[Task]:
    for task in tasks:
        if task.id == task_id:
            return task
    return None


def _was_edited(current: Task, snapshot: Task) -> bool:
    return ensure_utc(current.updated_at) != ensure_utc(snapshot.updated_at)


class ReconciliationEngine:
    """Pulls remote state, pushes pending local changes and settles conflicts.

    Passes never overlap: a pass requested while another one runs is deferred
    and executed right after it. Background triggers go through a single
    worker so they are serialised as well.
    """

    def __init__(
        self,
        store: LocalTaskStore,
        gateway: RemoteGateway,
        monitor: ConnectivityMonitor,
        sessions,
        *,
        executor: Optional[Executor] = None,
        enabled: bool = SYNC.enabled,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.monitor = monitor
        self.sessions = sessions
        self.enabled = enabled
        self.logger = logger or _ensure_logger()

        self._executor = executor
        self._owns_executor = executor is None
        self._state_lock = threading.Lock()
        self._running: Optional[str] = None
        self._deferred: Dict[str, bool] = {}
        self._queued: set[str] = set()
        self._listeners: List[Callable[[], None]] = []
        self._subscription: Optional[Subscription] = None
        self._unsubscribe_monitor: Optional[Callable[[], None]] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    def start(self) -> None:
        if self._unsubscribe_monitor is None:
            self._unsubscribe_monitor = self.monitor.subscribe(self._on_connectivity)
        self.resubscribe()
        self.request_initial()

    def request_initial(self) -> None:
        """Push work left over from an earlier session, otherwise just refresh."""

        if self.monitor.is_online and self.has_pushable(retry_rejected=True):
            self.request_push(retry_rejected=True)
        else:
            self.request_pull()

    def resubscribe(self) -> None:
        """(Re)attach the remote change channel for the current user."""

        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        user_id = self.user_id
        if not self.enabled or not user_id:
            return
        self._subscription = self.gateway.subscribe_to_changes(user_id, self.on_remote_change)
        self.logger.info("Listening for remote changes of user %s", user_id)

    def close(self) -> None:
        self._closed = True
        if self._unsubscribe_monitor is not None:
            self._unsubscribe_monitor()
            self._unsubscribe_monitor = None
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    # ------------------------------------------------------------------
    # Observers
    def add_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                self.logger.exception("Sync listener failed")

    # ------------------------------------------------------------------
    # State
    @property
    def user_id(self) -> Optional[str]:
        return self.sessions.user_id() if self.sessions is not None else None

    @property
    def is_busy(self) -> bool:
        return self._running is not None

    def has_pushable(self, retry_rejected: bool = False) -> bool:
        return any(is_pushable(task, retry_rejected) for task in self.store.load_all())

    def status(self) -> dict:
        meta = self.store.get_meta()
        return {
            "online": self.monitor.is_online,
            "userId": self.user_id,
            "running": self._running,
            "pendingCount": self.store.pending_count(),
            "lastPullAt": meta.last_pull_at,
            "lastPushAt": meta.last_push_at,
        }

    def _blocker(self) -> Optional[str]:
        if not self.enabled:
            return "sync disabled"
        if not self.user_id:
            return "not signed in"
        if not self.monitor.is_online:
            return "offline"
        return None

    # ------------------------------------------------------------------
    # Triggers
    def on_remote_change(self) -> None:
        self.logger.debug("Remote change notification")
        self.request_pull()

    def _on_connectivity(self, status: ConnectivityStatus) -> None:
        if status is not ConnectivityStatus.ONLINE:
            self.logger.info("Offline: local changes stay queued")
            self._notify()
            return
        if self.has_pushable(retry_rejected=True):
            self.logger.info("Connection restored, pushing queued changes")
            self.request_push(retry_rejected=True)
        else:
            self.logger.info("Connection restored, refreshing")
            self.request_pull()

    def request_pull(self) -> None:
        self._submit(PULL, self.pull)

    def request_push(self, *, retry_rejected: bool = False) -> None:
        self._submit(PUSH, lambda: self.push(retry_rejected=retry_rejected))

    def _submit(self, kind: str, job: Callable[[], object]) -> None:
        if self._closed:
            return
        with self._state_lock:
            if kind in self._queued:
                self.logger.debug("%s already queued", kind)
                return
            self._queued.add(kind)

        def run():
            with self._state_lock:
                self._queued.discard(kind)
            return job()

        future = self._get_executor().submit(run)
        future.add_done_callback(self._log_failure)

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tasksync-sync")
        return self._executor

    def _log_failure(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self.logger.error("Background sync pass failed: %s", exc, exc_info=exc)

    # ------------------------------------------------------------------
    # Passes
    def pull(self) -> bool:
        """Fetch remote state and merge it. Returns True when the store changed."""

        return bool(self._run_exclusive(PULL, self._pull_pass))

    def push(self, *, retry_rejected: bool = True) -> SyncReport:
        """Drain the pending queue. ``retry_rejected`` also resends validation failures."""

        report = self._run_exclusive(
            PUSH, lambda: self._push_pass(retry_rejected), retry_rejected=retry_rejected
        )
        if report is None:
            return SyncReport(skipped=True, reason="another sync is running")
        return report

    def _run_exclusive(self, kind: str, fn: Callable[[], object], *, retry_rejected: bool = False):
        with self._state_lock:
            if self._running is not None:
                if kind == PUSH:
                    self._deferred[PUSH] = self._deferred.get(PUSH, False) or retry_rejected
                else:
                    self._deferred.setdefault(PULL, False)
                self.logger.debug("%s deferred while %s is running", kind, self._running)
                return None
            self._running = kind
        try:
            result = fn()
        finally:
            with self._state_lock:
                self._running = None
            self._notify()
            self._run_deferred()
        return result

    def _run_deferred(self) -> None:
        with self._state_lock:
            deferred, self._deferred = self._deferred, {}
        if PUSH in deferred:
            retry = deferred[PUSH]
            self._run_exclusive(PUSH, lambda: self._push_pass(retry), retry_rejected=retry)
        elif PULL in deferred:
            self._run_exclusive(PULL, self._pull_pass)

    def _pull_pass(self) -> bool:
        reason = self._blocker()
        if reason:
            self.logger.debug("Pull skipped: %s", reason)
            return False
        try:
            remote = self.gateway.fetch_all(self.user_id)
        except SyncError as exc:
            self.logger.warning("Pull failed, serving local state: %s", exc)
            return False

        now = utc_now()
        with self.store.editing() as tasks:
            result = merge_remote(tasks, remote, now)
        self.store.set_last_pull_at(now)
        self.logger.info(
            "Pull: %d remote, %d added, %d updated, %d removed, %d local pending kept",
            len(remote),
            result.added,
            result.updated,
            result.removed,
            result.kept_local,
        )
        return result.changed

    def _push_pass(self, retry_rejected: bool) -> SyncReport:
        report = SyncReport()
        reason = self._blocker()
        if reason:
            self.logger.info("Push skipped: %s", reason)
            report.skipped = True
            report.reason = reason
            return report

        user_id = self.user_id
        with self.store.lock:
            queue = [task for task in self.store.load_all() if is_pushable(task, retry_rejected)]
        if not queue:
            self.logger.debug("Push: nothing to push")
            return report

        self.logger.info("Push: %d task(s) queued", len(queue))
        for snapshot in queue:
            self._push_one(user_id, snapshot, report)

        self.store.set_last_push_at()
        self.logger.info("Push finished: %d succeeded, %d failed", report.succeeded, report.failed)
        self._pull_pass()
        return report

    def _push_one(self, user_id: str, snapshot: Task, report: SyncReport) -> None:
        if snapshot.is_deleted and not snapshot.server_id:
            self._settle(snapshot, purge=True)
            report.succeeded += 1
            report.purged += 1
            return

        try:
            purge, server_id = self._send(user_id, snapshot)
        except NotFoundError:
            self.logger.warning("Task %s is gone remotely, purging local copy", snapshot.id)
            purge, server_id = True, None
        except StorageError:
            raise
        except SyncError as exc:
            self.logger.warning("Push of task %s failed (%s): %s", snapshot.id, exc.kind, exc)
            self._mark_failed(snapshot, exc)
            report.failed += 1
            report.errors[snapshot.id] = exc.message or str(exc) or exc.kind
            return

        self._settle(snapshot, purge=purge, server_id=server_id)
        report.succeeded += 1
        if purge:
            report.purged += 1

    def _send(self, user_id: str, snapshot: Task) -> Tuple[bool, Optional[str]]:
        if snapshot.is_deleted:
            self.gateway.soft_delete(snapshot.server_id)
            return True, None
        if snapshot.server_id:
            self.gateway.update(
                snapshot.server_id,
                {
                    "title": snapshot.title,
                    "description": snapshot.description,
                    "completed": snapshot.completed,
                },
            )
            return False, None
        created = self.gateway.insert(user_id, snapshot.title, snapshot.description, snapshot.completed)
        return False, created.server_id

    def _settle(self, snapshot: Task, *, purge: bool = False, server_id: Optional[str] = None) -> None:
        orphan: Optional[str] = None
        with self.store.editing() as tasks:
            current = _find(tasks, snapshot.id)
            if current is None:
                orphan = server_id
            elif purge:
                tasks.remove(current)
            else:
                if server_id and not current.server_id:
                    current.server_id = server_id
                if _was_edited(current, snapshot):
                    # Edited while the request was in flight: stays queued.
                    current.sync_status = SYNC_PENDING
                else:
                    current.sync_status = SYNC_SYNCED
                    current.last_synced_at = utc_now()
                    current.last_error = None
                    current.error_kind = None

        if orphan:
            self.logger.info("Task %s was deleted during its upload, removing remote copy", snapshot.id)
            try:
                self.gateway.soft_delete(orphan)
            except SyncError as exc:
                self.logger.warning("Could not remove orphaned remote task %s: %s", orphan, exc)

    def _mark_failed(self, snapshot: Task, exc: SyncError) -> None:
        with self.store.editing() as tasks:
            current = _find(tasks, snapshot.id)
            if current is None:
                return
            current.last_error = (exc.message or str(exc) or exc.kind)[:1000]
            current.error_kind = "validation" if exc.kind == "validation" else "transport"
            if not _was_edited(current, snapshot):
                current.sync_status = SYNC_ERROR


__all__ = [
    "MergeResult",
    "ReconciliationEngine",
    "SyncReport",
    "is_pushable",
    "merge_remote",
]
