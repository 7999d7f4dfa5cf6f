# tasksync/models/task.py
from __future__ import annotations

from datetime import datetime
from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


SYNC_PENDING = "pending"
SYNC_SYNCED = "synced"
SYNC_ERROR = "error"

SYNC_STATUSES = (SYNC_PENDING, SYNC_SYNCED, SYNC_ERROR)

EDITABLE_FIELDS = ("title", "description", "completed")


def new_task_id() -> str:
    return str(uuid.uuid4())


class Task(SQLModel, table=True):
    id: str = Field(default_factory=new_task_id, primary_key=True)
    server_id: Optional[str] = Field(default=None, index=True)
    title: str
    description: Optional[str] = None
    completed: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    is_deleted: bool = False
    last_synced_at: Optional[datetime] = None
    sync_status: str = Field(default=SYNC_PENDING, index=True)  # pending / synced / error
    last_error: Optional[str] = None
    error_kind: Optional[str] = None  # transport / validation
    position: int = Field(default=0, index=True)

    @property
    def is_pending(self) -> bool:
        return self.sync_status != SYNC_SYNCED


COLUMNS = tuple(Task.__table__.columns.keys())


def clone_task(task: Task) -> Task:
    """Return a session-free copy of ``task``."""

    return Task(**{name: getattr(task, name) for name in COLUMNS})


__all__ = [
    "COLUMNS",
    "EDITABLE_FIELDS",
    "SYNC_ERROR",
    "SYNC_PENDING",
    "SYNC_STATUSES",
    "SYNC_SYNCED",
    "Task",
    "clone_task",
    "new_task_id",
]
