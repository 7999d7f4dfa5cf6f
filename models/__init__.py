"""ORM models exposed by the TaskSync application."""
from .task import Task
from .sync_meta import SyncMeta

__all__ = ["Task", "SyncMeta"]
