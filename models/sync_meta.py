"""SQLModel table for reconciliation bookkeeping."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class SyncMeta(SQLModel, table=True):
    """Single-row table holding the last successful pull and push times."""

    id: int = Field(default=1, primary_key=True)
    last_pull_at: Optional[datetime] = None
    last_push_at: Optional[datetime] = None


__all__ = ["SyncMeta"]
