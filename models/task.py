"""Local cache table holding the client's best-known view of each task."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from core.statuses import DEFAULT_STATUS
from datetime_utils import utc_now


class Task(SQLModel, table=True):
    # Client-generated while ``pending_server`` is set, server-assigned afterwards.
    id: str = Field(primary_key=True)
    title: str
    description: str = ""
    status: str = DEFAULT_STATUS
    owner_ref: Optional[str] = Field(default=None, index=True)
    created_at: Optional[datetime] = None
    pending_server: bool = False
    estimated_minutes: int = 0
    actual_minutes: int = 0
    is_tracking: bool = False
    tracking_started_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = ["Task"]
