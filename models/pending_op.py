"""SQLModel table for the outbox of not-yet-confirmed task mutations."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


OP_CREATE = "create"
OP_UPDATE = "update"
OP_DELETE = "delete"

VALID_KINDS = (OP_CREATE, OP_UPDATE, OP_DELETE)


def new_record_id() -> str:
    return uuid.uuid4().hex


class PendingOp(SQLModel, table=True):
    record_id: str = Field(default_factory=new_record_id, primary_key=True)
    kind: str = Field(index=True)
    client_ref: str = Field(default="", index=True)
    server_ref: Optional[str] = None
    payload: Optional[str] = None
    enqueued_at: datetime = Field(default_factory=utc_now, index=True)


__all__ = [
    "OP_CREATE",
    "OP_DELETE",
    "OP_UPDATE",
    "PendingOp",
    "VALID_KINDS",
    "new_record_id",
]
