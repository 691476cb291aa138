"""Association between client-generated and server-assigned task ids."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class IdMapping(SQLModel, table=True):
    """One row per task created offline and later accepted by the server."""

    client_ref: str = Field(primary_key=True)
    server_ref: str = Field(index=True)
    created_at: datetime = Field(default_factory=utc_now)


__all__ = ["IdMapping"]
