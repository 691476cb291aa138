"""Durable queue of task mutations waiting to be replayed against the server."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlmodel import select
from sqlalchemy import func

from datetime_utils import ensure_utc, utc_now
from models.pending_op import PendingOp, VALID_KINDS
from storage.db import get_session


@dataclass
class PendingOperation:
    record_id: str
    kind: str
    client_ref: str
    enqueued_at: datetime
    server_ref: Optional[str] = None
    payload: Dict = field(default_factory=dict)


def _decode_payload(raw: Optional[str]) -> Dict:
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _to_operation(row: PendingOp) -> PendingOperation:
    return PendingOperation(
        record_id=row.record_id,
        kind=row.kind,
        client_ref=row.client_ref or "",
        server_ref=row.server_ref or None,
        payload=_decode_payload(row.payload),
        enqueued_at=ensure_utc(row.enqueued_at),
    )


class Outbox:
    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory

    def enqueue(
        self,
        kind: str,
        client_ref: str,
        *,
        payload: Optional[dict] = None,
        server_ref: Optional[str] = None,
        enqueued_at: Optional[datetime] = None,
    ) -> PendingOperation:
        if kind not in VALID_KINDS:
            raise ValueError(f"Unsupported op: {kind}")
        with self._session_factory() as session:
            if enqueued_at is None:
                enqueued_at = utc_now()
                newest = ensure_utc(session.exec(select(func.max(PendingOp.enqueued_at))).one())
                if newest is not None and enqueued_at <= newest:
                    enqueued_at = newest + timedelta(microseconds=1)
            record = PendingOp(
                kind=kind,
                client_ref=client_ref or "",
                server_ref=server_ref,
                payload=json.dumps(payload, ensure_ascii=False) if payload is not None else None,
                enqueued_at=ensure_utc(enqueued_at),
            )
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_operation(record)

    def list_all(self) -> List[PendingOperation]:
        with self._session_factory() as session:
            rows = list(session.exec(select(PendingOp)))
        return [_to_operation(row) for row in rows]

    def remove(self, record_id: str) -> None:
        with self._session_factory() as session:
            record = session.get(PendingOp, record_id)
            if record:
                session.delete(record)
                session.commit()

    def count(self) -> int:
        with self._session_factory() as session:
            return int(session.exec(select(func.count()).select_from(PendingOp)).one())

    def count_by_kind(self) -> Dict[str, int]:
        counts = {kind: 0 for kind in VALID_KINDS}
        with self._session_factory() as session:
            stmt = select(PendingOp.kind, func.count()).group_by(PendingOp.kind)
            for kind, total in session.exec(stmt):
                counts[kind] = int(total)
        return counts


__all__ = ["Outbox", "PendingOperation"]
