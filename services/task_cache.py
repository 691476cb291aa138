"""Local task cache plus conversion between wire dicts and cached rows.

The server and the optimistic local records do not agree on field naming
(``_id`` vs ``id``, missing titles, free-form statuses), so everything that
enters the cache from the network goes through :func:`normalize_task`.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlmodel import select

from core.settings import SYNC
from core.statuses import normalize_status
from datetime_utils import parse_timestamp, to_epoch_ms, to_iso_utc, utc_now
from models.task import Task
from storage.db import get_session


# Fields the server accepts on create/update.
REQUEST_FIELDS = (
    "title",
    "description",
    "status",
    "estimatedTime",
    "actualTime",
    "isTracking",
    "startTime",
)


def _as_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    if isinstance(value, (bool, int, float)):
        return bool(value)
    return False


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def normalize_task(raw: Optional[Mapping[str, Any]]) -> Task:
    """Coerce an arbitrary dict into a well-formed, unsaved :class:`Task`."""
    raw = raw if isinstance(raw, Mapping) else {}
    ident = _first(raw, "_id", "id")
    title = raw.get("title")
    return Task(
        id=str(ident) if ident is not None else "",
        title=str(title) if title is not None else SYNC.untitled_placeholder,
        description=str(raw.get("description") or ""),
        status=normalize_status(raw.get("status")),
        owner_ref=_first(raw, "ownerRef", "clientRef"),
        created_at=parse_timestamp(raw.get("createdAt")),
        pending_server=_as_bool(raw.get("pendingServer")),
        estimated_minutes=_as_int(raw.get("estimatedTime")),
        actual_minutes=_as_int(raw.get("actualTime")),
        is_tracking=_as_bool(raw.get("isTracking")),
        tracking_started_at=parse_timestamp(raw.get("startTime")),
        updated_at=utc_now(),
    )


def task_to_payload(task: Task) -> Dict[str, Any]:
    """Wire representation of a cached task, as stored in outbox payloads."""
    return {
        "_id": task.id,
        "title": task.title,
        "description": task.description or "",
        "status": normalize_status(task.status),
        "ownerRef": task.owner_ref,
        "createdAt": to_iso_utc(task.created_at),
        "pendingServer": bool(task.pending_server),
        "estimatedTime": task.estimated_minutes or 0,
        "actualTime": task.actual_minutes or 0,
        "isTracking": bool(task.is_tracking),
        "startTime": to_epoch_ms(task.tracking_started_at),
    }


def request_body(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: payload[key] for key in REQUEST_FIELDS if key in payload}


class LocalTaskCache:
    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory

    def put(self, task: Task) -> Task:
        with self._session_factory() as session:
            merged = session.merge(task)
            session.commit()
            session.refresh(merged)
            return merged

    def remove(self, task_id: str) -> None:
        with self._session_factory() as session:
            obj = session.get(Task, task_id)
            if obj:
                session.delete(obj)
                session.commit()

    def get(self, task_id: str) -> Optional[Task]:
        if not task_id:
            return None
        with self._session_factory() as session:
            return session.get(Task, task_id)

    def get_all(self) -> List[Task]:
        with self._session_factory() as session:
            return list(session.exec(select(Task)))

    def replace_all(self, tasks: Iterable[Task]) -> None:
        """Mirror a server listing, keeping rows the server has not assigned yet."""
        with self._session_factory() as session:
            for obj in session.exec(select(Task).where(Task.pending_server == False)).all():  # noqa: E712
                session.delete(obj)
            session.flush()
            for task in tasks:
                session.merge(task)
            session.commit()


__all__ = [
    "LocalTaskCache",
    "REQUEST_FIELDS",
    "normalize_task",
    "request_body",
    "task_to_payload",
]
