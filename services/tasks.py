"""Task mutations used by the presentation layer.

Every change is written to the local cache first. When the network is up the
change is sent to the server right away; when it is down, or the call fails,
an outbox record is queued for the reconciler instead.
"""
from __future__ import annotations

import logging
import uuid
from typing import Dict, Iterable, List, Optional

from core.errors import SyncError
from core.statuses import STATUS_COMPLETED, STATUS_PENDING, normalize_status, toggle_status
from datetime_utils import minutes_between, utc_now
from models.pending_op import OP_CREATE, OP_DELETE, OP_UPDATE
from models.task import Task
from services.api_client import TasksApiClient
from services.connectivity import ConnectivityProvider
from services.identity_map import IdentityMap
from services.outbox import Outbox
from services.reconciler import server_task_from_response
from services.task_cache import LocalTaskCache, normalize_task, task_to_payload


logger = logging.getLogger("offline_tasks.tasks")

CLIENT_REF_PREFIX = "local-"

_EDITABLE_FIELDS = {"title", "description", "status", "estimated_minutes"}


def new_client_ref() -> str:
    return f"{CLIENT_REF_PREFIX}{uuid.uuid4().hex}"


def is_sync_pending(task: Task) -> bool:
    return bool(task.pending_server)


def format_minutes(minutes: Optional[int]) -> str:
    if not minutes:
        return "0m"
    hours, mins = divmod(int(minutes), 60)
    if hours:
        return f"{hours}h {mins}m" if mins else f"{hours}h"
    return f"{mins}m"


def variance_percent(estimated: Optional[int], actual: Optional[int]) -> int:
    if not estimated or not actual:
        return 0
    return round((actual - estimated) / estimated * 100)


def task_stats(tasks: Iterable[Task]) -> Dict[str, int]:
    items = list(tasks)
    completed = [t for t in items if t.status == STATUS_COMPLETED]
    estimated = sum(t.estimated_minutes or 0 for t in completed)
    actual = sum(t.actual_minutes or 0 for t in completed)
    return {
        "total": len(items),
        "done": len(completed),
        "pending_sync": sum(1 for t in items if is_sync_pending(t)),
        "estimated_minutes": estimated,
        "actual_minutes": actual,
        "variance": variance_percent(estimated, actual),
    }


class TaskService:
    def __init__(
        self,
        api: TasksApiClient,
        connectivity: ConnectivityProvider,
        *,
        outbox: Optional[Outbox] = None,
        identity_map: Optional[IdentityMap] = None,
        cache: Optional[LocalTaskCache] = None,
    ) -> None:
        self.api = api
        self.connectivity = connectivity
        self.outbox = outbox or Outbox()
        self.identity_map = identity_map or IdentityMap()
        self.cache = cache or LocalTaskCache()

    # ------------------------------------------------------------------
    # Reads
    def list_tasks(self) -> List[Task]:
        if self.connectivity.is_online():
            try:
                items = self.api.list_tasks()
            except SyncError as exc:
                logger.warning("Listing tasks failed, using local cache: %s", exc)
            else:
                self.cache.replace_all(self._from_server(item) for item in items)
        tasks = self.cache.get_all()
        tasks.sort(key=lambda t: t.created_at or t.updated_at, reverse=True)
        return tasks

    def get(self, task_id: str) -> Optional[Task]:
        return self.cache.get(task_id)

    def pending_count(self) -> int:
        return self.outbox.count()

    # ------------------------------------------------------------------
    # Mutations
    def add(
        self,
        title: str,
        description: str = "",
        status: str = STATUS_PENDING,
        estimated_minutes: int = 0,
    ) -> Task:
        title = (title or "").strip()
        if not title:
            raise ValueError("Title is required")

        client_ref = new_client_ref()
        task = self.cache.put(
            Task(
                id=client_ref,
                title=title,
                description=(description or "").strip(),
                status=normalize_status(status),
                owner_ref=client_ref,
                created_at=utc_now(),
                pending_server=True,
                estimated_minutes=max(0, int(estimated_minutes or 0)),
            )
        )
        payload = task_to_payload(task)

        if self.connectivity.is_online():
            try:
                response = self.api.create(payload, idempotency_key=client_ref)
                server_task = server_task_from_response(payload, response, client_ref)
            except SyncError as exc:
                logger.warning("Create failed, queueing %s: %s", client_ref, exc)
            else:
                self.identity_map.set(client_ref, server_task.id)
                self.cache.remove(client_ref)
                return self.cache.put(server_task)

        self.outbox.enqueue(OP_CREATE, client_ref, payload=payload)
        return task

    def update(self, task_id: str, **fields) -> Task:
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported fields: {sorted(unknown)}")
        task = self._require(task_id)
        if "title" in fields:
            title = (fields["title"] or "").strip()
            if not title:
                raise ValueError("Title is required")
            task.title = title
        if "description" in fields:
            task.description = (fields["description"] or "").strip()
        if "status" in fields:
            task.status = normalize_status(fields["status"])
        if "estimated_minutes" in fields:
            task.estimated_minutes = max(0, int(fields["estimated_minutes"] or 0))
        return self._save_and_push(task)

    def change_status(self, task_id: str, status: str) -> Task:
        return self.update(task_id, status=status)

    def toggle_status(self, task_id: str) -> Task:
        task = self._require(task_id)
        return self.update(task_id, status=toggle_status(task.status))

    def toggle_tracking(self, task_id: str) -> Task:
        task = self._require(task_id)
        now = utc_now()
        if task.is_tracking:
            task.actual_minutes = (task.actual_minutes or 0) + minutes_between(task.tracking_started_at, now)
            task.is_tracking = False
            task.tracking_started_at = None
        else:
            task.is_tracking = True
            task.tracking_started_at = now
        return self._save_and_push(task)

    def complete(self, task_id: str) -> Task:
        task = self._require(task_id)
        if task.is_tracking:
            task.actual_minutes = (task.actual_minutes or 0) + minutes_between(
                task.tracking_started_at, utc_now()
            )
        task.status = STATUS_COMPLETED
        task.is_tracking = False
        task.tracking_started_at = None
        return self._save_and_push(task)

    def remove(self, task_id: str) -> None:
        task = self.cache.get(task_id)
        self.cache.remove(task_id)
        client_ref = (task.owner_ref if task else None) or task_id
        server_id = self._server_id(task) if task else None

        if server_id and self.connectivity.is_online():
            try:
                self.api.delete(server_id)
                return
            except SyncError as exc:
                logger.warning("Delete failed, queueing %s: %s", server_id, exc)

        self.outbox.enqueue(OP_DELETE, client_ref, server_ref=server_id)

    # ------------------------------------------------------------------
    def _require(self, task_id: str) -> Task:
        task = self.cache.get(task_id)
        if task is None:
            raise KeyError(task_id)
        return task

    def _from_server(self, item: dict) -> Task:
        task = normalize_task(item)
        # Keep the originating client ref so later offline edits still resolve.
        task.owner_ref = task.owner_ref or self.identity_map.get_client_ref(task.id)
        return task

    def _server_id(self, task: Task) -> Optional[str]:
        mapped = self.identity_map.get(task.owner_ref)
        if mapped:
            return mapped
        return None if task.pending_server else task.id

    def _save_and_push(self, task: Task) -> Task:
        task.updated_at = utc_now()
        task = self.cache.put(task)
        payload = task_to_payload(task)
        server_id = self._server_id(task)

        if server_id and self.connectivity.is_online():
            try:
                self.api.update(server_id, payload)
                return task
            except SyncError as exc:
                logger.warning("Update failed, queueing %s: %s", server_id, exc)

        client_ref = task.owner_ref or task.id
        if not self.identity_map.get(client_ref) and not task.pending_server:
            # Replay resolves updates through the identity map only.
            logger.warning("Queued update for %s has no client mapping and will be dropped", task.id)
        self.outbox.enqueue(OP_UPDATE, client_ref, payload=payload)
        return task


__all__ = [
    "CLIENT_REF_PREFIX",
    "TaskService",
    "format_minutes",
    "is_sync_pending",
    "new_client_ref",
    "task_stats",
    "variance_percent",
]
