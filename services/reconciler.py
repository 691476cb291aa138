"""Replays the outbox against the task server and folds results into the cache.

A pass runs Create, then Update, then Delete records, each group in
``enqueued_at`` order. Updates and deletes find their target through the
identity map, which only a successful create populates, so the phase order
must not change and records must not be sent concurrently.

The first failing remote call stops the whole pass; the failed record and
everything after it stay queued for the next pass.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, List, Optional

from core.errors import ReconciliationError, SyncError
from core.settings import LOGGING, SYNC_LOG_PATH
from models.pending_op import OP_CREATE, OP_DELETE, OP_UPDATE
from models.task import Task
from services.api_client import TasksApiClient
from services.connectivity import ConnectivityProvider
from services.identity_map import IdentityMap
from services.outbox import Outbox, PendingOperation
from services.task_cache import LocalTaskCache, normalize_task


def _ensure_logger() -> logging.Logger:
    logger = logging.getLogger("offline_tasks.sync")
    if not logger.handlers:
        Path(SYNC_LOG_PATH).parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            SYNC_LOG_PATH,
            maxBytes=LOGGING.max_bytes,
            backupCount=LOGGING.backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(LOGGING.format))
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


@dataclass
class SyncReport:
    offline: bool = False
    created: int = 0
    updated: int = 0
    deleted: int = 0
    discarded: int = 0
    aborted: bool = False
    failed_record_id: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def processed(self) -> int:
        return self.created + self.updated + self.deleted + self.discarded

    @property
    def protocol_violation(self) -> bool:
        return isinstance(self.error, ReconciliationError)


class _Abort(Exception):
    def __init__(self, op: PendingOperation, cause: Exception) -> None:
        super().__init__(str(cause))
        self.op = op
        self.cause = cause


class Reconciler:
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
        self.logger = _ensure_logger()
        self._listeners: List[Callable[[SyncReport], None]] = []

    # ------------------------------------------------------------------
    # Completion listeners
    def subscribe(self, callback: Callable[[SyncReport], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[SyncReport], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit_complete(self, report: SyncReport) -> None:
        for listener in list(self._listeners):
            try:
                listener(report)
            except Exception:
                self.logger.exception("Sync-complete listener %r failed", listener)

    # ------------------------------------------------------------------
    def run(self) -> SyncReport:
        report = SyncReport()
        if not self.connectivity.is_online():
            self.logger.info("Offline, skipping sync")
            report.offline = True
            return report

        ops = sorted(self.outbox.list_all(), key=lambda op: op.enqueued_at)
        if not ops:
            self.logger.debug("No pending operations")
            return report

        self.logger.info("Syncing %d pending operations", len(ops))
        creates = [op for op in ops if op.kind == OP_CREATE]
        updates = [op for op in ops if op.kind == OP_UPDATE]
        deletes = [op for op in ops if op.kind == OP_DELETE]

        try:
            for op in creates:
                self._guard(op, self._apply_create, report)
            for op in updates:
                self._guard(op, self._apply_update, report)
            for op in deletes:
                self._guard(op, self._apply_delete, report)
        except _Abort as abort:
            report.aborted = True
            report.failed_record_id = abort.op.record_id
            report.error = abort.cause
            self._log_failure(abort.op, abort.cause)
            return report

        self.logger.info(
            "Sync completed: %d created, %d updated, %d deleted, %d discarded",
            report.created,
            report.updated,
            report.deleted,
            report.discarded,
        )
        self._emit_complete(report)
        return report

    def _guard(self, op: PendingOperation, apply: Callable, report: SyncReport) -> None:
        try:
            apply(op, report)
        except Exception as exc:
            raise _Abort(op, exc) from exc

    def _log_failure(self, op: PendingOperation, exc: Exception) -> None:
        ref = op.client_ref or op.server_ref
        if isinstance(exc, ReconciliationError):
            self.logger.error(
                "Protocol violation on %s %s (server id %r): %s",
                op.kind,
                ref,
                exc.server_ref,
                exc,
            )
        elif isinstance(exc, SyncError):
            self.logger.warning("%s %s failed, stopping sync: %s", op.kind, ref, exc)
        else:
            self.logger.error("%s %s crashed, stopping sync", op.kind, ref, exc_info=exc)

    # ------------------------------------------------------------------
    # Phases
    def _apply_create(self, op: PendingOperation, report: SyncReport) -> None:
        self.logger.debug("Create %s", op.client_ref)
        response = self.api.create(op.payload, idempotency_key=op.client_ref or None)
        server_task = server_task_from_response(op.payload, response, op.client_ref)
        server_id = server_task.id

        self.logger.info("Mapped %s -> %s", op.client_ref, server_id)
        self.identity_map.set(op.client_ref, server_id)
        self.cache.remove(op.client_ref)
        self.cache.put(server_task)
        self.outbox.remove(op.record_id)
        report.created += 1

    def _apply_update(self, op: PendingOperation, report: SyncReport) -> None:
        server_id = self.identity_map.get(op.client_ref)
        if not server_id:
            self.logger.warning("No mapping for %r, dropping update", op.client_ref)
            self.outbox.remove(op.record_id)
            report.discarded += 1
            return

        self.logger.debug("Update %s (%s)", server_id, op.client_ref)
        response = self.api.update(server_id, op.payload)
        task = normalize_task({**op.payload, **(response or {}), "_id": server_id})
        task.pending_server = False
        self.cache.put(task)
        self.outbox.remove(op.record_id)
        report.updated += 1

    def _apply_delete(self, op: PendingOperation, report: SyncReport) -> None:
        server_id = op.server_ref or self.identity_map.get(op.client_ref)
        if not server_id:
            self.logger.warning("No server id for %r, dropping delete", op.client_ref)
            self.outbox.remove(op.record_id)
            report.discarded += 1
            return

        self.logger.debug("Delete %s", server_id)
        self.api.delete(server_id)
        self.cache.remove(server_id)
        self.outbox.remove(op.record_id)
        report.deleted += 1


def _server_id(response) -> Optional[str]:
    if not isinstance(response, dict):
        return None
    value = response.get("_id")
    if value is None:
        value = response.get("id")
    return str(value) if value is not None else None


def server_task_from_response(payload: dict, response, client_ref: str) -> Task:
    """Build the server-keyed cache row for a create, or raise ``ReconciliationError``.

    The submitted payload is overlaid with whatever the server echoed back,
    so fields the server omits keep their local values.
    """
    merged = {k: v for k, v in (payload or {}).items() if k not in ("_id", "id")}
    if isinstance(response, dict):
        merged.update(response)
    merged.pop("id", None)
    merged["_id"] = _server_id(response)
    task = normalize_task(merged)
    if not task.id or task.id == client_ref:
        raise ReconciliationError(
            "Create response carries no server-assigned id",
            client_ref=client_ref,
            server_ref=task.id or None,
        )
    task.owner_ref = client_ref or task.owner_ref
    task.pending_server = False
    return task


__all__ = ["Reconciler", "SyncReport", "server_task_from_response"]
