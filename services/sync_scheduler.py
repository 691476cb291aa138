"""Serializes reconciliation passes and runs them periodically."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.settings import SYNC
from services.connectivity import ConnectivityProvider
from services.reconciler import Reconciler, SyncReport


logger = logging.getLogger("offline_tasks.sync")


class SyncScheduler:
    """Runs at most one pass at a time.

    A trigger that arrives while a pass is running (for example from a
    completion listener) is remembered and served by one follow-up pass.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        connectivity: Optional[ConnectivityProvider] = None,
        *,
        interval_sec: Optional[int] = None,
    ) -> None:
        self.reconciler = reconciler
        self.connectivity = connectivity or reconciler.connectivity
        self.interval_sec = interval_sec or SYNC.auto_sync_interval_sec
        self._running = False
        self._follow_up = False
        self._was_online: Optional[bool] = None
        self.last_report: Optional[SyncReport] = None

    @property
    def running(self) -> bool:
        return self._running

    def trigger(self) -> Optional[SyncReport]:
        if self._running:
            logger.debug("Sync already running, queueing a follow-up pass")
            self._follow_up = True
            return None

        self._running = True
        try:
            report = self.reconciler.run()
            while self._follow_up and not report.aborted:
                self._follow_up = False
                report = self.reconciler.run()
            self._follow_up = False
        finally:
            self._running = False
        self.last_report = report
        return report

    def tick(self) -> Optional[SyncReport]:
        online = self.connectivity.is_online()
        if online and self._was_online is False:
            logger.info("Connectivity restored, syncing")
        elif not online and self._was_online:
            logger.info("Connectivity lost, pending changes stay queued")
        self._was_online = online
        if not online:
            return None
        return self.trigger()

    async def run_forever(self, stop: Optional[asyncio.Event] = None) -> None:
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Auto sync failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval_sec)
            except asyncio.TimeoutError:
                continue


__all__ = ["SyncScheduler"]
