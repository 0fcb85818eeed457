"""MaintenanceScheduler - Runs conflict reconciliation off the request path.

The reconciliation sweep is a batch job over a small window of salient
memories; this scheduler owns when it runs so request handlers never do.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from src.mnemos.memory.memory_manager import MemoryManager
from src.mnemos.memory.models import ReconciliationReport


logger = logging.getLogger(__name__)


@dataclass
class SchedulerConfig:
    """Configuration for background maintenance."""
    reconcile_interval: float = 3600.0  # Seconds between reconciliation sweeps
    run_on_start: bool = False          # Sweep immediately instead of after one interval


class MaintenanceScheduler:
    """Periodic reconciliation sweeps in a background asyncio task.

    Sweeps never overlap: ``run_once`` holds a lock for the duration of a
    sweep, and a manual call while the loop is sweeping waits its turn.
    """

    def __init__(self, memory: MemoryManager, config: SchedulerConfig | None = None):
        self.memory = memory
        self.config = config or SchedulerConfig()
        self._running = False
        self._task: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self.last_report: ReconciliationReport | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self) -> ReconciliationReport:
        """Run one reconciliation sweep now."""
        async with self._lock:
            report = await self.memory.resolve_memory_conflicts()

        self.last_report = report
        if report.error:
            logger.warning("Reconciliation sweep ended early: %s", report.error)
        else:
            logger.info(
                "Reconciliation sweep: %d scanned, %d pairs, %d merged",
                report.scanned, report.pairs_checked, report.merge_count
            )
        return report

    async def start(self) -> None:
        """Start the background reconciliation loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._reconcile_loop())

    async def stop(self) -> None:
        """Stop the background loop, waiting for it to unwind."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _reconcile_loop(self) -> None:
        if not self.config.run_on_start:
            await asyncio.sleep(self.config.reconcile_interval)

        while self._running:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Reconciliation loop error")

            await asyncio.sleep(self.config.reconcile_interval)
