"""
Periodic background retention sweep.

Runs the configured default policy over every entity on an interval. Each
entity is swept in its own session; cancelling the task between or during
entities is safe because every retention step commits on its own.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from case_versions.core.config import settings
from case_versions.core.deadline import Deadline
from case_versions.crud.entity import entity_crud
from case_versions.schemas.retention import RetentionPolicy, RetentionReport
from case_versions.services.retention_manager import RetentionManager, retention_manager

logger = logging.getLogger(__name__)


def _days(value: Optional[int]) -> Optional[timedelta]:
    return timedelta(days=value) if value is not None else None


def default_policy() -> RetentionPolicy:
    return RetentionPolicy(
        max_active_versions=settings.sweep_max_active_versions,
        max_age=_days(settings.sweep_max_age_days),
        compress_after=_days(settings.sweep_compress_after_days),
        purge_after=_days(settings.sweep_purge_after_days),
    )


class RetentionSweeper:
    def __init__(
        self,
        session_factory: Callable[[], Any],
        *,
        manager: RetentionManager = retention_manager,
        policy: Optional[RetentionPolicy] = None,
        interval_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.manager = manager
        self.policy = policy or default_policy()
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.retention_sweep_interval_seconds
        self.is_running = False
        self.worker_task: Optional[asyncio.Task] = None
        self.current_deadline: Optional[Deadline] = None

        self.stats = {
            "sweeps_completed": 0,
            "entities_swept": 0,
            "sweep_failures": 0,
        }

    async def start(self):
        if self.interval_seconds <= 0 or self.policy.is_empty():
            logger.info("🧹 Retention sweeper disabled")
            return
        if not self.is_running:
            self.is_running = True
            self.worker_task = asyncio.create_task(self._worker())
            logger.info(f"🚀 Retention sweeper started (every {self.interval_seconds}s)")

    async def stop(self):
        if self.is_running:
            self.is_running = False
            if self.current_deadline is not None:
                self.current_deadline.cancel()
            if self.worker_task:
                self.worker_task.cancel()
                try:
                    await self.worker_task
                except asyncio.CancelledError:
                    pass
                self.worker_task = None
            logger.info("🛑 Retention sweeper stopped")

    async def _worker(self):
        while self.is_running:
            try:
                await self.sweep_once()
            except Exception as e:
                self.stats["sweep_failures"] += 1
                logger.error(f"❌ Retention sweep failed: {str(e)}")
            await asyncio.sleep(self.interval_seconds)

    async def sweep_once(self) -> List[RetentionReport]:
        """Apply the policy to every entity, including soft-deleted ones"""
        async with self.session_factory() as db:
            entities = await entity_crud.get_multi(db, order_by=["entity_id"], order_desc=False, include_deleted=True)
            entity_ids = [entity.entity_id for entity in entities]

        reports = []
        self.current_deadline = Deadline(label="retention sweep")
        try:
            for entity_id in entity_ids:
                if self.current_deadline.cancelled:
                    break
                async with self.session_factory() as db:
                    report = await self.manager.apply(db, entity_id, self.policy, deadline=self.current_deadline)
                reports.append(report)
                self.stats["entities_swept"] += 1
        finally:
            self.current_deadline = None

        self.stats["sweeps_completed"] += 1
        return reports

    def get_stats(self) -> Dict[str, Any]:
        return {**self.stats, "is_running": self.is_running}
