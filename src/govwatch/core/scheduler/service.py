"""
APScheduler v4 integration for GovWatch.

A single interval schedule wakes the orchestrator; each source's own
frequency then decides whether it actually runs.
"""

from __future__ import annotations

import os
import socket
from datetime import timedelta
from uuid import uuid4

from apscheduler import AsyncScheduler, ConflictPolicy
from apscheduler.datastores.sqlalchemy import SQLAlchemyDataStore
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import create_async_engine

from ..config.loader import load_app_config
from ..logging import get_logger
from ..orchestrator.runner import OrchestratorResult, RunOptions, create_orchestrator
from .locks import LockManager

logger = get_logger("scheduler")

SCHEDULE_ID = "govwatch:check-sources"
LOCK_NAME = "scheduler:check-sources"


async def execute_scheduled_check(holder_id: str, config_path: str | None = None) -> OrchestratorResult | None:
    """Run one scheduler tick.

    Args:
        holder_id: Identifier of this scheduler process for the run lock
        config_path: app.yaml to load (default location when None)

    Returns:
        The run result, or None when another tick still holds the lock
    """
    config = load_app_config(config_path)
    orchestrator = create_orchestrator(config)
    locks = LockManager(orchestrator.sessions)

    if not locks.acquire(LOCK_NAME, holder_id, ttl_minutes=config.scheduler.lock_ttl_minutes):
        logger.info("Lock held, skipping scheduled check")
        return None

    try:
        result = await orchestrator.run(
            RunOptions(force=False, run_purge=config.orchestrator.run_purge)
        )
    finally:
        locks.release(LOCK_NAME, holder_id)

    if result.success:
        logger.info(
            "Scheduled check done: %d alerts found, %d distributed",
            result.total_alerts_found,
            result.total_alerts_distributed,
        )
    else:
        logger.warning("Scheduled check finished with errors: %s", "; ".join(result.errors))
    return result


class SchedulerService:
    """APScheduler v4 integration for GovWatch."""

    def __init__(
        self,
        db_url: str = "sqlite+aiosqlite:///data/schedules.db",
        check_interval_minutes: int = 15,
        config_path: str | None = None,
    ) -> None:
        self.db_url = db_url
        self.check_interval_minutes = check_interval_minutes
        self.config_path = config_path
        self._scheduler: AsyncScheduler | None = None
        self._holder_id = f"{socket.gethostname()}-{os.getpid()}-{uuid4().hex[:8]}"

    @property
    def holder_id(self) -> str:
        return self._holder_id

    def _data_store(self) -> SQLAlchemyDataStore:
        return SQLAlchemyDataStore(create_async_engine(self.db_url))

    async def start(self) -> None:
        """Start scheduler in foreground mode (blocking)."""
        async with AsyncScheduler(self._data_store()) as scheduler:
            self._scheduler = scheduler
            await self._add_check_schedule()
            await scheduler.run_until_stopped()

    async def _add_check_schedule(self) -> None:
        if self._scheduler is None:
            raise RuntimeError("Scheduler is not initialized")

        await self._scheduler.add_schedule(
            execute_scheduled_check,
            IntervalTrigger(minutes=self.check_interval_minutes),
            id=SCHEDULE_ID,
            args=[self._holder_id, self.config_path],
            conflict_policy=ConflictPolicy.replace,
            max_jitter=timedelta(seconds=30),
        )
        logger.info("Checking sources every %d minutes", self.check_interval_minutes)

    async def trigger_now(self) -> None:
        """Run one check immediately through the scheduler, then stop."""
        async with AsyncScheduler(self._data_store()) as scheduler:
            run_id = f"run-now:{uuid4().hex[:8]}"

            async def _run_once(holder_id: str, config_path: str | None) -> None:
                try:
                    await execute_scheduled_check(holder_id, config_path)
                finally:
                    await scheduler.stop()

            await scheduler.add_schedule(
                _run_once,
                DateTrigger(),
                id=run_id,
                args=[self._holder_id, self.config_path],
                conflict_policy=ConflictPolicy.replace,
            )

            await scheduler.run_until_stopped()
