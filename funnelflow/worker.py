"""Periodic driver that advances due enrollments."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from .config import WorkerConfig
from .contracts import utcnow
from .engine import WorkflowEngine
from .utils import retry

logger = logging.getLogger(__name__)


class WorkerReport(BaseModel):
    """Result of one batch of enrollment processing."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    remaining: int = 0
    duration_ms: int = 0
    errors: List[str] = Field(default_factory=list)


class EnrollmentWorker:
    """Find enrollments whose ``next_step_at`` has passed and advance them.

    ``process_step`` is safe to call more than once for the same enrollment,
    so overlapping worker runs only cost duplicate reads.
    """

    def __init__(
        self,
        engine: WorkflowEngine,
        config: WorkerConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._engine = engine
        self._config = config or WorkerConfig()
        self._clock = clock

    async def run_once(self) -> WorkerReport:
        """Process one batch of due enrollments within the time budget."""
        started = time.monotonic()
        report = WorkerReport()
        repository = self._engine.repository

        due = await repository.list_due_enrollments(self._clock(), self._config.batch_size)
        logger.info(f"Found {len(due)} due enrollments")

        for enrollment in due:
            if time.monotonic() - started > self._config.max_processing_seconds:
                logger.warning("Approaching time limit, stopping batch")
                break

            report.processed += 1
            if await self._engine.process_step(enrollment.id):
                report.succeeded += 1
            else:
                report.failed += 1
                report.errors.append(f"Enrollment {enrollment.id}: step not advanced")

        report.remaining = len(due) - report.processed
        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Processed {report.processed} enrollments: {report.succeeded} succeeded, "
            f"{report.failed} failed, {report.remaining} remaining in {report.duration_ms}ms"
        )
        return report

    async def run(self, lifespan: Optional[float] = None) -> None:
        """Poll until ``lifespan`` seconds elapse, or forever when ``None``.

        Repository errors are treated as transient and retried with
        exponential backoff. After ``max_backoff_attempts`` consecutive
        failures the delay stops growing.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan is not None else None
        attempt = 0

        while deadline is None or loop.time() < deadline:
            try:
                await self.run_once()
            except Exception:
                attempt = min(attempt + 1, self._config.max_backoff_attempts)
                logger.exception(f"Enrollment batch failed, backing off (attempt {attempt})")
                await retry.schedule_retry(attempt, cap=self._config.poll_interval)
                continue

            attempt = 0
            delay = self._config.poll_interval
            if deadline is not None:
                delay = min(delay, max(deadline - loop.time(), 0))
            await asyncio.sleep(delay)

    async def stats(self) -> Dict[str, int]:
        """Pending and active enrollment counts plus active workflow count."""
        repository = self._engine.repository
        return {
            "pending_enrollments": await repository.count_enrollments(
                status="active", due_before=self._clock()
            ),
            "active_enrollments": await repository.count_enrollments(status="active"),
            "active_workflows": await repository.count_active_workflows(),
        }
