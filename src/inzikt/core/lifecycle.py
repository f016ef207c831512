"""Execution lifecycle — records the start and completion of scheduled job runs."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from inzikt.core.errors import JobNotFoundError
from inzikt.core.schedule import compute_next_run, ensure_utc, utcnow
from inzikt.core.store import JobStore
from inzikt.models.schedule import ExecutionStatus

logger = logging.getLogger(__name__)


class ExecutionLifecycle:
    """Creates execution records and advances the owning job's schedule."""

    def __init__(self, store: JobStore, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock

    async def record_start(self, job_id: str) -> str:
        """Create a running execution, stamp ``last_run`` and return the execution id."""
        job = await self.store.get_scheduled_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Scheduled job {job_id} not found")

        now = self.clock()
        execution = await self.store.create_execution(
            job_id=job.id,
            status=ExecutionStatus.RUNNING,
            started_at=now,
        )
        await self.store.update_scheduled_job(job, last_run=now, updated_at=now)
        await self.store.commit()
        return execution.id

    async def record_completion(
        self,
        execution_id: str,
        status: ExecutionStatus | str,
        result: Any = None,
        error: str | None = None,
    ) -> None:
        """Finalize an execution and recompute the job's ``next_run``.

        ``next_run`` is advanced on failure too, so a failing job is retried at
        its next regular slot instead of on every tick.

        Deleting a job cascades to its executions, so a job deleted mid-run
        leaves nothing to finalize and this raises :class:`JobNotFoundError`.
        """
        execution = await self.store.get_execution(execution_id, fresh=True)
        if execution is None:
            raise JobNotFoundError(f"Execution {execution_id} not found")
        job = await self.store.get_scheduled_job(execution.job_id)
        if job is None:
            raise JobNotFoundError(f"Scheduled job {execution.job_id} not found")

        now = self.clock()
        status = ExecutionStatus(status)
        started_at = ensure_utc(execution.started_at)
        duration_ms = max(0, int((now - started_at).total_seconds() * 1000))

        values: dict[str, Any] = {
            "status": status,
            "completed_at": now,
            "duration_ms": duration_ms,
        }
        if status == ExecutionStatus.COMPLETED:
            values["result"] = result
        else:
            values["error"] = error
        await self.store.update_execution(execution, **values)

        next_run = compute_next_run(job.frequency, job.cron_expression, now)
        await self.store.update_scheduled_job(job, next_run=next_run, updated_at=now)
        await self.store.commit()
        logger.debug(
            "Execution %s finished %s in %dms; job %s next run %s",
            execution_id,
            status,
            duration_ms,
            job.id,
            next_run.isoformat(),
        )
