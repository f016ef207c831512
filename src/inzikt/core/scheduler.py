"""Scheduler tick — runs due scheduled jobs through their registered handlers.

The tick is invoked from outside (cron endpoint, CLI); it never schedules
itself. Due jobs run strictly one after another, and a failing job only ever
fails its own execution record.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from inzikt.core.errors import JobError, JobNotFoundError
from inzikt.core.lifecycle import ExecutionLifecycle
from inzikt.core.registry import HandlerRegistry, JobHandler
from inzikt.core.schedule import utcnow
from inzikt.core.store import JobStore
from inzikt.models.schedule import ExecutionStatus, ScheduledJob

logger = structlog.get_logger(__name__)


@dataclass
class JobRunResult:
    """Outcome of one job run within a tick or a manual run."""

    job_id: str
    execution_id: str | None
    status: ExecutionStatus
    result: Any = None
    error: str | None = None
    unhandled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "jobId": self.job_id,
            "executionId": self.execution_id,
            "status": self.status.value,
        }
        if self.succeeded:
            payload["result"] = self.result
        else:
            payload["error"] = self.error
        return payload


@dataclass
class TickResult:
    jobs_run: int = 0
    results: list[JobRunResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobsRun": self.jobs_run,
            "results": [r.to_dict() for r in self.results],
        }


class Scheduler:
    """Runs due jobs and single jobs on demand over one store and registry."""

    def __init__(
        self,
        store: JobStore,
        registry: HandlerRegistry,
        *,
        clock: Callable[[], datetime] = utcnow,
        handler_timeout: float | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.clock = clock
        self.handler_timeout = handler_timeout
        self.lifecycle = ExecutionLifecycle(store, clock)

    async def run_due_jobs(self) -> TickResult:
        """Run every enabled job whose ``next_run`` has passed, oldest first.

        A :class:`~inzikt.core.errors.StoreError` from the due-jobs query
        propagates; anything that goes wrong afterwards is recorded per job.
        """
        now = self.clock()
        jobs = await self.store.due_jobs(now)
        logger.info("Scheduler tick", due_jobs=len(jobs), now=now.isoformat())

        tick = TickResult()
        for job in jobs:
            tick.results.append(await self._run(job))
        tick.jobs_run = len(tick.results)
        return tick

    async def run_job_now(self, job_id: str) -> JobRunResult:
        """Run one job immediately, ignoring ``enabled`` and ``next_run``."""
        job = await self.store.get_scheduled_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Scheduled job {job_id} not found")
        return await self._run(job)

    async def _run(self, job: ScheduledJob) -> JobRunResult:
        job_id, job_type = job.id, job.job_type
        parameters = dict(job.parameters or {})
        log = logger.bind(job_id=job_id, job_type=job_type)

        try:
            execution_id = await self.lifecycle.record_start(job_id)
        except JobError as exc:
            log.exception("Could not record job start")
            await self.store.rollback()
            return JobRunResult(job_id, None, ExecutionStatus.FAILED, error=str(exc))

        log = log.bind(execution_id=execution_id)
        handler = self.registry.resolve(job_type)
        if handler is None:
            error = f"No handler for job type: {job_type}"
            log.warning("Unregistered job type")
            await self._complete(log, execution_id, ExecutionStatus.FAILED, error=error)
            return JobRunResult(
                job_id, execution_id, ExecutionStatus.FAILED, error=error, unhandled=True
            )

        try:
            result = await self._invoke(handler, parameters)
        except TimeoutError:
            error = f"Handler timed out after {self.handler_timeout}s"
            log.error("Job handler timed out", timeout=self.handler_timeout)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            log.exception("Job handler failed")
        else:
            await self._complete(log, execution_id, ExecutionStatus.COMPLETED, result=result)
            log.info("Job completed")
            return JobRunResult(job_id, execution_id, ExecutionStatus.COMPLETED, result=result)

        await self.store.rollback()
        await self._complete(log, execution_id, ExecutionStatus.FAILED, error=error)
        return JobRunResult(job_id, execution_id, ExecutionStatus.FAILED, error=error)

    async def _invoke(self, handler: JobHandler, parameters: dict[str, Any]) -> Any:
        if self.handler_timeout:
            return await asyncio.wait_for(handler(parameters), timeout=self.handler_timeout)
        return await handler(parameters)

    async def _complete(
        self,
        log: Any,
        execution_id: str,
        status: ExecutionStatus,
        *,
        result: Any = None,
        error: str | None = None,
    ) -> None:
        try:
            await self.lifecycle.record_completion(execution_id, status, result=result, error=error)
        except JobError:
            # The execution stays "running"; the job is due again next tick
            log.exception("Could not record job completion")
            await self.store.rollback()
