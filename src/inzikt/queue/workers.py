"""Celery workers — background job execution.

The worker task is the error boundary for a background job: whatever the
runner raises ends up as a ``failed`` row, and a cancellation observed at a
checkpoint simply stops the run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from celery import shared_task

from inzikt.core.errors import JobCanceledError, JobError
from inzikt.db.session import reset_engine
from inzikt.models.job import BackgroundJob, BackgroundJobType

logger = logging.getLogger(__name__)

Runner = Callable[[BackgroundJob, Any], Awaitable[dict[str, Any]]]


def _get_runner(job_type: BackgroundJobType | str) -> Runner | None:
    from inzikt.jobs.analysis import run_analysis
    from inzikt.jobs.imports import run_import

    runners: dict[str, Runner] = {
        BackgroundJobType.IMPORT: run_import,
        BackgroundJobType.ANALYSIS: run_analysis,
    }
    return runners.get(job_type)


async def _fail_quietly(service, job_id: str, message: str) -> None:
    try:
        await service.fail(job_id, message)
    except JobError as exc:
        # Canceled meanwhile, or the store is unreachable
        logger.warning("Could not mark job %s failed: %s", job_id, exc)


async def _run_background_job(job_id: str) -> dict[str, Any]:
    """Load the job, run its runner, and write the terminal state back."""
    from inzikt.core.background import BackgroundJobService
    from inzikt.core.store import JobStore
    from inzikt.db.session import get_session_factory

    reset_engine()

    async with get_session_factory()() as session:
        store = JobStore(session)
        service = BackgroundJobService(store)

        job = await store.get_background_job(job_id, fresh=True)
        if job is None:
            logger.warning("Background job %s not found", job_id)
            return {"status": "missing", "job_id": job_id}
        if not job.is_active:
            logger.info("Background job %s already %s, skipping", job_id, job.status)
            return {"status": str(job.status), "job_id": job_id}

        runner = _get_runner(job.job_type)
        if runner is None:
            message = f"No runner for job type: {job.job_type}"
            logger.error(message)
            await _fail_quietly(service, job_id, message)
            return {"status": "failed", "job_id": job_id, "error": message}

        try:
            job = await service.mark_processing(job_id)
            result = await runner(job, service)
            await service.complete(job_id, result)
        except JobCanceledError:
            logger.info("Background job %s was canceled, stopping", job_id)
            return {"status": "canceled", "job_id": job_id}
        except Exception as exc:
            logger.exception("Background job %s failed", job_id)
            await session.rollback()
            error = str(exc) or type(exc).__name__
            await _fail_quietly(service, job_id, error)
            return {"status": "failed", "job_id": job_id, "error": error}

    return {"status": "completed", "job_id": job_id, "result": result}


@shared_task(name="inzikt.queue.workers.execute_background_job")
def execute_background_job(job_id: str) -> dict[str, Any]:
    """Run one background job to a terminal state."""
    logger.info("Executing background job %s", job_id)
    return asyncio.run(_run_background_job(job_id))
