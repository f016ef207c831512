"""Background job dispatcher — hands pending jobs to the Celery workers."""

from __future__ import annotations

import logging

from inzikt.models.job import BackgroundJob

logger = logging.getLogger(__name__)

EXECUTE_BACKGROUND_JOB = "inzikt.queue.workers.execute_background_job"


class JobDispatcher:
    """Enqueues background jobs by id; the worker reloads the row itself."""

    def dispatch(self, job: BackgroundJob) -> str:
        """Enqueue a job. Returns the Celery task ID."""
        from inzikt.queue.celery_app import celery_app

        result = celery_app.send_task(EXECUTE_BACKGROUND_JOB, args=[job.id], queue="jobs")
        logger.info("Dispatched %s job %s (celery id %s)", job.job_type, job.id, result.id)
        return result.id


_dispatcher: JobDispatcher | None = None


def get_dispatcher() -> JobDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = JobDispatcher()
    return _dispatcher
