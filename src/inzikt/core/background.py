"""Ad-hoc background jobs — import/analysis/export runs triggered by a user.

State machine::

    pending -> processing -> completed | failed | canceled
    pending -> canceled

Only one pending/processing job may exist per user and job type. The claim is
atomic: ``active_slot`` carries the job type while the job is active and is
released (NULL) on every terminal transition, under a unique constraint on
``(user_id, active_slot)``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from inzikt.core.errors import (
    DuplicateActiveJobError,
    JobCanceledError,
    JobNotFoundError,
    JobOwnershipError,
    JobStateError,
)
from inzikt.core.progress import ProgressPublisher
from inzikt.core.schedule import utcnow
from inzikt.core.store import JobStore
from inzikt.models.job import ACTIVE_STATUSES, BackgroundJob, BackgroundJobStatus, BackgroundJobType

logger = logging.getLogger(__name__)


@dataclass
class StartResult:
    job: BackgroundJob
    created: bool

    @property
    def attached(self) -> bool:
        return not self.created

    def to_dict(self) -> dict[str, Any]:
        return {"jobId": self.job.id, "attached": self.attached}


class BackgroundJobService:
    """Creates, advances and cancels background jobs, publishing every change."""

    def __init__(
        self,
        store: JobStore,
        publisher: ProgressPublisher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.publisher = publisher or ProgressPublisher()
        self.clock = clock

    async def start(
        self,
        user_id: str,
        job_type: BackgroundJobType | str,
        provider: str | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> StartResult:
        """Attach to the user's active job of this type, or create a pending one."""
        job_type = BackgroundJobType(job_type)
        existing = await self.store.find_active_job(user_id, job_type)
        if existing is not None:
            logger.info("Attaching to active %s job %s for user %s", job_type, existing.id, user_id)
            return StartResult(existing, created=False)

        try:
            job = await self.store.insert_background_job(
                user_id=user_id,
                job_type=job_type,
                provider=provider,
                status=BackgroundJobStatus.PENDING,
                active_slot=job_type.value,
                progress=0,
                parameters=parameters or {},
            )
            await self.store.commit()
        except DuplicateActiveJobError:
            # A concurrent start claimed the slot first
            existing = await self.store.find_active_job(user_id, job_type)
            if existing is None:
                raise
            logger.info("Lost start race; attaching to %s job %s", job_type, existing.id)
            return StartResult(existing, created=False)

        logger.info("Created %s job %s for user %s", job_type, job.id, user_id)
        self.publisher.publish(job)
        return StartResult(job, created=True)

    async def get(self, job_id: str) -> BackgroundJob:
        job = await self.store.get_background_job(job_id, fresh=True)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    async def mark_processing(self, job_id: str) -> BackgroundJob:
        return await self._transition(
            job_id,
            {BackgroundJobStatus.PENDING, BackgroundJobStatus.PROCESSING},
            status=BackgroundJobStatus.PROCESSING,
            started_at=self.clock(),
        )

    async def update_progress(
        self,
        job_id: str,
        processed_count: int,
        total_tickets: int | None = None,
        progress: int | None = None,
        current_ticket: dict[str, Any] | None = None,
        stage: str | None = None,
    ) -> BackgroundJob:
        """Record progress; ``progress`` defaults to processed/total, clamped to 0-100."""
        values: dict[str, Any] = {"processed_count": processed_count}
        if total_tickets is not None:
            values["total_tickets"] = total_tickets
        if progress is None and total_tickets:
            progress = round(processed_count * 100 / total_tickets)
        if progress is not None:
            values["progress"] = max(0, min(100, int(progress)))
        if current_ticket is not None:
            values["current_ticket"] = current_ticket
        if stage is not None:
            values["stage"] = stage
        return await self._transition(job_id, ACTIVE_STATUSES, **values)

    async def complete(self, job_id: str, result: dict[str, Any] | None = None) -> BackgroundJob:
        return await self._transition(
            job_id,
            ACTIVE_STATUSES,
            status=BackgroundJobStatus.COMPLETED,
            progress=100,
            is_completed=True,
            current_ticket=None,
            result=result,
            completed_at=self.clock(),
            active_slot=None,
        )

    async def fail(self, job_id: str, message: str) -> BackgroundJob:
        """Mark failed; progress stays at its last reported value."""
        return await self._transition(
            job_id,
            ACTIVE_STATUSES,
            status=BackgroundJobStatus.FAILED,
            error_message=message,
            completed_at=self.clock(),
            active_slot=None,
        )

    async def cancel(
        self,
        user_id: str,
        job_id: str | None = None,
        job_type: BackgroundJobType | str | None = None,
    ) -> BackgroundJob:
        """Cancel a job by id, or the user's most recent active job of ``job_type``."""
        if job_id is not None:
            job = await self.store.get_background_job(job_id, fresh=True)
            if job is None:
                raise JobNotFoundError("Job not found")
            if job.user_id != user_id:
                raise JobOwnershipError("You do not have permission to cancel this job")
        elif job_type is not None:
            job = await self.store.find_active_job(user_id, job_type)
            if job is None:
                raise JobNotFoundError(f"No active {job_type} job found")
        else:
            raise JobNotFoundError("A job id or job type is required")

        if not job.is_active:
            raise JobStateError(f"Cannot cancel job with status: {job.status}")

        now = self.clock()
        updated = await self.store.transition_background_job(
            job.id,
            ACTIVE_STATUSES,
            status=BackgroundJobStatus.CANCELED,
            completed_at=now,
            updated_at=now,
            active_slot=None,
        )
        await self.store.commit()
        job = await self.get(job.id)
        if not updated:
            # Finished between the read and the update
            raise JobStateError(f"Cannot cancel job with status: {job.status}")

        logger.info("Canceled %s job %s for user %s", job.job_type, job.id, user_id)
        self.publisher.publish(job)
        return job

    async def checkpoint(self, job_id: str) -> None:
        """Raise :class:`JobCanceledError` once the job has been canceled."""
        job = await self.store.get_background_job(job_id, fresh=True)
        if job is None or job.status == BackgroundJobStatus.CANCELED:
            raise JobCanceledError(job_id)

    def token(self, job_id: str) -> CancellationToken:
        return CancellationToken(self, job_id)

    async def _transition(
        self, job_id: str, from_statuses, **values: Any
    ) -> BackgroundJob:
        updated = await self.store.transition_background_job(job_id, from_statuses, **values)
        await self.store.commit()
        job = await self.get(job_id)
        if not updated:
            if job.status == BackgroundJobStatus.CANCELED:
                raise JobCanceledError(job_id)
            raise JobStateError(f"Job {job_id} is already {job.status}")
        self.publisher.publish(job)
        return job


class CancellationToken:
    """Handed to job runners; ``await token.check()`` between units of work."""

    def __init__(self, service: BackgroundJobService, job_id: str) -> None:
        self._service = service
        self.job_id = job_id

    async def check(self) -> None:
        await self._service.checkpoint(self.job_id)
