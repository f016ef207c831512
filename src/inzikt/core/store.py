"""Job store — persistence for scheduled jobs, executions and background jobs.

Pure persistence: every query is an equality/range filter, no job logic lives
here. Database failures surface as :class:`StoreError`; a lost race on the
one-active-job-per-user+type slot surfaces as :class:`DuplicateActiveJobError`.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inzikt.core.errors import DuplicateActiveJobError, StoreError
from inzikt.db.repository import Repository
from inzikt.models.job import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    BackgroundJob,
    BackgroundJobStatus,
    BackgroundJobType,
)
from inzikt.models.schedule import JobExecution, ScheduledJob

logger = logging.getLogger(__name__)


class JobStore:
    """Session-scoped repository over the job tables."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.scheduled = Repository(ScheduledJob, session)
        self.executions = Repository(JobExecution, session)
        self.background = Repository(BackgroundJob, session)

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreError(f"Commit failed: {exc}") from exc

    async def rollback(self) -> None:
        await self.session.rollback()

    # ------------------------------------------------------------------
    # Scheduled jobs
    # ------------------------------------------------------------------

    async def due_jobs(self, now: datetime) -> list[ScheduledJob]:
        """Enabled jobs whose next_run has elapsed, oldest-due first."""
        try:
            result = await self.session.execute(
                select(ScheduledJob)
                .where(ScheduledJob.enabled.is_(True), ScheduledJob.next_run <= now)
                .order_by(ScheduledJob.next_run.asc())
            )
        except SQLAlchemyError as exc:
            raise StoreError(f"Error fetching due jobs: {exc}") from exc
        return list(result.scalars().all())

    async def get_scheduled_job(self, job_id: str) -> ScheduledJob | None:
        try:
            return await self.scheduled.get(job_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Error fetching job {job_id}: {exc}") from exc

    async def list_scheduled_jobs(self, user_id: str | None = None) -> list[ScheduledJob]:
        stmt = select(ScheduledJob).order_by(ScheduledJob.next_run.asc())
        if user_id is not None:
            stmt = stmt.where(ScheduledJob.user_id == user_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_scheduled_job(self, job_type: str, user_id: str | None = None) -> ScheduledJob | None:
        stmt = select(ScheduledJob).where(ScheduledJob.job_type == job_type)
        if user_id is None:
            stmt = stmt.where(ScheduledJob.user_id.is_(None))
        else:
            stmt = stmt.where(ScheduledJob.user_id == user_id)
        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def create_scheduled_job(self, **values: Any) -> ScheduledJob:
        try:
            return await self.scheduled.create(**values)
        except SQLAlchemyError as exc:
            raise StoreError(f"Error scheduling job: {exc}") from exc

    async def update_scheduled_job(self, job: ScheduledJob, **values: Any) -> ScheduledJob:
        try:
            return await self.scheduled.update(job, **values)
        except SQLAlchemyError as exc:
            raise StoreError(f"Error updating job {job.id}: {exc}") from exc

    async def delete_scheduled_job(self, job: ScheduledJob) -> None:
        await self.scheduled.delete(job)

    # ------------------------------------------------------------------
    # Executions
    # ------------------------------------------------------------------

    async def create_execution(self, **values: Any) -> JobExecution:
        try:
            return await self.executions.create(**values)
        except SQLAlchemyError as exc:
            raise StoreError(f"Error recording execution: {exc}") from exc

    async def get_execution(self, execution_id: str, *, fresh: bool = False) -> JobExecution | None:
        try:
            return await self.executions.get(execution_id, fresh=fresh)
        except SQLAlchemyError as exc:
            raise StoreError(f"Error fetching execution {execution_id}: {exc}") from exc

    async def update_execution(self, execution: JobExecution, **values: Any) -> JobExecution:
        try:
            return await self.executions.update(execution, **values)
        except SQLAlchemyError as exc:
            raise StoreError(f"Error updating execution {execution.id}: {exc}") from exc

    async def list_executions(self, job_id: str, limit: int = 50) -> list[JobExecution]:
        result = await self.session.execute(
            select(JobExecution)
            .where(JobExecution.job_id == job_id)
            .order_by(JobExecution.started_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Background jobs
    # ------------------------------------------------------------------

    async def get_background_job(self, job_id: str, *, fresh: bool = False) -> BackgroundJob | None:
        try:
            return await self.background.get(job_id, fresh=fresh)
        except SQLAlchemyError as exc:
            raise StoreError(f"Error fetching background job {job_id}: {exc}") from exc

    async def find_active_job(
        self, user_id: str, job_type: BackgroundJobType | str
    ) -> BackgroundJob | None:
        """Most recent pending/processing job for the user and type."""
        result = await self.session.execute(
            select(BackgroundJob)
            .where(
                BackgroundJob.user_id == user_id,
                BackgroundJob.job_type == BackgroundJobType(job_type),
                BackgroundJob.status.in_(ACTIVE_STATUSES),
            )
            .order_by(BackgroundJob.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def latest_job_for_user(
        self, user_id: str, job_type: BackgroundJobType | str
    ) -> BackgroundJob | None:
        result = await self.session.execute(
            select(BackgroundJob)
            .where(
                BackgroundJob.user_id == user_id,
                BackgroundJob.job_type == BackgroundJobType(job_type),
            )
            .order_by(BackgroundJob.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_background_jobs(self, user_id: str, limit: int = 50) -> list[BackgroundJob]:
        result = await self.session.execute(
            select(BackgroundJob)
            .where(BackgroundJob.user_id == user_id)
            .order_by(BackgroundJob.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def insert_background_job(self, **values: Any) -> BackgroundJob:
        try:
            return await self.background.create(**values)
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateActiveJobError(
                f"An active {values.get('job_type')} job already exists for user {values.get('user_id')}"
            ) from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"Error creating background job: {exc}") from exc

    async def transition_background_job(
        self,
        job_id: str,
        from_statuses: frozenset[BackgroundJobStatus] | set[BackgroundJobStatus],
        **values: Any,
    ) -> bool:
        """Apply ``values`` only while the job is in one of ``from_statuses``.

        Returns False when the job has moved on (e.g. canceled) in the meantime.
        """
        try:
            result = await self.session.execute(
                update(BackgroundJob)
                .where(BackgroundJob.id == job_id, BackgroundJob.status.in_(from_statuses))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            raise StoreError(f"Error updating background job {job_id}: {exc}") from exc
        return bool(result.rowcount)

    # ------------------------------------------------------------------
    # Maintenance and reporting
    # ------------------------------------------------------------------

    async def prune_background_jobs(self, before: datetime) -> int:
        result = await self.session.execute(
            delete(BackgroundJob).where(
                BackgroundJob.status.in_(TERMINAL_STATUSES),
                BackgroundJob.updated_at < before,
            )
        )
        return result.rowcount or 0

    async def prune_executions(self, before: datetime) -> int:
        result = await self.session.execute(
            delete(JobExecution).where(
                JobExecution.completed_at.is_not(None),
                JobExecution.completed_at < before,
            )
        )
        return result.rowcount or 0

    async def count_executions_by_status(self, since: datetime) -> dict[str, int]:
        result = await self.session.execute(
            select(JobExecution.status, func.count(JobExecution.id))
            .where(JobExecution.started_at >= since)
            .group_by(JobExecution.status)
        )
        return {str(status): count for status, count in result.all()}

    async def count_background_jobs(self, since: datetime) -> dict[str, dict[str, int]]:
        result = await self.session.execute(
            select(BackgroundJob.job_type, BackgroundJob.status, func.count(BackgroundJob.id))
            .where(BackgroundJob.created_at >= since)
            .group_by(BackgroundJob.job_type, BackgroundJob.status)
        )
        counts: dict[str, dict[str, int]] = {}
        for job_type, status, count in result.all():
            counts.setdefault(str(job_type), {})[str(status)] = count
        return counts
