"""Shared fixtures: settings env, an in-memory job store and a fake publisher."""

import os
from datetime import UTC, datetime
from typing import Any

import pytest

# Required settings must exist before any module calls get_settings()
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("DB_PASSWORD", "test-password")

from inzikt.core.errors import DuplicateActiveJobError, StoreError  # noqa: E402
from inzikt.models.base import new_uuid  # noqa: E402
from inzikt.models.job import (  # noqa: E402
    ACTIVE_STATUSES,
    BackgroundJob,
    BackgroundJobStatus,
    BackgroundJobType,
)
from inzikt.models.schedule import JobExecution, ScheduledJob  # noqa: E402


class MemoryJobStore:
    """Dict-backed stand-in for :class:`inzikt.core.store.JobStore`."""

    def __init__(self) -> None:
        self.scheduled: dict[str, ScheduledJob] = {}
        self.executions: dict[str, JobExecution] = {}
        self.background: dict[str, BackgroundJob] = {}
        self.commits = 0
        self.rollbacks = 0
        self.fail_due_jobs = False
        self._seq = 0

    def _stamp(self) -> datetime:
        # Monotonic created_at so "most recent" ordering is deterministic
        self._seq += 1
        return datetime(2024, 1, 1, tzinfo=UTC).replace(microsecond=self._seq)

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    # Scheduled jobs

    def add_scheduled(self, **values: Any) -> ScheduledJob:
        values.setdefault("id", new_uuid())
        values.setdefault("enabled", True)
        values.setdefault("parameters", {})
        values.setdefault("cron_expression", None)
        values.setdefault("last_run", None)
        values.setdefault("created_at", self._stamp())
        values.setdefault("updated_at", values["created_at"])
        job = ScheduledJob(**values)
        self.scheduled[job.id] = job
        return job

    async def due_jobs(self, now: datetime) -> list[ScheduledJob]:
        if self.fail_due_jobs:
            raise StoreError("Error fetching due jobs: connection refused")
        due = [j for j in self.scheduled.values() if j.enabled and j.next_run <= now]
        return sorted(due, key=lambda j: j.next_run)

    async def get_scheduled_job(self, job_id: str) -> ScheduledJob | None:
        return self.scheduled.get(job_id)

    async def list_scheduled_jobs(self, user_id: str | None = None) -> list[ScheduledJob]:
        jobs = [j for j in self.scheduled.values() if user_id is None or j.user_id == user_id]
        return sorted(jobs, key=lambda j: j.next_run)

    async def find_scheduled_job(self, job_type: str, user_id: str | None = None):
        for job in self.scheduled.values():
            if job.job_type == job_type and job.user_id == user_id:
                return job
        return None

    async def create_scheduled_job(self, **values: Any) -> ScheduledJob:
        return self.add_scheduled(**values)

    async def update_scheduled_job(self, job: ScheduledJob, **values: Any) -> ScheduledJob:
        for key, value in values.items():
            setattr(job, key, value)
        return job

    async def delete_scheduled_job(self, job: ScheduledJob) -> None:
        self.scheduled.pop(job.id, None)
        # ON DELETE CASCADE
        for execution in self.executions_for(job.id):
            del self.executions[execution.id]

    # Executions

    async def create_execution(self, **values: Any) -> JobExecution:
        values.setdefault("id", new_uuid())
        execution = JobExecution(**values)
        self.executions[execution.id] = execution
        return execution

    async def get_execution(self, execution_id: str, *, fresh: bool = False) -> JobExecution | None:
        return self.executions.get(execution_id)

    async def update_execution(self, execution: JobExecution, **values: Any) -> JobExecution:
        for key, value in values.items():
            setattr(execution, key, value)
        return execution

    async def list_executions(self, job_id: str, limit: int = 50) -> list[JobExecution]:
        return [e for e in self.executions.values() if e.job_id == job_id][:limit]

    def executions_for(self, job_id: str) -> list[JobExecution]:
        return [e for e in self.executions.values() if e.job_id == job_id]

    # Background jobs

    def add_background(self, **values: Any) -> BackgroundJob:
        values.setdefault("id", new_uuid())
        values.setdefault("status", BackgroundJobStatus.PENDING)
        values.setdefault("job_type", BackgroundJobType.ANALYSIS)
        values.setdefault("progress", 0)
        values.setdefault("total_tickets", 0)
        values.setdefault("processed_count", 0)
        values.setdefault("is_completed", False)
        values.setdefault("parameters", {})
        values.setdefault("created_at", self._stamp())
        if values["status"] in ACTIVE_STATUSES:
            values.setdefault("active_slot", str(values["job_type"]))
        job = BackgroundJob(**values)
        self.background[job.id] = job
        return job

    async def get_background_job(self, job_id: str, *, fresh: bool = False):
        return self.background.get(job_id)

    async def find_active_job(self, user_id: str, job_type):
        active = [
            j
            for j in self.background.values()
            if j.user_id == user_id and j.job_type == job_type and j.status in ACTIVE_STATUSES
        ]
        return max(active, key=lambda j: j.created_at) if active else None

    async def latest_job_for_user(self, user_id: str, job_type):
        jobs = [j for j in self.background.values() if j.user_id == user_id and j.job_type == job_type]
        return max(jobs, key=lambda j: j.created_at) if jobs else None

    async def list_background_jobs(self, user_id: str, limit: int = 50):
        jobs = [j for j in self.background.values() if j.user_id == user_id]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)[:limit]

    async def insert_background_job(self, **values: Any) -> BackgroundJob:
        slot = values.get("active_slot")
        for job in self.background.values():
            if slot and job.user_id == values["user_id"] and job.active_slot == slot:
                raise DuplicateActiveJobError("slot taken")
        return self.add_background(**values)

    async def transition_background_job(self, job_id: str, from_statuses, **values: Any) -> bool:
        job = self.background.get(job_id)
        if job is None or job.status not in from_statuses:
            return False
        for key, value in values.items():
            setattr(job, key, value)
        return True


class RecordingPublisher:
    def __init__(self) -> None:
        self.published: list[BackgroundJob] = []

    def publish(self, job: BackgroundJob):
        from inzikt.core.progress import snapshot_from_job

        self.published.append(job)
        return snapshot_from_job(job)


@pytest.fixture
def store() -> MemoryJobStore:
    return MemoryJobStore()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()
