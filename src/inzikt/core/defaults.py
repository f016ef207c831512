"""Scheduling helpers and the default system/user job set."""

from __future__ import annotations

import logging
from typing import Any

from inzikt.core.schedule import compute_next_run, utcnow
from inzikt.core.store import JobStore
from inzikt.models.schedule import JobFrequency, ScheduledJob

logger = logging.getLogger(__name__)


async def schedule_job(
    store: JobStore,
    job_type: str,
    frequency: JobFrequency | str,
    *,
    parameters: dict[str, Any] | None = None,
    cron_expression: str | None = None,
    user_id: str | None = None,
    organization_id: str | None = None,
    description: str | None = None,
    enabled: bool = True,
) -> ScheduledJob:
    """Create a scheduled job whose first run is the next regular slot."""
    frequency = JobFrequency(frequency)
    return await store.create_scheduled_job(
        job_type=job_type,
        frequency=frequency,
        cron_expression=cron_expression,
        parameters=parameters or {},
        user_id=user_id,
        organization_id=organization_id,
        description=description,
        enabled=enabled,
        next_run=compute_next_run(frequency, cron_expression, utcnow()),
    )


async def _ensure(store: JobStore, job_type: str, user_id: str | None, **kwargs: Any) -> bool:
    if await store.find_scheduled_job(job_type, user_id) is not None:
        return False
    await schedule_job(store, job_type, user_id=user_id, **kwargs)
    return True


async def setup_system_jobs(store: JobStore) -> list[str]:
    """Daily maintenance and a daily usage report. Existing jobs are left alone."""
    created = []
    if await _ensure(
        store,
        "database-maintenance",
        None,
        frequency=JobFrequency.DAILY,
        description="Prune finished background jobs and old execution history",
    ):
        created.append("database-maintenance")
    if await _ensure(
        store,
        "usage-report",
        None,
        frequency=JobFrequency.DAILY,
        parameters={"days_back": 1},
        description="Daily job usage summary",
    ):
        created.append("usage-report")
    await store.commit()
    logger.info("System jobs set up (created: %s)", ", ".join(created) or "none")
    return created


async def setup_user_jobs(store: JobStore, user_id: str, providers: list[str]) -> list[str]:
    """Nightly analysis plus one daily import per connected provider."""
    created = []
    if await _ensure(
        store,
        "ticket-analysis",
        user_id,
        frequency=JobFrequency.DAILY,
        parameters={"user_id": user_id},
    ):
        created.append("ticket-analysis")
    for provider in providers:
        existing = [
            job
            for job in await store.list_scheduled_jobs(user_id)
            if job.job_type == "automated-import" and (job.parameters or {}).get("provider") == provider
        ]
        if existing:
            continue
        await schedule_job(
            store,
            "automated-import",
            JobFrequency.DAILY,
            user_id=user_id,
            parameters={"user_id": user_id, "provider": provider, "days_back": 1},
        )
        created.append(f"automated-import:{provider}")
    await store.commit()
    return created
