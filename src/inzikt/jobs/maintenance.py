"""Database maintenance — prunes finished background jobs and old execution history."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from inzikt.core.schedule import utcnow
from inzikt.core.store import JobStore

logger = logging.getLogger(__name__)


async def prune(store: JobStore, job_retention_days: int, execution_retention_days: int) -> dict[str, Any]:
    now = utcnow()
    jobs_deleted = await store.prune_background_jobs(now - timedelta(days=job_retention_days))
    executions_deleted = await store.prune_executions(now - timedelta(days=execution_retention_days))
    await store.commit()
    return {
        "backgroundJobsDeleted": jobs_deleted,
        "executionsDeleted": executions_deleted,
        "jobRetentionDays": job_retention_days,
        "executionRetentionDays": execution_retention_days,
    }


async def database_maintenance_handler(parameters: dict[str, Any]) -> dict[str, Any]:
    """``{retention_days?, execution_retention_days?}``; defaults come from settings."""
    from inzikt.config import get_settings
    from inzikt.db.session import get_session_factory

    settings = get_settings()
    job_days = int(parameters.get("retention_days") or settings.job_retention_days)
    execution_days = int(
        parameters.get("execution_retention_days") or settings.execution_retention_days
    )

    async with get_session_factory()() as session:
        result = await prune(JobStore(session), job_days, execution_days)

    logger.info(
        "Maintenance removed %d background jobs and %d executions",
        result["backgroundJobsDeleted"],
        result["executionsDeleted"],
    )
    return result
