"""Usage report — execution and background job counts over a trailing window."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from inzikt.core.schedule import utcnow
from inzikt.core.store import JobStore

logger = logging.getLogger(__name__)


async def build_report(store: JobStore, days_back: int) -> dict[str, Any]:
    since = utcnow() - timedelta(days=days_back)
    executions = await store.count_executions_by_status(since)
    background = await store.count_background_jobs(since)
    return {
        "since": since.isoformat(),
        "executions": executions,
        "executionsTotal": sum(executions.values()),
        "backgroundJobs": background,
        "backgroundJobsTotal": sum(sum(c.values()) for c in background.values()),
    }


async def usage_report_handler(parameters: dict[str, Any]) -> dict[str, Any]:
    """``{days_back=1}``."""
    from inzikt.db.session import get_session_factory

    days_back = int(parameters.get("days_back", 1))
    async with get_session_factory()() as session:
        report = await build_report(JobStore(session), days_back)
    logger.info(
        "Usage report: %d executions, %d background jobs in the last %d day(s)",
        report["executionsTotal"],
        report["backgroundJobsTotal"],
        days_back,
    )
    return report
