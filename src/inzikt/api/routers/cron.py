"""Cron router — the periodic tick and manual single-job runs."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from inzikt.api.auth import verify_cron_secret
from inzikt.api.deps import get_scheduler
from inzikt.core.errors import StoreError
from inzikt.core.scheduler import Scheduler

router = APIRouter(dependencies=[Depends(verify_cron_secret)])
logger = logging.getLogger(__name__)


@router.get("")
async def run_cron(scheduler: Scheduler = Depends(get_scheduler)):
    """Run every due scheduled job once."""
    try:
        tick = await scheduler.run_due_jobs()
    except StoreError as exc:
        logger.error("Scheduler tick aborted: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to run scheduled jobs", "details": str(exc)},
        )
    return {"success": True, **tick.to_dict()}


@router.post("/run-job")
async def run_job(
    job_id: str | None = Query(default=None, alias="jobId"),
    scheduler: Scheduler = Depends(get_scheduler),
):
    """Run one scheduled job now, outside its schedule."""
    if not job_id:
        return JSONResponse(status_code=400, content={"error": "Job ID is required"})

    # JobNotFoundError is mapped to 404 by the app
    outcome = await scheduler.run_job_now(job_id)

    if outcome.unhandled:
        return JSONResponse(status_code=400, content={"error": outcome.error})
    if not outcome.succeeded:
        return JSONResponse(
            status_code=500,
            content={"error": "Job execution failed", "details": outcome.error},
        )
    return {"success": True, "executionId": outcome.execution_id, "result": outcome.result}
