"""Schedules router — CRUD for a user's recurring jobs and their run history."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from inzikt.api.auth import CurrentUser, get_current_user
from inzikt.api.deps import get_registry, get_store
from inzikt.core.defaults import schedule_job
from inzikt.core.registry import HandlerRegistry
from inzikt.core.schedule import compute_next_run, describe_schedule, utcnow, validate_cron_expression
from inzikt.core.store import JobStore
from inzikt.models.schedule import ExecutionStatus, JobFrequency, ScheduledJob

router = APIRouter()


# ------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------


class ScheduleCreate(BaseModel):
    job_type: str = Field(max_length=100)
    frequency: JobFrequency = JobFrequency.DAILY
    cron_expression: str | None = Field(default=None, max_length=100)
    description: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True


class ScheduleUpdate(BaseModel):
    frequency: JobFrequency | None = None
    cron_expression: str | None = Field(default=None, max_length=100)
    description: str | None = None
    parameters: dict[str, Any] | None = None
    enabled: bool | None = None


class ScheduleOut(BaseModel):
    id: str
    job_type: str
    frequency: JobFrequency
    cron_expression: str | None
    schedule_human: str
    description: str | None
    parameters: dict[str, Any]
    enabled: bool
    last_run: datetime | None
    next_run: datetime
    created_at: datetime
    updated_at: datetime


class ExecutionOut(BaseModel):
    id: str
    job_id: str
    status: ExecutionStatus
    started_at: datetime
    completed_at: datetime | None
    duration_ms: int | None
    result: Any = None
    error: str | None

    model_config = {"from_attributes": True}


def _to_out(job: ScheduledJob) -> ScheduleOut:
    return ScheduleOut(
        id=job.id,
        job_type=job.job_type,
        frequency=job.frequency,
        cron_expression=job.cron_expression,
        schedule_human=describe_schedule(job.frequency, job.cron_expression),
        description=job.description,
        parameters=job.parameters or {},
        enabled=job.enabled,
        last_run=job.last_run,
        next_run=job.next_run,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


def _check_cron(frequency: JobFrequency, cron_expression: str | None) -> None:
    if frequency != JobFrequency.CUSTOM:
        return
    if not cron_expression:
        raise HTTPException(status_code=422, detail="cron_expression is required for custom schedules")
    valid, err = validate_cron_expression(cron_expression)
    if not valid:
        raise HTTPException(status_code=422, detail=err)


async def _get_owned(store: JobStore, schedule_id: str, user: CurrentUser) -> ScheduledJob:
    job = await store.get_scheduled_job(schedule_id)
    if not job or job.user_id != user.id:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return job


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@router.get("/", response_model=list[ScheduleOut])
async def list_schedules(
    user: CurrentUser = Depends(get_current_user),
    store: JobStore = Depends(get_store),
):
    return [_to_out(j) for j in await store.list_scheduled_jobs(user.id)]


@router.post("/", response_model=ScheduleOut, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    body: ScheduleCreate,
    user: CurrentUser = Depends(get_current_user),
    store: JobStore = Depends(get_store),
    registry: HandlerRegistry = Depends(get_registry),
):
    if body.job_type not in registry:
        raise HTTPException(status_code=422, detail=f"Unknown job type: {body.job_type}")
    _check_cron(body.frequency, body.cron_expression)

    # User-owned jobs always act on behalf of their owner
    parameters = {**body.parameters, "user_id": user.id}
    job = await schedule_job(
        store,
        body.job_type,
        body.frequency,
        parameters=parameters,
        cron_expression=body.cron_expression,
        user_id=user.id,
        description=body.description,
        enabled=body.enabled,
    )
    return _to_out(job)


@router.get("/{schedule_id}", response_model=ScheduleOut)
async def get_schedule(
    schedule_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: JobStore = Depends(get_store),
):
    return _to_out(await _get_owned(store, schedule_id, user))


@router.patch("/{schedule_id}", response_model=ScheduleOut)
async def update_schedule(
    schedule_id: str,
    body: ScheduleUpdate,
    user: CurrentUser = Depends(get_current_user),
    store: JobStore = Depends(get_store),
):
    job = await _get_owned(store, schedule_id, user)
    updates = body.model_dump(exclude_unset=True)

    frequency = updates.get("frequency") or job.frequency
    cron_expression = updates.get("cron_expression", job.cron_expression)
    _check_cron(JobFrequency(frequency), cron_expression)

    if "parameters" in updates:
        updates["parameters"] = {**(updates["parameters"] or {}), "user_id": user.id}
    if "frequency" in updates or "cron_expression" in updates:
        updates["next_run"] = compute_next_run(frequency, cron_expression, utcnow())

    job = await store.update_scheduled_job(job, **updates)
    return _to_out(job)


@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(
    schedule_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: JobStore = Depends(get_store),
):
    job = await _get_owned(store, schedule_id, user)
    await store.delete_scheduled_job(job)


@router.patch("/{schedule_id}/toggle", response_model=ScheduleOut)
async def toggle_schedule(
    schedule_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: JobStore = Depends(get_store),
):
    job = await _get_owned(store, schedule_id, user)
    updates: dict[str, Any] = {"enabled": not job.enabled}
    if updates["enabled"]:
        # Resume at the next regular slot instead of catching up on missed runs
        updates["next_run"] = compute_next_run(job.frequency, job.cron_expression, utcnow())
    job = await store.update_scheduled_job(job, **updates)
    return _to_out(job)


@router.post("/{schedule_id}/cancel")
async def cancel_schedule(
    schedule_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: JobStore = Depends(get_store),
):
    """Disable a recurring job; its history is kept."""
    job = await _get_owned(store, schedule_id, user)
    if not job.enabled:
        raise HTTPException(status_code=400, detail="Schedule is already disabled")
    await store.update_scheduled_job(job, enabled=False)
    return {"success": True, "message": f"Scheduled job {job.id} has been disabled"}


@router.get("/{schedule_id}/executions", response_model=list[ExecutionOut])
async def list_schedule_executions(
    schedule_id: str,
    limit: int = 50,
    user: CurrentUser = Depends(get_current_user),
    store: JobStore = Depends(get_store),
):
    job = await _get_owned(store, schedule_id, user)
    return await store.list_executions(job.id, limit=min(max(limit, 1), 200))
