"""Background jobs router — listing, cancellation and progress (poll, SSE, WebSocket)."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any

import redis
from fastapi import (
    APIRouter,
    Depends,
    Query,
    Response,
    WebSocket,
    WebSocketDisconnect,
    WebSocketException,
    status,
)
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from inzikt.api.auth import CurrentUser, InvalidTokenError, decode_token, get_current_user
from inzikt.api.deps import get_job_service, get_progress_source, get_store, get_stream_opener
from inzikt.config import get_settings
from inzikt.core.background import BackgroundJobService
from inzikt.core.errors import JobError, JobNotFoundError, JobOwnershipError
from inzikt.core.progress import ProgressSource
from inzikt.core.store import JobStore
from inzikt.models.job import BackgroundJob, BackgroundJobStatus, BackgroundJobType

router = APIRouter()
logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# SSE comment line; ignored by EventSource, fails fast on a dead connection
SSE_KEEPALIVE = ": keep-alive\n\n"


# ------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------


class CancelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str | None = None
    user_id: str | None = None
    job_type: BackgroundJobType | None = None


class JobOut(BaseModel):
    id: str
    job_type: BackgroundJobType
    provider: str | None
    status: BackgroundJobStatus
    progress: int
    stage: str | None
    total_tickets: int
    processed_count: int
    error_message: str | None
    result: dict[str, Any] | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None

    model_config = {"from_attributes": True}


def _sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def _check_user(user: CurrentUser, user_id: str | None) -> None:
    if user_id and user_id != user.id:
        raise JobOwnershipError("You do not have permission to access this user's jobs")


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@router.get("/", response_model=list[JobOut])
async def list_jobs(
    limit: int = 50,
    user: CurrentUser = Depends(get_current_user),
    store: JobStore = Depends(get_store),
):
    return await store.list_background_jobs(user.id, limit=min(max(limit, 1), 200))


@router.post("/cancel")
async def cancel_job(
    body: CancelRequest,
    user: CurrentUser = Depends(get_current_user),
    service: BackgroundJobService = Depends(get_job_service),
):
    """Cancel by ``jobId``, or the caller's active job of ``jobType`` (analysis by default)."""
    if not body.job_id and not body.user_id and not body.job_type:
        return JSONResponse(status_code=400, content={"error": "jobId or userId is required"})
    _check_user(user, body.user_id)

    job: BackgroundJob
    if body.job_id:
        job = await service.cancel(user.id, job_id=body.job_id)
    else:
        job = await service.cancel(user.id, job_type=body.job_type or BackgroundJobType.ANALYSIS)
    return {"success": True, "message": f"Job {job.id} has been canceled"}


@router.get("/progress")
async def get_progress(
    response: Response,
    job_id: str | None = Query(default=None, alias="jobId"),
    user_id: str | None = Query(default=None, alias="userId"),
    job_type: BackgroundJobType = Query(default=BackgroundJobType.ANALYSIS, alias="jobType"),
    user: CurrentUser = Depends(get_current_user),
    source: ProgressSource = Depends(get_progress_source),
):
    """Current progress snapshot, shaped exactly like the pushed events."""
    if job_id:
        snapshot = await source.snapshot_for_job(job_id, user.id)
    else:
        _check_user(user, user_id)
        snapshot = await source.snapshot_for_user(user.id, job_type)
    response.headers["X-Poll-Interval"] = str(get_settings().progress_poll_interval_seconds)
    return snapshot.to_payload()


@router.get("/progress/stream")
async def stream_progress(
    job_id: str | None = Query(default=None, alias="jobId"),
    user_id: str | None = Query(default=None, alias="userId"),
    job_type: BackgroundJobType = Query(default=BackgroundJobType.ANALYSIS, alias="jobType"),
    user: CurrentUser = Depends(get_current_user),
    source: ProgressSource = Depends(get_progress_source),
    open_source: Callable[[], AbstractAsyncContextManager[ProgressSource]] = Depends(
        get_stream_opener
    ),
):
    """Server-Sent Events: ``progress`` events until the job reaches a terminal state."""
    if job_id:
        # Fail with a normal 404/403 before the stream starts
        await source.snapshot_for_job(job_id, user.id)
    else:
        _check_user(user, user_id)

    async def generate():
        try:
            async with open_source() as stream_source:
                async for snapshot in stream_source.stream(
                    user.id, job_id=job_id, job_type=None if job_id else job_type
                ):
                    if snapshot is None:
                        yield SSE_KEEPALIVE
                    else:
                        yield _sse("progress", snapshot.to_payload())
        except redis.RedisError as exc:
            logger.warning("Progress stream for user %s lost Redis: %s", user.id, exc)
            yield _sse("error", {"error": "Progress stream unavailable, fall back to polling"})
        except JobError as exc:
            yield _sse("error", {"error": str(exc)})

    return StreamingResponse(generate(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.websocket("/ws")
async def progress_ws(
    websocket: WebSocket,
    token: str,
    job_id: str | None = Query(default=None, alias="jobId"),
    job_type: BackgroundJobType = Query(default=BackgroundJobType.ANALYSIS, alias="jobType"),
    open_source: Callable[[], AbstractAsyncContextManager[ProgressSource]] = Depends(
        get_stream_opener
    ),
):
    try:
        user = decode_token(token)
    except InvalidTokenError as err:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION) from err

    await websocket.accept()
    try:
        async with open_source() as source:
            async for snapshot in source.stream(
                user.id, job_id=job_id, job_type=None if job_id else job_type
            ):
                if snapshot is None:
                    await websocket.send_json({"type": "ping"})
                else:
                    await websocket.send_json({"type": "progress", "data": snapshot.to_payload()})
    except WebSocketDisconnect:
        logger.debug("Progress WebSocket closed by client %s", user.id)
        return
    except (JobNotFoundError, JobOwnershipError) as exc:
        await websocket.send_json({"type": "error", "error": str(exc)})
    except redis.RedisError as exc:
        logger.warning("Progress WebSocket for user %s lost Redis: %s", user.id, exc)
        await websocket.send_json({"type": "error", "error": "Progress stream unavailable"})
    await websocket.close()


@router.get("/{job_id}", response_model=JobOut)
async def get_job(
    job_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: BackgroundJobService = Depends(get_job_service),
):
    job = await service.get(job_id)
    if job.user_id != user.id:
        raise JobNotFoundError("Job not found")
    return job
