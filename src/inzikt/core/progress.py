"""Progress channel — one normalized snapshot shape for polling and push.

Every write to a background job is published as a :class:`ProgressSnapshot`
on Redis pub/sub. Poll endpoints and push transports (SSE, WebSocket) both read
through :class:`ProgressSource`, so their payloads cannot drift apart.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol

import redis
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from inzikt.core.errors import JobNotFoundError, JobOwnershipError
from inzikt.core.store import JobStore
from inzikt.models.job import TERMINAL_STATUSES, BackgroundJob, BackgroundJobStatus

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "inzikt:job_progress"

STAGE_SCANNING = "scanning"
STAGE_PROCESSING = "processing"
STAGE_IMPORTING = "importing"

_TERMINAL_VALUES = frozenset(s.value for s in TERMINAL_STATUSES)


def job_channel(job_id: str) -> str:
    return f"{CHANNEL_PREFIX}:job:{job_id}"


def user_channel(user_id: str, job_type: str) -> str:
    return f"{CHANNEL_PREFIX}:user:{user_id}:{job_type}"


def derive_stage(status: str, progress: int, stage: str | None = None) -> str:
    """Terminal statuses name the stage; otherwise explicit stage, else by progress."""
    if status in _TERMINAL_VALUES:
        return status
    if stage:
        return stage
    if progress < 25:
        return STAGE_SCANNING
    if progress < 75:
        return STAGE_PROCESSING
    return STAGE_IMPORTING


class CurrentTicket(BaseModel):
    id: str = "unknown"
    position: int = 0


class ProgressSnapshot(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str
    provider: str = "unknown"
    status: str
    stage: str
    total_tickets: int = 0
    processed_count: int = 0
    percentage: int = 0
    progress: int = 0
    is_completed: bool = False
    current_ticket: CurrentTicket | None = None

    @property
    def is_terminal(self) -> bool:
        return self.is_completed or self.status in _TERMINAL_VALUES

    def to_payload(self) -> dict[str, Any]:
        """camelCase dict; ``currentTicket`` only when a ticket is in flight."""
        return self.model_dump(by_alias=True, exclude_none=True)


def snapshot_from_job(job: BackgroundJob) -> ProgressSnapshot:
    status = str(job.status)
    progress = max(0, min(100, int(job.progress or 0)))
    total = int(job.total_tickets or 0)
    processed = int(job.processed_count or 0)
    percentage = round(processed * 100 / total) if total else progress

    current_ticket = None
    if job.current_ticket:
        current_ticket = CurrentTicket(
            id=str(job.current_ticket.get("id") or "unknown"),
            position=int(job.current_ticket.get("position") or 0),
        )

    return ProgressSnapshot(
        job_id=job.id,
        provider=job.provider or "unknown",
        status=status,
        stage=derive_stage(status, progress, job.stage),
        total_tickets=total,
        processed_count=processed,
        percentage=min(100, percentage),
        progress=progress,
        is_completed=(
            status == BackgroundJobStatus.COMPLETED or bool(job.is_completed) or progress >= 100
        ),
        current_ticket=current_ticket,
    )


# ── Publishing ────────────────────────────────────────────────────────────────

_sync_redis_client = None
_sync_redis_lock = threading.Lock()


def _get_sync_redis():
    """Return a lazily-initialised, module-level sync Redis client."""
    global _sync_redis_client
    if _sync_redis_client is None:
        with _sync_redis_lock:
            if _sync_redis_client is None:
                from inzikt.config import get_settings

                _sync_redis_client = redis.from_url(
                    get_settings().redis_url, decode_responses=True
                )
    return _sync_redis_client


class ProgressPublisher:
    """Pushes job snapshots to the per-job and per-user Redis channels.

    Publishing is best effort: subscribers fall back to polling, so a Redis
    outage must not fail the job write that triggered it.
    """

    def __init__(self, client_factory: Callable[[], Any] = _get_sync_redis) -> None:
        self._client_factory = client_factory

    def publish(self, job: BackgroundJob) -> ProgressSnapshot:
        snapshot = snapshot_from_job(job)
        message = json.dumps(snapshot.to_payload())
        try:
            client = self._client_factory()
            client.publish(job_channel(job.id), message)
            client.publish(user_channel(job.user_id, str(job.job_type)), message)
        except redis.RedisError as exc:
            logger.warning("Progress publish failed for job %s: %s", job.id, exc)
        return snapshot


# ── Subscribing ───────────────────────────────────────────────────────────────

DEFAULT_KEEPALIVE_SECONDS = 15.0
DEFAULT_IDLE_TIMEOUT_SECONDS = 600.0


class Subscription(Protocol):
    async def receive(self, timeout: float) -> dict[str, Any] | None:
        """Next decoded payload, or None once ``timeout`` seconds pass without one."""


Subscribe = Callable[[str], AbstractAsyncContextManager[Subscription]]


class RedisSubscription:
    """Decoded progress payloads from one Redis pub/sub channel."""

    def __init__(self, pubsub) -> None:
        self._pubsub = pubsub

    async def receive(self, timeout: float) -> dict[str, Any] | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = max(0.0, deadline - loop.time())
            message = await self._pubsub.get_message(
                ignore_subscribe_messages=True, timeout=remaining
            )
            if message is not None and message["type"] == "message":
                try:
                    return json.loads(message["data"])
                except json.JSONDecodeError:
                    logger.debug("Dropping malformed progress message on %s", message.get("channel"))
            if loop.time() >= deadline:
                return None


@asynccontextmanager
async def redis_subscription(channel: str) -> AsyncIterator[RedisSubscription]:
    """Subscribe to a progress channel for the lifetime of the context."""
    import redis.asyncio as aioredis

    from inzikt.config import get_settings

    client = aioredis.from_url(get_settings().redis_url, decode_responses=True)
    pubsub = client.pubsub()
    try:
        await pubsub.subscribe(channel)
        yield RedisSubscription(pubsub)
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        await client.aclose()


class ProgressSource:
    """Single read path for job progress, shared by poll and push endpoints."""

    def __init__(
        self,
        store: JobStore,
        subscribe: Subscribe = redis_subscription,
        keepalive: float = DEFAULT_KEEPALIVE_SECONDS,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT_SECONDS,
    ) -> None:
        self.store = store
        self.subscribe = subscribe
        self.keepalive = keepalive
        self.idle_timeout = idle_timeout

    async def snapshot_for_job(self, job_id: str, user_id: str) -> ProgressSnapshot:
        job = await self.store.get_background_job(job_id, fresh=True)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if job.user_id != user_id:
            raise JobOwnershipError("You do not have permission to view this job")
        return snapshot_from_job(job)

    async def snapshot_for_user(self, user_id: str, job_type: str) -> ProgressSnapshot:
        """Active job for the user+type if any, else the most recent one."""
        job = await self.store.find_active_job(user_id, job_type)
        if job is None:
            job = await self.store.latest_job_for_user(user_id, job_type)
        if job is None:
            raise JobNotFoundError(f"No {job_type} job found for user {user_id}")
        return snapshot_from_job(job)

    async def stream(
        self,
        user_id: str,
        *,
        job_id: str | None = None,
        job_type: str | None = None,
    ) -> AsyncIterator[ProgressSnapshot | None]:
        """Yield the current snapshot, then every update until a terminal one.

        Keyed by ``job_id`` when given, otherwise by ``user_id`` + ``job_type``.
        The channel is subscribed before the initial read so no update can slip
        between the two.

        ``None`` is yielded every ``keepalive`` seconds without an update so
        transports can write a heartbeat and notice dead clients. The stream
        ends on its own after ``idle_timeout`` seconds without any update.
        """
        if job_id is None and job_type is None:
            raise ValueError("stream() needs a job_id or a job_type")

        channel = job_channel(job_id) if job_id else user_channel(user_id, job_type)
        async with self.subscribe(channel) as subscription:
            if job_id:
                initial: ProgressSnapshot | None = await self.snapshot_for_job(job_id, user_id)
            else:
                active = await self.store.find_active_job(user_id, job_type)
                # No job yet: wait for the first one to be published
                initial = snapshot_from_job(active) if active else None

            if initial is not None:
                yield initial
                if initial.is_terminal:
                    return

            idle = 0.0
            while True:
                payload = await subscription.receive(self.keepalive)
                if payload is None:
                    idle += self.keepalive
                    if idle >= self.idle_timeout:
                        logger.info("Closing idle progress stream on %s after %ss", channel, idle)
                        return
                    yield None
                    continue

                idle = 0.0
                snapshot = ProgressSnapshot.model_validate(payload)
                yield snapshot
                if snapshot.is_terminal:
                    return
