"""Detailed health endpoint — database, Redis and registered job types."""

from __future__ import annotations

import logging
import time

import redis
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from inzikt.api.deps import get_registry
from inzikt.config import get_settings
from inzikt.core.registry import HandlerRegistry

router = APIRouter()
logger = logging.getLogger(__name__)

_start_time = time.monotonic()


@router.get("/api/v1/health")
async def health_check(registry: HandlerRegistry = Depends(get_registry)):
    """Return component-level health for the job subsystem."""
    result = {
        "status": "ok",
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "db": "unknown",
        "redis": "unknown",
        "job_types": registry.job_types(),
    }

    try:
        from inzikt.db.session import get_session_factory

        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        result["db"] = "connected"
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Health check: database unreachable: %s", exc)
        result["db"] = "disconnected"

    try:
        client = redis.from_url(get_settings().redis_url)
        client.ping()
        client.close()
        result["redis"] = "connected"
    except redis.RedisError as exc:
        logger.warning("Health check: Redis unreachable: %s", exc)
        result["redis"] = "disconnected"

    if result["db"] == "disconnected":
        result["status"] = "degraded"
    return result
