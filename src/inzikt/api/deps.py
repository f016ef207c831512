"""Shared FastAPI dependencies for the job endpoints."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from inzikt.config import get_settings
from inzikt.core.background import BackgroundJobService
from inzikt.core.progress import ProgressSource
from inzikt.core.registry import HandlerRegistry, build_default_registry
from inzikt.core.scheduler import Scheduler
from inzikt.core.store import JobStore
from inzikt.core.tasks import JobDispatcher
from inzikt.core.tasks import get_dispatcher as _get_dispatcher
from inzikt.db.session import get_session, get_session_factory


def get_registry(request: Request) -> HandlerRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        registry = request.app.state.registry = build_default_registry()
    return registry


def get_store(session: AsyncSession = Depends(get_session)) -> JobStore:
    return JobStore(session)


def get_scheduler(
    store: JobStore = Depends(get_store),
    registry: HandlerRegistry = Depends(get_registry),
) -> Scheduler:
    return Scheduler(
        store, registry, handler_timeout=get_settings().job_handler_timeout_seconds
    )


def get_job_service(store: JobStore = Depends(get_store)) -> BackgroundJobService:
    return BackgroundJobService(store)


def get_progress_source(store: JobStore = Depends(get_store)) -> ProgressSource:
    return ProgressSource(store)


def get_dispatcher() -> JobDispatcher:
    return _get_dispatcher()


@asynccontextmanager
async def open_progress_source() -> AsyncIterator[ProgressSource]:
    """A progress source on its own session, for connections that outlive the request."""
    async with get_session_factory()() as session:
        settings = get_settings()
        yield ProgressSource(
            JobStore(session),
            keepalive=settings.progress_keepalive_seconds,
            idle_timeout=settings.progress_stream_idle_seconds,
        )


def get_stream_opener() -> Callable[[], AbstractAsyncContextManager[ProgressSource]]:
    return open_progress_source
