"""FastAPI application factory."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from inzikt.config import get_settings
from inzikt.core.errors import (
    DuplicateActiveJobError,
    JobError,
    JobNotFoundError,
    JobOwnershipError,
    JobStateError,
    StoreError,
)
from inzikt.core.registry import build_default_registry
from inzikt.log import configure_logging

_ERROR_STATUS: dict[type[JobError], int] = {
    JobNotFoundError: 404,
    JobOwnershipError: 403,
    JobStateError: 400,
    DuplicateActiveJobError: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The same registry serves the tick and manual runs
    if getattr(app.state, "registry", None) is None:
        app.state.registry = build_default_registry()
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Inzikt API",
        description="Inzikt — scheduled and background job API",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    from inzikt.api.routers import analysis, cron, health, integrations, jobs, schedules

    app.include_router(cron.router, prefix="/api/cron", tags=["cron"])
    app.include_router(schedules.router, prefix="/api/v1/schedules", tags=["schedules"])
    app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["jobs"])
    app.include_router(integrations.router, prefix="/api/v1/integrations", tags=["integrations"])
    app.include_router(analysis.router, prefix="/api/v1/analysis", tags=["analysis"])
    app.include_router(health.router, tags=["health"])

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        return JSONResponse(
            status_code=500, content={"error": "Job store unavailable", "details": str(exc)}
        )

    @app.exception_handler(JobError)
    async def job_error_handler(request: Request, exc: JobError):
        status_code = next(
            (code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 400
        )
        return JSONResponse(status_code=status_code, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "inzikt-api"}

    return app


app = create_app()
