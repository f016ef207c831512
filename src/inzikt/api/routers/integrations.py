"""Integrations router — helpdesk credentials and on-demand imports."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from inzikt.api.auth import CurrentUser, get_current_user
from inzikt.api.deps import get_dispatcher
from inzikt.core.crypto import mask_credentials
from inzikt.core.defaults import setup_user_jobs
from inzikt.core.integrations import (
    PROVIDER_REGISTRY,
    get_integration,
    integration_credentials,
    list_integrations,
    missing_fields,
    save_integration,
)
from inzikt.core.store import JobStore
from inzikt.core.tasks import JobDispatcher
from inzikt.db.session import get_session
from inzikt.jobs.imports import start_import
from inzikt.models.integration import Integration, ProviderName

router = APIRouter()


# ------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------


class IntegrationSave(BaseModel):
    credentials: dict[str, str]
    selected_groups: list[str] | None = None
    selected_statuses: list[str] | None = None
    days_back: int | None = Field(default=None, ge=1, le=365)
    schedule_daily_import: bool = True


class IntegrationOut(BaseModel):
    provider: ProviderName
    name: str
    credentials: dict[str, Any]
    selected_groups: list[str]
    selected_statuses: list[str]
    days_back: int
    last_imported_at: datetime | None


class ImportRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    days_back: int | None = Field(default=None, ge=1, le=365)


def _to_out(integration: Integration) -> IntegrationOut:
    return IntegrationOut(
        provider=integration.provider,
        name=PROVIDER_REGISTRY[integration.provider]["name"],
        credentials=mask_credentials(integration_credentials(integration)),
        selected_groups=integration.selected_groups or [],
        selected_statuses=integration.selected_statuses or [],
        days_back=integration.days_back,
        last_imported_at=integration.last_imported_at,
    )


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@router.get("/", response_model=list[IntegrationOut])
async def get_integrations(
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return [_to_out(i) for i in await list_integrations(session, user.id)]


@router.put("/{provider}", response_model=IntegrationOut)
async def put_integration(
    provider: ProviderName,
    body: IntegrationSave,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    missing = missing_fields(provider, body.credentials)
    if missing:
        raise HTTPException(status_code=422, detail=f"Missing credentials: {', '.join(missing)}")

    integration = await save_integration(
        session,
        user.id,
        provider,
        body.credentials,
        selected_groups=body.selected_groups,
        selected_statuses=body.selected_statuses,
        days_back=body.days_back,
    )
    if body.schedule_daily_import:
        await setup_user_jobs(JobStore(session), user.id, [provider.value])
    return _to_out(integration)


@router.post("/{provider}/import", status_code=status.HTTP_202_ACCEPTED)
async def import_tickets(
    provider: ProviderName,
    body: ImportRequest | None = None,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    """Start an import, or attach to the one already running. Returns immediately."""
    integration = await get_integration(session, user.id, provider)
    if integration is None:
        raise HTTPException(status_code=404, detail=f"No {provider.value} integration configured")

    started = await start_import(
        session,
        user.id,
        provider.value,
        days_back=body.days_back if body else None,
        dispatcher=dispatcher,
    )
    return started.to_dict()
