"""Ticket import — the ``automated-import`` scheduled handler and the import runner."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from inzikt.core.background import BackgroundJobService, StartResult
from inzikt.core.integrations import get_integration, integration_credentials
from inzikt.core.schedule import ensure_utc, utcnow
from inzikt.core.store import JobStore
from inzikt.core.tasks import JobDispatcher, get_dispatcher
from inzikt.models.job import BackgroundJob, BackgroundJobType
from inzikt.models.ticket import Ticket
from inzikt.providers.base import NormalizedTicket
from inzikt.providers.registry import get_provider

logger = logging.getLogger(__name__)

DEFAULT_DAYS_BACK = 7


async def start_import(
    session: AsyncSession,
    user_id: str,
    provider: str,
    days_back: int | None = None,
    dispatcher: JobDispatcher | None = None,
) -> StartResult:
    """Start (or attach to) the user's import job and enqueue it when new."""
    parameters: dict[str, Any] = {}
    if days_back is not None:
        parameters["days_back"] = days_back
    service = BackgroundJobService(JobStore(session))
    started = await service.start(
        user_id, BackgroundJobType.IMPORT, provider=provider, parameters=parameters
    )
    if started.created:
        (dispatcher or get_dispatcher()).dispatch(started.job)
    return started


async def automated_import_handler(parameters: dict[str, Any]) -> dict[str, Any]:
    """Scheduled import for one user+provider: ``{user_id, provider, days_back=7}``."""
    from inzikt.db.session import get_session_factory

    user_id = parameters.get("user_id")
    provider = parameters.get("provider")
    if not user_id or not provider:
        raise ValueError("automated-import requires user_id and provider")
    days_back = int(parameters.get("days_back", DEFAULT_DAYS_BACK))

    async with get_session_factory()() as session:
        integration = await get_integration(session, user_id, provider)
        if integration is None:
            raise ValueError(f"No {provider} integration configured for user {user_id}")
        started = await start_import(session, user_id, provider, days_back=days_back)

    logger.info(
        "Automated import for user %s via %s: job %s (%s)",
        user_id,
        provider,
        started.job.id,
        "attached" if started.attached else "created",
    )
    return started.to_dict()


async def upsert_ticket(
    session: AsyncSession, user_id: str, provider: str, ticket: NormalizedTicket
) -> bool:
    """Insert or refresh one ticket. Returns True when the row is new."""
    result = await session.execute(
        select(Ticket).where(
            Ticket.user_id == user_id,
            Ticket.provider == provider,
            Ticket.external_id == ticket.external_id,
        )
    )
    row = result.scalar_one_or_none()
    created = row is None
    if created:
        row = Ticket(user_id=user_id, provider=provider, external_id=ticket.external_id)
        session.add(row)
    elif ticket.updated_at and (
        row.provider_updated_at is None or ensure_utc(row.provider_updated_at) != ticket.updated_at
    ):
        # Content changed upstream; analyse it again
        row.analyzed_at = None

    row.subject = ticket.subject[:500]
    row.description = ticket.description
    row.status = ticket.status
    row.priority = ticket.priority
    row.requester = ticket.requester
    row.tags = ticket.tags
    row.source_url = ticket.source_url
    row.provider_created_at = ticket.created_at
    row.provider_updated_at = ticket.updated_at
    await session.flush()
    return created


async def run_import(job: BackgroundJob, service: BackgroundJobService) -> dict[str, Any]:
    """Fetch tickets from the provider and upsert them one at a time."""
    session = service.store.session
    token = service.token(job.id)

    integration = await get_integration(session, job.user_id, job.provider)
    if integration is None:
        raise ValueError(f"No {job.provider} integration configured")

    days_back = int((job.parameters or {}).get("days_back") or integration.days_back)
    since = utcnow() - timedelta(days=days_back)
    provider = get_provider(job.provider, integration_credentials(integration))

    tickets = await provider.fetch_tickets(since)
    if integration.selected_statuses:
        wanted = {str(s).lower() for s in integration.selected_statuses}
        tickets = [t for t in tickets if (t.status or "").lower() in wanted]
    total = len(tickets)
    await service.update_progress(job.id, 0, total_tickets=total)

    created = 0
    for position, ticket in enumerate(tickets, start=1):
        await token.check()
        if await upsert_ticket(session, job.user_id, job.provider, ticket):
            created += 1
        await service.update_progress(
            job.id,
            position,
            total_tickets=total,
            current_ticket={"id": ticket.external_id, "position": position},
        )

    integration.last_imported_at = utcnow()
    await session.flush()
    logger.info("Imported %d %s tickets for user %s (%d new)", total, job.provider, job.user_id, created)
    return {
        "provider": job.provider,
        "imported": total,
        "created": created,
        "updated": total - created,
        "since": since.isoformat(),
    }
