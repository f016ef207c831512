"""Ticket analysis — the ``ticket-analysis`` scheduled handler and the analysis runner."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from inzikt.core.background import BackgroundJobService, StartResult
from inzikt.core.schedule import utcnow
from inzikt.core.store import JobStore
from inzikt.core.tasks import JobDispatcher, get_dispatcher
from inzikt.llm import analyze_ticket, is_llm_configured
from inzikt.models.job import BackgroundJob, BackgroundJobType
from inzikt.models.ticket import Ticket

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 200


async def start_analysis(
    session: AsyncSession,
    user_id: str,
    allowed_tags: list[str] | None = None,
    batch_size: int | None = None,
    dispatcher: JobDispatcher | None = None,
) -> StartResult:
    """Start (or attach to) the user's analysis job and enqueue it when new."""
    parameters: dict[str, Any] = {}
    if allowed_tags:
        parameters["allowed_tags"] = allowed_tags
    if batch_size:
        parameters["batch_size"] = batch_size
    service = BackgroundJobService(JobStore(session))
    started = await service.start(user_id, BackgroundJobType.ANALYSIS, parameters=parameters)
    if started.created:
        (dispatcher or get_dispatcher()).dispatch(started.job)
    return started


async def ticket_analysis_handler(parameters: dict[str, Any]) -> dict[str, Any]:
    """Scheduled analysis of a user's unanalysed tickets: ``{user_id}``."""
    from inzikt.db.session import get_session_factory

    user_id = parameters.get("user_id")
    if not user_id:
        raise ValueError("ticket-analysis requires user_id")

    async with get_session_factory()() as session:
        started = await start_analysis(
            session,
            user_id,
            allowed_tags=parameters.get("allowed_tags"),
            batch_size=parameters.get("batch_size"),
        )
    return started.to_dict()


async def pending_tickets(session: AsyncSession, user_id: str, limit: int) -> list[Ticket]:
    result = await session.execute(
        select(Ticket)
        .where(Ticket.user_id == user_id, Ticket.analyzed_at.is_(None))
        .order_by(Ticket.created_at.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def run_analysis(job: BackgroundJob, service: BackgroundJobService) -> dict[str, Any]:
    """Summarise and tag each unanalysed ticket, checking for cancellation in between."""
    if not is_llm_configured():
        raise RuntimeError("No LLM configured. Set OPENAI_API_KEY to analyse tickets.")

    session = service.store.session
    token = service.token(job.id)
    params = job.parameters or {}
    allowed_tags = list(params.get("allowed_tags") or [])
    batch_size = int(params.get("batch_size") or DEFAULT_BATCH_SIZE)

    tickets = await pending_tickets(session, job.user_id, batch_size)
    total = len(tickets)
    await service.update_progress(job.id, 0, total_tickets=total)

    analyzed = failed = 0
    for position, ticket in enumerate(tickets, start=1):
        await token.check()
        try:
            analysis = await analyze_ticket(ticket, allowed_tags)
        except Exception as exc:
            # One bad completion should not sink the batch
            logger.warning("Analysis of ticket %s failed: %s", ticket.id, exc)
            failed += 1
        else:
            ticket.ai_summary = analysis.summary
            ticket.ai_tags = analysis.tags
            ticket.analyzed_at = utcnow()
            await session.flush()
            analyzed += 1
        await service.update_progress(
            job.id,
            position,
            total_tickets=total,
            current_ticket={"id": ticket.external_id, "position": position},
        )

    logger.info("Analysed %d/%d tickets for user %s (%d failed)", analyzed, total, job.user_id, failed)
    return {"analyzed": analyzed, "failed": failed, "total": total}
