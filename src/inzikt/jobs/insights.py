"""Insights — the ``generate-insights`` scheduled handler.

For each requested period (the trailing day, week, month, quarter, half year or
year) the user's analysed tickets are compared with either the preceding period
of the same length or the same window one year earlier. Volume and tag-frequency
metrics go to the LLM together with the ticket summaries, and the insights it
returns are stored.
"""

from __future__ import annotations

import calendar
import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from inzikt.core.schedule import ensure_utc, utcnow
from inzikt.llm import InsightDraft, is_llm_configured, summarize_insights
from inzikt.models.insight import Insight
from inzikt.models.ticket import Ticket

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"day": 1, "week": 7}
PERIOD_MONTHS = {"month": 1, "quarter": 3, "half_year": 6, "year": 12}
PERIODS = (*PERIOD_DAYS, *PERIOD_MONTHS)
COMPARISONS = ("previous_period", "same_last_year")

TOP_TAGS = 10
SIGNIFICANT_CHANGE = 20.0
TREND_THRESHOLD = 50.0
MAX_RELATED_TICKETS = 10


def _months_back(moment: datetime, months: int) -> datetime:
    """Same day-of-month ``months`` earlier, clamped to the month's last day."""
    month_index = moment.year * 12 + moment.month - 1 - months
    year, month = divmod(month_index, 12)
    day = min(moment.day, calendar.monthrange(year, month + 1)[1])
    return moment.replace(year=year, month=month + 1, day=day)


def period_start(period: str, end: datetime) -> datetime:
    if period in PERIOD_DAYS:
        return end - timedelta(days=PERIOD_DAYS[period])
    return _months_back(end, PERIOD_MONTHS[period])


@dataclass(frozen=True)
class Windows:
    current_start: datetime
    current_end: datetime
    previous_start: datetime
    previous_end: datetime


def period_windows(period: str, compare_with: str, now: datetime) -> Windows:
    current_start = period_start(period, now)
    if compare_with == "same_last_year":
        return Windows(current_start, now, _months_back(current_start, 12), _months_back(now, 12))
    return Windows(current_start, now, period_start(period, current_start), current_start)


def _ticket_date(ticket: Ticket) -> datetime:
    return ensure_utc(ticket.provider_created_at or ticket.created_at)


def _between(tickets: Sequence[Ticket], start: datetime, end: datetime) -> list[Ticket]:
    return [t for t in tickets if start < _ticket_date(t) < end]


def _percent_change(current: float, previous: float) -> float | None:
    if not previous:
        return None
    return round((current - previous) / previous * 100, 1)


def compute_metrics(current: Sequence[Ticket], previous: Sequence[Ticket]) -> dict[str, Any]:
    """Volume and tag-frequency comparison between two sets of tickets."""
    current_tags = Counter(tag for t in current for tag in (t.ai_tags or []))
    previous_tags = Counter(tag for t in previous for tag in (t.ai_tags or []))

    tag_changes: dict[str, float] = {}
    for tag in current_tags.keys() | previous_tags.keys():
        change = _percent_change(current_tags[tag], previous_tags[tag])
        # Tags absent from the previous window count as new
        tag_changes[tag] = 100.0 if change is None else change

    return {
        "volume": {
            "current": len(current),
            "previous": len(previous),
            "percentageChange": _percent_change(len(current), len(previous)),
        },
        "topTags": [{"tag": tag, "count": count} for tag, count in current_tags.most_common(TOP_TAGS)],
        "tagChanges": tag_changes,
        "emergingTopics": sorted(t for t, c in tag_changes.items() if c > TREND_THRESHOLD),
        "decliningTopics": sorted(t for t, c in tag_changes.items() if c < -TREND_THRESHOLD),
    }


def related_ticket_ids(tickets: Sequence[Ticket], tags: Sequence[str]) -> list[str]:
    wanted = {tag.strip().lower() for tag in tags if tag.strip()}
    if not wanted:
        return []
    related = [
        t.id for t in tickets if wanted & {tag.strip().lower() for tag in (t.ai_tags or [])}
    ]
    return related[:MAX_RELATED_TICKETS]


def build_dataset(
    period: str, compare_with: str, metrics: dict[str, Any], current: Sequence[Ticket]
) -> dict[str, Any]:
    significant = sorted(
        (
            {"tag": tag, "change": change}
            for tag, change in metrics["tagChanges"].items()
            if abs(change) > SIGNIFICANT_CHANGE
        ),
        key=lambda item: abs(item["change"]),
        reverse=True,
    )
    return {
        "period": period,
        "comparison": (
            "Previous equivalent period" if compare_with == "previous_period" else "Same period last year"
        ),
        "ticketVolume": metrics["volume"],
        "topTags": [item["tag"] for item in metrics["topTags"]],
        "significantChanges": significant[:15],
        "emergingTopics": metrics["emergingTopics"],
        "decliningTopics": metrics["decliningTopics"],
        "tickets": [{"summary": t.ai_summary or "No summary", "tags": t.ai_tags or []} for t in current],
    }


async def analyzed_tickets(session: AsyncSession, user_id: str, since: datetime) -> list[Ticket]:
    ticket_date = func.coalesce(Ticket.provider_created_at, Ticket.created_at)
    result = await session.execute(
        select(Ticket).where(
            Ticket.user_id == user_id,
            Ticket.analyzed_at.is_not(None),
            ticket_date > since,
        )
    )
    return list(result.scalars().all())


async def generate_for_period(
    session: AsyncSession, user_id: str, period: str, compare_with: str, now: datetime
) -> dict[str, Any]:
    windows = period_windows(period, compare_with, now)
    tickets = await analyzed_tickets(session, user_id, min(windows.previous_start, windows.current_start))
    current = _between(tickets, windows.current_start, windows.current_end)
    previous = _between(tickets, windows.previous_start, windows.previous_end)
    if not current:
        return {"period": period, "message": "No tickets in current period", "insights": []}

    metrics = compute_metrics(current, previous)
    drafts: list[InsightDraft] = await summarize_insights(
        build_dataset(period, compare_with, metrics, current)
    )
    for draft in drafts:
        session.add(
            Insight(
                user_id=user_id,
                title=draft.title or "Untitled insight",
                description=draft.description,
                insight_type=draft.insight_type,
                time_period=period,
                compared_with=compare_with,
                percentage_change=draft.percentage_change,
                metric_type=draft.metric_type,
                metric_value=draft.metric_value,
                related_tags=draft.related_tags,
                related_ticket_ids=related_ticket_ids(current, draft.related_tags),
            )
        )
    await session.commit()
    logger.info("Stored %d %s insights for user %s", len(drafts), period, user_id)
    return {
        "period": period,
        "currentCount": len(current),
        "previousCount": len(previous),
        "insights": [draft.model_dump() for draft in drafts],
    }


async def generate_insights(
    session: AsyncSession,
    user_id: str,
    periods: Sequence[str],
    compare_with: str = "previous_period",
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Generate insights per period; a failing period is reported, not raised."""
    now = now or utcnow()
    results = []
    for period in periods:
        try:
            results.append(await generate_for_period(session, user_id, period, compare_with, now))
        except Exception as exc:
            logger.exception("Insights for %s period failed for user %s", period, user_id)
            await session.rollback()
            results.append({"period": period, "error": str(exc), "insights": []})
    return results


async def generate_insights_handler(parameters: dict[str, Any]) -> dict[str, Any]:
    """``{user_id, periods=[...] | period="week", compare_with="previous_period"}``."""
    from inzikt.db.session import get_session_factory

    user_id = parameters.get("user_id")
    if not user_id:
        raise ValueError("generate-insights requires user_id")
    periods = list(parameters.get("periods") or [parameters.get("period") or "week"])
    unknown = [p for p in periods if p not in PERIODS]
    if unknown:
        raise ValueError(f"Unknown insight period(s): {', '.join(unknown)}")
    compare_with = parameters.get("compare_with") or "previous_period"
    if compare_with not in COMPARISONS:
        raise ValueError(f"Unknown comparison: {compare_with}")
    if not is_llm_configured():
        raise RuntimeError("No LLM configured. Set OPENAI_API_KEY to generate insights.")

    async with get_session_factory()() as session:
        results = await generate_insights(session, user_id, periods, compare_with)
    return {"success": True, "results": results}
