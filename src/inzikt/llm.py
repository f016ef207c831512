"""LLM factory and ticket analysis via pydantic-ai.

The analysis job asks the model for a short summary and a handful of tags per
ticket; the insights job turns tag and volume metrics into period insights. Only OpenAI is supported; ``is_llm_configured()`` gates the job.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from pydantic_ai.models import Model

    from inzikt.models.ticket import Ticket

logger = logging.getLogger(__name__)

_model_cache: Model | None = None

SYSTEM_PROMPT = (
    "You analyse customer support tickets. Summarise the customer's issue in at most "
    "two sentences and pick up to five short, lowercase tags describing it. Prefer "
    "tags from the allowed list when one fits."
)

MAX_TICKET_CHARS = 6000


class TicketAnalysis(BaseModel):
    summary: str = Field(description="One or two sentence summary of the customer's issue")
    tags: list[str] = Field(default_factory=list, max_length=5)


def get_llm_model(*, force_refresh: bool = False) -> Model:
    """Return a cached pydantic-ai model instance."""
    global _model_cache
    if _model_cache is None or force_refresh:
        _model_cache = _build_model()
    return _model_cache


def _build_model() -> Model:
    from pydantic_ai.models.openai import OpenAIModel
    from pydantic_ai.providers.openai import OpenAIProvider

    from inzikt.config import get_settings

    settings = get_settings()
    if not settings.openai_api_key:
        raise RuntimeError("No LLM configured. Set OPENAI_API_KEY in your .env file.")

    logger.info("LLM: using OpenAI (model=%s)", settings.openai_model)
    provider = OpenAIProvider(api_key=settings.openai_api_key)
    return OpenAIModel(settings.openai_model, provider=provider)


def is_llm_configured() -> bool:
    """Return True if an LLM provider is configured."""
    from inzikt.config import get_settings

    return bool(get_settings().openai_api_key)


def _ticket_prompt(ticket: Ticket, allowed_tags: list[str]) -> str:
    body = "\n".join(
        [
            f"Subject: {ticket.subject or '(none)'}",
            f"Status: {ticket.status or 'unknown'}",
            f"Existing tags: {', '.join(ticket.tags or []) or '(none)'}",
            "",
            (ticket.description or "")[:MAX_TICKET_CHARS],
        ]
    )
    if allowed_tags:
        body += f"\n\nAllowed tags: {', '.join(allowed_tags)}"
    return body


async def analyze_ticket(ticket: Ticket, allowed_tags: list[str] | None = None) -> TicketAnalysis:
    """Summarise and tag one ticket."""
    from pydantic_ai import Agent

    agent = Agent(model=get_llm_model(), output_type=TicketAnalysis, system_prompt=SYSTEM_PROMPT)
    result = await agent.run(_ticket_prompt(ticket, allowed_tags or []))
    analysis = result.output
    analysis.tags = [tag.strip().lower() for tag in analysis.tags if tag.strip()]
    return analysis


# ── Insights ──────────────────────────────────────────────────────────────────

INSIGHTS_PROMPT = (
    "You are an analytics engine for customer support data. You receive ticket "
    "summaries with tags plus precomputed volume and tag-frequency metrics for a "
    "period and the period it is compared with. Describe 5-10 trends, increases, "
    "decreases or emerging themes the data shows. Do not suggest actions."
)

InsightType = Literal["TREND", "VOLUME", "EMERGING", "DECLINE", "ALERT", "OTHER"]


class InsightDraft(BaseModel):
    title: str = Field(description="Short, specific title with the percentage or trend if relevant")
    description: str = Field(description="Two or three sentences explaining the pattern")
    insight_type: InsightType = "OTHER"
    related_tags: list[str] = Field(default_factory=list)
    percentage_change: float | None = None
    metric_type: Literal["volume", "tag_frequency"] = "tag_frequency"
    metric_value: float | None = None


async def summarize_insights(dataset: dict[str, Any]) -> list[InsightDraft]:
    """Turn a period's metrics and ticket summaries into insights."""
    from pydantic_ai import Agent

    agent = Agent(model=get_llm_model(), output_type=list[InsightDraft], system_prompt=INSIGHTS_PROMPT)
    result = await agent.run(json.dumps(dataset, default=str))
    return result.output
