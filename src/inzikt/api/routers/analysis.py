"""Analysis router — on-demand AI analysis of a user's imported tickets."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from inzikt.api.auth import CurrentUser, get_current_user
from inzikt.api.deps import get_dispatcher
from inzikt.core.tasks import JobDispatcher
from inzikt.db.session import get_session
from inzikt.jobs.analysis import start_analysis
from inzikt.llm import is_llm_configured

router = APIRouter()


class AnalysisRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    allowed_tags: list[str] = Field(default_factory=list)
    batch_size: int | None = Field(default=None, ge=1, le=1000)


@router.post("/", status_code=status.HTTP_202_ACCEPTED)
async def analyze_tickets(
    body: AnalysisRequest | None = None,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    """Start analysing unanalysed tickets, or attach to the running analysis."""
    if not is_llm_configured():
        raise HTTPException(status_code=503, detail="Ticket analysis is not configured")
    body = body or AnalysisRequest()
    started = await start_analysis(
        session,
        user.id,
        allowed_tags=body.allowed_tags,
        batch_size=body.batch_size,
        dispatcher=dispatcher,
    )
    return started.to_dict()
