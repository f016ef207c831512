"""Insight model — AI-written observations about a user's ticket trends per period."""

from sqlalchemy import JSON, Boolean, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inzikt.db.session import Base
from inzikt.models.base import TimestampMixin, new_uuid


class Insight(Base, TimestampMixin):
    __tablename__ = "insights"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    insight_type: Mapped[str] = mapped_column(String(20), default="OTHER")
    time_period: Mapped[str] = mapped_column(String(20), nullable=False)
    compared_with: Mapped[str] = mapped_column(String(20), nullable=False)
    percentage_change: Mapped[float | None] = mapped_column(Float)
    metric_type: Mapped[str] = mapped_column(String(20), default="tag_frequency")
    metric_value: Mapped[float | None] = mapped_column(Float)
    related_tags: Mapped[list] = mapped_column(JSON, default=list)
    related_ticket_ids: Mapped[list] = mapped_column(JSON, default=list)
    ai_generated: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Insight {self.time_period}:{self.title!r} user={self.user_id!r}>"
