"""BackgroundJob model — one-shot, user-triggered import/analysis/export runs."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inzikt.db.session import Base
from inzikt.models.base import TimestampMixin, new_uuid, str_enum


class BackgroundJobType(enum.StrEnum):
    IMPORT = "import"
    ANALYSIS = "analysis"
    EXPORT = "export"


class BackgroundJobStatus(enum.StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


ACTIVE_STATUSES = frozenset({BackgroundJobStatus.PENDING, BackgroundJobStatus.PROCESSING})
TERMINAL_STATUSES = frozenset(
    {BackgroundJobStatus.COMPLETED, BackgroundJobStatus.FAILED, BackgroundJobStatus.CANCELED}
)


class BackgroundJob(Base, TimestampMixin):
    __tablename__ = "background_jobs"
    # active_slot holds the job type while the job is pending/processing and NULL
    # afterwards; NULLs never collide, so this allows one active job per user+type.
    __table_args__ = (
        UniqueConstraint("user_id", "active_slot", name="uq_background_jobs_user_active_slot"),
        Index("ix_background_jobs_user_type_status", "user_id", "job_type", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    job_type: Mapped[BackgroundJobType] = mapped_column(
        str_enum(BackgroundJobType), nullable=False
    )
    provider: Mapped[str | None] = mapped_column(String(50))
    status: Mapped[BackgroundJobStatus] = mapped_column(
        str_enum(BackgroundJobStatus), default=BackgroundJobStatus.PENDING, nullable=False
    )
    active_slot: Mapped[str | None] = mapped_column(String(20))
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stage: Mapped[str | None] = mapped_column(String(20))
    total_tickets: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_ticket: Mapped[dict | None] = mapped_column(JSON)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text)
    parameters: Mapped[dict] = mapped_column(JSON, default=dict)
    result: Mapped[dict | None] = mapped_column(JSON)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self) -> str:
        return f"<BackgroundJob {self.job_type!r} id={self.id!r} status={self.status!r}>"
