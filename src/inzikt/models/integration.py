"""Integration model — per-user helpdesk credentials and import settings."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inzikt.db.session import Base
from inzikt.models.base import TimestampMixin, new_uuid, str_enum


class ProviderName(enum.StrEnum):
    ZENDESK = "zendesk"
    FRESHDESK = "freshdesk"
    INTERCOM = "intercom"


class Integration(Base, TimestampMixin):
    __tablename__ = "integrations"
    __table_args__ = (UniqueConstraint("user_id", "provider", name="uq_integrations_user_provider"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    provider: Mapped[ProviderName] = mapped_column(str_enum(ProviderName), nullable=False)
    credentials_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    selected_groups: Mapped[list] = mapped_column(JSON, default=list)
    selected_statuses: Mapped[list] = mapped_column(JSON, default=list)
    days_back: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    last_imported_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<Integration {self.provider!r} user={self.user_id!r}>"
