"""Base model mixins."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, func
from sqlalchemy.orm import Mapped, mapped_column


class TimestampMixin:
    """Adds created_at and updated_at to any model."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def new_uuid() -> str:
    return str(uuid.uuid4())


def str_enum(enum_cls: type[enum.StrEnum], length: int = 20) -> Enum:
    """Non-native SQL enum storing the member values."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda obj: [e.value for e in obj],
    )
