"""SQLAlchemy models package."""

from inzikt.models.base import TimestampMixin
from inzikt.models.insight import Insight
from inzikt.models.integration import Integration, ProviderName
from inzikt.models.job import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    BackgroundJob,
    BackgroundJobStatus,
    BackgroundJobType,
)
from inzikt.models.schedule import ExecutionStatus, JobExecution, JobFrequency, ScheduledJob
from inzikt.models.ticket import Ticket

__all__ = [
    "TimestampMixin",
    "ScheduledJob",
    "JobExecution",
    "JobFrequency",
    "ExecutionStatus",
    "BackgroundJob",
    "BackgroundJobStatus",
    "BackgroundJobType",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Ticket",
    "Insight",
    "Integration",
    "ProviderName",
]
