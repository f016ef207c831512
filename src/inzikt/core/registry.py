"""Handler registry — immutable mapping of scheduled job type to async handler."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

JobHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class HandlerRegistry(Mapping[str, JobHandler]):
    """Read-only job type → handler lookup built once at startup.

    The tick and run-now paths receive the same instance, so a job type is
    either runnable from both or from neither.
    """

    def __init__(self, handlers: Mapping[str, JobHandler] | None = None) -> None:
        self._handlers = MappingProxyType(dict(handlers or {}))

    def __getitem__(self, job_type: str) -> JobHandler:
        return self._handlers[job_type]

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def resolve(self, job_type: str) -> JobHandler | None:
        return self._handlers.get(job_type)

    def job_types(self) -> list[str]:
        return sorted(self._handlers)

    def __repr__(self) -> str:
        return f"<HandlerRegistry {self.job_types()!r}>"


def build_default_registry() -> HandlerRegistry:
    """Wire the built-in job handlers."""
    from inzikt.jobs.analysis import ticket_analysis_handler
    from inzikt.jobs.imports import automated_import_handler
    from inzikt.jobs.insights import generate_insights_handler
    from inzikt.jobs.maintenance import database_maintenance_handler
    from inzikt.jobs.usage import usage_report_handler

    return HandlerRegistry(
        {
            "automated-import": automated_import_handler,
            "ticket-analysis": ticket_analysis_handler,
            "database-maintenance": database_maintenance_handler,
            "usage-report": usage_report_handler,
            "generate-insights": generate_insights_handler,
        }
    )
