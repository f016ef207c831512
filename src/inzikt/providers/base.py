"""Helpdesk provider adapters — shared types and the httpx plumbing."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, ClassVar

import httpx

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """A provider API call failed or the credentials are incomplete."""


@dataclass
class NormalizedTicket:
    """A ticket as every provider adapter returns it."""

    external_id: str
    subject: str = ""
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    requester: str | None = None
    tags: list[str] = field(default_factory=list)
    source_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def parse_timestamp(value: str | int | float | None) -> datetime | None:
    """ISO-8601 strings and unix timestamps to aware UTC datetimes."""
    if value in (None, ""):
        return None
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value, UTC)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable provider timestamp %r", value)
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class TicketProvider(ABC):
    """Base class for ticket-fetching adapters."""

    name: ClassVar[str]
    required_credentials: ClassVar[tuple[str, ...]] = ()
    timeout: ClassVar[float] = 30.0

    def __init__(
        self,
        credentials: dict[str, Any],
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        missing = [key for key in self.required_credentials if not credentials.get(key)]
        if missing:
            raise ProviderError(f"{self.name} credentials missing: {', '.join(missing)}")
        self.credentials = credentials
        self._transport = transport

    @property
    @abstractmethod
    def base_url(self) -> str: ...

    def auth(self) -> httpx.Auth | None:
        return None

    def headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=self.auth(),
            headers=self.headers(),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def request_json(
        self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any
    ) -> Any:
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.name} request failed: {exc}") from exc
        if resp.status_code == 429:
            raise ProviderError(
                f"{self.name} rate limit hit (retry after {resp.headers.get('retry-after', '?')}s)"
            )
        if resp.status_code == 401:
            raise ProviderError(f"{self.name} rejected the credentials (HTTP 401)")
        if resp.status_code >= 400:
            raise ProviderError(f"{self.name} API returned HTTP {resp.status_code}")
        return resp.json()

    @abstractmethod
    async def fetch_tickets(self, since: datetime) -> list[NormalizedTicket]:
        """Return tickets updated since ``since``."""
