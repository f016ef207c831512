"""Freshdesk adapter — paged ticket listing filtered by ``updated_since``."""

from __future__ import annotations

import logging
from datetime import datetime

import httpx

from inzikt.providers.base import NormalizedTicket, TicketProvider, parse_timestamp

logger = logging.getLogger(__name__)

PER_PAGE = 100

_STATUSES = {2: "open", 3: "pending", 4: "resolved", 5: "closed"}
_PRIORITIES = {1: "low", 2: "medium", 3: "high", 4: "urgent"}


class FreshdeskProvider(TicketProvider):
    name = "freshdesk"
    required_credentials = ("subdomain", "api_key")

    @property
    def base_url(self) -> str:
        return f"https://{self.credentials['subdomain']}.freshdesk.com/api/v2"

    def auth(self) -> httpx.Auth:
        # Freshdesk takes the API key as username with a dummy password
        return httpx.BasicAuth(self.credentials["api_key"], "X")

    def _normalize(self, raw: dict) -> NormalizedTicket:
        ticket_id = str(raw["id"])
        return NormalizedTicket(
            external_id=ticket_id,
            subject=raw.get("subject") or "",
            description=raw.get("description_text") or raw.get("description"),
            status=_STATUSES.get(raw.get("status"), str(raw.get("status") or "")) or None,
            priority=_PRIORITIES.get(raw.get("priority")),
            requester=str(raw["requester_id"]) if raw.get("requester_id") else None,
            tags=list(raw.get("tags") or []),
            source_url=f"https://{self.credentials['subdomain']}.freshdesk.com/a/tickets/{ticket_id}",
            created_at=parse_timestamp(raw.get("created_at")),
            updated_at=parse_timestamp(raw.get("updated_at")),
        )

    async def fetch_tickets(self, since: datetime) -> list[NormalizedTicket]:
        tickets: list[NormalizedTicket] = []
        page = 1
        async with self.client() as client:
            while True:
                data = await self.request_json(
                    client,
                    "GET",
                    "/tickets",
                    params={
                        "updated_since": since.strftime("%Y-%m-%dT%H:%M:%SZ"),
                        "per_page": PER_PAGE,
                        "page": page,
                    },
                )
                tickets.extend(self._normalize(raw) for raw in data)
                if len(data) < PER_PAGE:
                    break
                page += 1

        logger.info("Fetched %d Freshdesk tickets since %s", len(tickets), since.isoformat())
        return tickets
