"""Zendesk adapter — incremental ticket export."""

from __future__ import annotations

import logging
from datetime import datetime

import httpx

from inzikt.providers.base import NormalizedTicket, TicketProvider, parse_timestamp

logger = logging.getLogger(__name__)


class ZendeskProvider(TicketProvider):
    name = "zendesk"
    required_credentials = ("subdomain", "email", "api_token")

    @property
    def base_url(self) -> str:
        return f"https://{self.credentials['subdomain']}.zendesk.com/api/v2"

    def auth(self) -> httpx.Auth:
        return httpx.BasicAuth(f"{self.credentials['email']}/token", self.credentials["api_token"])

    def _normalize(self, raw: dict) -> NormalizedTicket:
        ticket_id = str(raw["id"])
        return NormalizedTicket(
            external_id=ticket_id,
            subject=raw.get("subject") or "",
            description=raw.get("description"),
            status=raw.get("status"),
            priority=raw.get("priority"),
            requester=str(raw["requester_id"]) if raw.get("requester_id") else None,
            tags=list(raw.get("tags") or []),
            source_url=f"https://{self.credentials['subdomain']}.zendesk.com/agent/tickets/{ticket_id}",
            created_at=parse_timestamp(raw.get("created_at")),
            updated_at=parse_timestamp(raw.get("updated_at")),
        )

    async def fetch_tickets(self, since: datetime) -> list[NormalizedTicket]:
        tickets: list[NormalizedTicket] = []
        seen: set[str] = set()
        url: str | None = "/incremental/tickets.json"
        params: dict | None = {"start_time": int(since.timestamp())}
        previous: str | None = None

        async with self.client() as client:
            while url:
                data = await self.request_json(client, "GET", url, params=params)
                for raw in data.get("tickets") or []:
                    ticket = self._normalize(raw)
                    if ticket.external_id not in seen:
                        seen.add(ticket.external_id)
                        tickets.append(ticket)

                next_page = data.get("next_page")
                # The export repeats the last page's cursor once the stream is exhausted
                if data.get("end_of_stream") or not next_page or next_page == previous:
                    break
                previous, url, params = next_page, next_page, None

        logger.info("Fetched %d Zendesk tickets since %s", len(tickets), since.isoformat())
        return tickets
