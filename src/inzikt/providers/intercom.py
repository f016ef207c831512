"""Intercom adapter — conversations searched by ``updated_at``."""

from __future__ import annotations

import logging
from datetime import datetime

from inzikt.providers.base import NormalizedTicket, TicketProvider, parse_timestamp

logger = logging.getLogger(__name__)

PER_PAGE = 150
API_VERSION = "2.11"


class IntercomProvider(TicketProvider):
    name = "intercom"
    required_credentials = ("access_token",)
    base_url = "https://api.intercom.io"

    def headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.credentials['access_token']}",
            "Intercom-Version": API_VERSION,
        }

    def _normalize(self, raw: dict) -> NormalizedTicket:
        source = raw.get("source") or {}
        author = source.get("author") or {}
        tags = (raw.get("tags") or {}).get("tags") or []
        conversation_id = str(raw["id"])
        return NormalizedTicket(
            external_id=conversation_id,
            subject=raw.get("title") or source.get("subject") or "",
            description=source.get("body"),
            status=raw.get("state"),
            priority=raw.get("priority"),
            requester=author.get("email") or author.get("name"),
            tags=[t["name"] for t in tags if t.get("name")],
            source_url=f"https://app.intercom.com/a/inbox/_/inbox/conversation/{conversation_id}",
            created_at=parse_timestamp(raw.get("created_at")),
            updated_at=parse_timestamp(raw.get("updated_at")),
        )

    async def fetch_tickets(self, since: datetime) -> list[NormalizedTicket]:
        tickets: list[NormalizedTicket] = []
        starting_after: str | None = None
        async with self.client() as client:
            while True:
                pagination: dict = {"per_page": PER_PAGE}
                if starting_after:
                    pagination["starting_after"] = starting_after
                data = await self.request_json(
                    client,
                    "POST",
                    "/conversations/search",
                    json={
                        "query": {
                            "field": "updated_at",
                            "operator": ">",
                            "value": int(since.timestamp()),
                        },
                        "pagination": pagination,
                    },
                )
                tickets.extend(self._normalize(raw) for raw in data.get("conversations") or [])
                starting_after = (((data.get("pages") or {}).get("next")) or {}).get("starting_after")
                if not starting_after:
                    break

        logger.info("Fetched %d Intercom conversations since %s", len(tickets), since.isoformat())
        return tickets
