"""Provider lookup by integration name."""

from __future__ import annotations

from typing import Any

from inzikt.providers.base import ProviderError, TicketProvider
from inzikt.providers.freshdesk import FreshdeskProvider
from inzikt.providers.intercom import IntercomProvider
from inzikt.providers.zendesk import ZendeskProvider

PROVIDERS: dict[str, type[TicketProvider]] = {
    ZendeskProvider.name: ZendeskProvider,
    FreshdeskProvider.name: FreshdeskProvider,
    IntercomProvider.name: IntercomProvider,
}


def get_provider(name: str, credentials: dict[str, Any], **kwargs: Any) -> TicketProvider:
    provider_cls = PROVIDERS.get(name)
    if provider_cls is None:
        raise ProviderError(f"Unsupported provider: {name}")
    return provider_cls(credentials, **kwargs)
