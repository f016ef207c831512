"""Helpdesk integration registry and credential helpers."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from inzikt.core.crypto import decrypt_credentials, encrypt_credentials
from inzikt.models.integration import Integration, ProviderName

logger = logging.getLogger(__name__)

PROVIDER_REGISTRY: dict[str, dict[str, Any]] = {
    ProviderName.ZENDESK: {
        "name": "Zendesk",
        "fields": [
            {"key": "subdomain", "label": "Subdomain", "type": "text"},
            {"key": "email", "label": "Agent Email", "type": "text"},
            {"key": "api_token", "label": "API Token", "type": "password"},
        ],
    },
    ProviderName.FRESHDESK: {
        "name": "Freshdesk",
        "fields": [
            {"key": "subdomain", "label": "Subdomain", "type": "text"},
            {"key": "api_key", "label": "API Key", "type": "password"},
        ],
    },
    ProviderName.INTERCOM: {
        "name": "Intercom",
        "fields": [
            {"key": "access_token", "label": "Access Token", "type": "password"},
        ],
    },
}


def missing_fields(provider: str, credentials: dict[str, Any]) -> list[str]:
    fields = PROVIDER_REGISTRY[ProviderName(provider)]["fields"]
    return [f["key"] for f in fields if not credentials.get(f["key"])]


async def get_integration(
    session: AsyncSession, user_id: str, provider: ProviderName | str
) -> Integration | None:
    result = await session.execute(
        select(Integration).where(
            Integration.user_id == user_id,
            Integration.provider == ProviderName(provider),
        )
    )
    return result.scalar_one_or_none()


async def list_integrations(session: AsyncSession, user_id: str) -> list[Integration]:
    result = await session.execute(
        select(Integration).where(Integration.user_id == user_id).order_by(Integration.provider)
    )
    return list(result.scalars().all())


async def save_integration(
    session: AsyncSession,
    user_id: str,
    provider: ProviderName | str,
    credentials: dict[str, Any],
    **config: Any,
) -> Integration:
    """Create or replace the user's integration for ``provider``."""
    integration = await get_integration(session, user_id, provider)
    if integration is None:
        integration = Integration(user_id=user_id, provider=ProviderName(provider))
        session.add(integration)
    integration.credentials_encrypted = encrypt_credentials(credentials)
    for key, value in config.items():
        if value is not None:
            setattr(integration, key, value)
    await session.flush()
    await session.refresh(integration)
    return integration


def integration_credentials(integration: Integration) -> dict[str, Any]:
    return decrypt_credentials(integration.credentials_encrypted)
