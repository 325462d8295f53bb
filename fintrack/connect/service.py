"""
Provider and account discovery plus the connect flow completion.

Discovery runs in the lifespan before requests are served and is
fail-fast: every error propagates and aborts startup.
"""

from datetime import timedelta

import structlog

from fintrack.core.context import AppContext
from fintrack.db.models import Provider
from fintrack.db.unit_of_work import UnitOfWork

logger = structlog.get_logger(__name__)


async def discover_providers(context: AppContext) -> int:
    """
    Store the supported providers that are not known yet.

    Returns:
        Number of providers added
    """
    providers = await context.client.supported_providers()

    added = 0
    async with UnitOfWork(context.session_factory) as uow:
        for provider in providers:
            if await uow.providers.add_if_absent(
                provider.provider_id, provider.display_name, provider.logo_url
            ):
                logger.info("discovery.provider_added", provider_id=provider.provider_id)
                added += 1

    logger.info("discovery.providers_done", supported=len(providers), added=added)
    return added


async def fetch_provider_accounts(context: AppContext, provider_id: str) -> int:
    """
    Fetch the accounts of a connected provider and store the new ones.

    The network call happens before the store session is opened.

    Returns:
        Number of accounts added
    """
    accounts = await context.client.accounts(provider_id)

    added = 0
    async with UnitOfWork(context.session_factory) as uow:
        for account in accounts:
            if await uow.accounts.add_if_absent(
                account.account_id, provider_id, account.display_name
            ):
                logger.info(
                    "discovery.account_added",
                    provider_id=provider_id,
                    account_id=account.account_id,
                )
                added += 1
    return added


async def discover_accounts(context: AppContext) -> int:
    """
    Store unknown accounts of every connected provider.

    Returns:
        Number of accounts added across providers
    """
    async with UnitOfWork(context.session_factory) as uow:
        provider_ids = [p.id for p in await uow.providers.get_connected()]

    added = 0
    for provider_id in provider_ids:
        added += await fetch_provider_accounts(context, provider_id)

    logger.info("discovery.accounts_done", providers=len(provider_ids), added=added)
    return added


async def complete_connection(context: AppContext, code: str, callback: str) -> Provider:
    """
    Finish the authorization flow for one provider.

    Exchanges the code, resolves which provider the token belongs to,
    stores its credentials and imports its accounts.

    Args:
        context: Application context
        code: Authorization code from the callback
        callback: Redirect URI the code was issued for

    Returns:
        Stored provider
    """
    token = await context.client.exchange_code(code, callback)
    metadata = await context.client.token_metadata(token.access_token)
    expires_at = context.clock() + timedelta(seconds=token.expires_in)

    async with UnitOfWork(context.session_factory) as uow:
        provider = await uow.providers.save_connected(
            id=metadata.provider.provider_id,
            display_name=metadata.provider.display_name,
            logo_url=metadata.provider.logo_uri,
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            expires_at=expires_at,
        )

    logger.info("connect.provider_connected", provider_id=provider.id)

    await fetch_provider_accounts(context, provider.id)
    return provider
