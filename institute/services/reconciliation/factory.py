from typing import Optional

import httpx
from supabase import AsyncClient

from institute.config.settings import Settings, settings as default_settings
from institute.db.storage import KeyValueStorage, SqlStorage
from institute.providers.public_api_client import PublicApiClient
from institute.providers.remote_store import RemoteStoreAdapter, create_supabase_client
from institute.services.reconciliation.service import ReconciliationService
from institute.utils.global_context import AppContext
from institute.utils.logging import get_logger

logger = get_logger()


async def create_reconciliation_service(
    settings: Settings = default_settings,
    storage: Optional[KeyValueStorage] = None,
    origin: Optional[str] = None,
    supabase_client: Optional[AsyncClient] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ReconciliationService:
    """
    Wire one client instance: context, cache, bus, remote store and API client.

    Storage defaults to `LOCAL_STORAGE_URL`; the Supabase client is created
    from settings unless one is passed in.
    """
    if storage is None:
        storage = SqlStorage(settings.LOCAL_STORAGE_URL)
    if supabase_client is None:
        supabase_client = await create_supabase_client(settings)

    context = AppContext(storage, origin=origin)
    service = ReconciliationService(
        context=context,
        remote=RemoteStoreAdapter(supabase_client, warnings=context.warnings),
        api=PublicApiClient.from_settings(settings, http_client=http_client, warnings=context.warnings),
        owner_emails=settings.OWNER_EMAILS,
    )
    logger.info(
        f"Reconciliation service ready (origin={context.origin}, "
        f"remote={'on' if service.remote.configured() else 'off'}, "
        f"api={'on' if service.api.configured() else 'off'})"
    )
    return service
