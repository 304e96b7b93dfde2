from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from supabase import AsyncClient

from institute.config.settings import settings
from institute.db.json_store import JsonCollectionStore
from institute.db.storage import KeyValueStorage, SqlStorage
from institute.providers.remote_store import RemoteStoreAdapter, create_supabase_client
from institute.services.auth_service import AuthService
from institute.utils.logging import get_logger
from institute.routers import main_router
from institute.utils.errors import setup_error_handlers
from institute.utils.warning_registry import WarningRegistry
from institute.middlewares import (
    RequestIDMiddleware,
    DevSecurityMiddleware,
    ProdSecurityMiddleware,
    OwnerGuardMiddleware,
)

# Initialize the logger
logger = get_logger()


def create_application(
    server_storage: Optional[KeyValueStorage] = None,
    supabase_admin: Optional[AsyncClient] = None,
    connect_supabase: bool = True,
) -> FastAPI:
    """
    Initialize the FastAPI application with settings and lifespan events.

    `server_storage` and `supabase_admin` replace the configured backends
    (tests pass in-memory ones); with `connect_supabase=False` no Supabase
    client is created from settings.
    """

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        logger.info(f"{settings.NAME} API is starting up...")
        storage = server_storage or SqlStorage(settings.SERVER_STORAGE_URL)
        admin_client = supabase_admin
        if admin_client is None and connect_supabase:
            admin_client = await create_supabase_client(settings, admin=True)

        warnings = WarningRegistry()
        application.state.server_store = JsonCollectionStore(storage)
        application.state.server_remote = RemoteStoreAdapter(admin_client, warnings=warnings)
        application.state.supabase_admin = admin_client
        application.state.auth_service = AuthService(admin_client, settings, warnings=warnings)
        if admin_client is None:
            logger.warning("Supabase admin client not configured; using the server store")

        yield

        if server_storage is None and isinstance(storage, SqlStorage):
            storage.dispose()
        logger.info(f"{settings.NAME} API is shutting down...")

    application = FastAPI(title=settings.NAME, version=settings.VERSION, lifespan=lifespan)

    # Setup error handlers
    setup_error_handlers(application)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "authorization", "x-admin-token", "X-Request-ID"],
    )

    # Add custom middlewares
    application.add_middleware(
        DevSecurityMiddleware
        if settings.ENVIRONMENT == "development"
        else ProdSecurityMiddleware
    )
    application.add_middleware(OwnerGuardMiddleware)
    application.add_middleware(RequestIDMiddleware)

    # Routers
    application.include_router(main_router, prefix=settings.API_PREFIX)

    return application


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "institute.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_config=None,
        log_level=None,
    )
