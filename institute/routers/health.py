from fastapi import APIRouter, Request

from institute.config.settings import settings
from institute.utils.responses import ResponseBuilder

health_router = APIRouter()


@health_router.get("/ping")
async def ping(request: Request):
    return ResponseBuilder.success(request=request, data={"message": settings.PING_MESSAGE})


@health_router.get("/health")
async def health_check(request: Request):
    """
    Basic health check endpoint

    Reports which storage backs the API: Supabase or the server store
    """
    return ResponseBuilder.success(
        request=request,
        data={
            "status": "healthy",
            "service": settings.NAME,
            "version": settings.VERSION,
            "store": "supabase" if request.app.state.server_remote.configured() else "local",
        },
    )
