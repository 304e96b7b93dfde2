from typing import Callable, Optional

from fastapi import Depends, Header, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from institute.config.settings import settings
from institute.schemas.auth_schemas import AuthUser
from institute.services.auth_service import AuthService
from institute.utils.errors import AuthenticationError, AuthorizationError, BusinessLogicError
from institute.utils.responses import ResponseBuilder
from institute.utils.logging import get_logger

logger = get_logger()

__all__ = [
    "OwnerGuardMiddleware",
    "extract_bearer_token",
    "get_auth_service",
    "require_owner",
    "require_admin_token",
]


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


class OwnerGuardMiddleware(BaseHTTPMiddleware):
    """Rejects destructive requests (HTTP DELETE and `.../delete` endpoints) unless an owner token is presented"""

    def _is_destructive(self, request: Request) -> bool:
        return request.method == "DELETE" or (
            request.method == "POST" and request.url.path.rstrip("/").endswith("/delete")
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self._is_destructive(request):
            return await call_next(request)

        auth_service: AuthService = request.app.state.auth_service
        token = extract_bearer_token(request.headers.get("authorization"))
        user = await auth_service.get_user(token) if token else None

        if user is None or not auth_service.is_owner(user):
            logger.warning(f"Blocked {request.method} {request.url.path} by non-owner")
            return ResponseBuilder.error(
                request=request,
                message="Forbidden",
                error_code="FORBIDDEN",
                status_code=403,
            )

        request.state.user = user
        return await call_next(request)


async def require_owner(
    authorization: Optional[str] = Header(None),
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthUser:
    """Dependency: the caller must present the bearer token of an owner"""
    if not auth_service.configured():
        raise BusinessLogicError("Admin not configured", "ADMIN_NOT_CONFIGURED")
    token = extract_bearer_token(authorization)
    user = await auth_service.get_user(token) if token else None
    if user is None:
        raise AuthenticationError("Invalid token", "INVALID_TOKEN")
    if not auth_service.is_owner(user):
        raise AuthorizationError("Forbidden", "FORBIDDEN")
    return user


def require_admin_token(
    x_admin_token: Optional[str] = Header(None),
    token: Optional[str] = None,
) -> None:
    """Dependency: the `x-admin-token` header (or `token` query) must match ADMIN_API_TOKEN"""
    supplied = x_admin_token or token
    if not settings.ADMIN_API_TOKEN or supplied != settings.ADMIN_API_TOKEN:
        raise AuthenticationError("Unauthorized", "INVALID_ADMIN_TOKEN")
