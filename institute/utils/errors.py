import traceback
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .logging import get_logger
from .responses import ResponseBuilder

logger = get_logger()


class InstituteError(Exception):
    """
    Base of the exceptions raised by the data layer and the API server.

    Each subclass fixes the HTTP status the API answers with and a default
    `error_code`; callers may pass a more specific code.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "An error occurred"
    default_code: str = "ERROR"
    label: str = "Error"

    def __init__(self, message: Optional[str] = None, error_code: Optional[str] = None):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_code
        super().__init__(self.message)


class DatabaseError(InstituteError):
    """A store (Supabase or the server fallback store) could not serve the request."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "A database error occurred"
    default_code = "DB_ERROR"
    label = "Database Error"


class StorageUnavailableError(DatabaseError):
    """Raised by key/value storage backends when a read or write cannot be served."""

    default_message = "Storage unavailable"
    default_code = "STORAGE_UNAVAILABLE"


class BusinessLogicError(InstituteError):
    default_code = "BLOC_ERROR"
    label = "Business Logic Error"


class RecordValidationError(BusinessLogicError):
    """A record is missing required fields; raised before any I/O is attempted."""

    default_message = "Invalid payload"
    default_code = "VALIDATION_ERROR"
    label = "Validation Error"


class AuthenticationError(InstituteError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication failed"
    default_code = "UNAUTHORIZED"
    label = "Authentication Error"


class AuthorizationError(InstituteError):
    """The caller is known but may not perform the operation (owner-only deletes)."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"
    default_code = "FORBIDDEN"
    label = "Authorization Error"


class NotFoundError(InstituteError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"
    default_code = "NOT_FOUND"
    label = "Not Found Error"


def setup_error_handlers(app: FastAPI):
    """Map exceptions to the `{ok: false, error, errorCode, requestId}` envelope."""

    @app.exception_handler(InstituteError)
    async def institute_exception_handler(request: Request, exc: InstituteError):
        logger.error(f"{exc.label}: {exc.message} ({exc.error_code})")

        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=exc.status_code,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
        return ResponseBuilder.error(
            request=request,
            message=str(exc.detail),
            error_code="HTTP_ERROR",
            status_code=exc.status_code,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.error(f"Request Validation Error: {exc.errors()}")

        # The public forms only need to know the payload was rejected
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return ResponseBuilder.error(
            request=request,
            message="Invalid payload",
            errors=errors,
            error_code="VALIDATION_ERROR",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Server store error: {exc}")

        return ResponseBuilder.error(
            request=request,
            message="A database error occurred",
            error_code="DATABASE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled Exception: {exc}\n{traceback.format_exc()}")

        return ResponseBuilder.error(
            request=request,
            message="Server error",
            error_code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
