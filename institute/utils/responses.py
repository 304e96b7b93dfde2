from typing import Any, Dict, List, Optional
from fastapi import status, Request
from fastapi.responses import JSONResponse, Response


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


class ResponseBuilder:
    """Builder for the `{ok, item|items}` envelope the dashboard client expects"""

    @staticmethod
    def item(
        request: Request,
        item: Any = None,
        meta: Optional[Dict[str, Any]] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> JSONResponse:
        """Single-record success response"""
        content: Dict[str, Any] = {"ok": True, "item": item}
        if meta:
            content.update(meta)
        return JSONResponse(status_code=status_code, content=content)

    @staticmethod
    def items(
        request: Request,
        items: List[Any],
        meta: Optional[Dict[str, Any]] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> JSONResponse:
        """Collection success response"""
        content: Dict[str, Any] = {"ok": True, "items": items}
        if meta:
            content.update(meta)
        return JSONResponse(status_code=status_code, content=content)

    @staticmethod
    def success(
        request: Request,
        data: Optional[Dict[str, Any]] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> JSONResponse:
        """Success response with arbitrary top-level keys"""
        content: Dict[str, Any] = {"ok": True}
        if data:
            content.update(data)
        return JSONResponse(status_code=status_code, content=content)

    @staticmethod
    def error(
        request: Request,
        message: str = "An error occurred",
        errors: Optional[List[Dict[str, Any]]] = None,
        error_code: Optional[str] = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ) -> JSONResponse:
        """Create an error response"""
        content: Dict[str, Any] = {"ok": False, "error": message}
        if error_code:
            content["errorCode"] = error_code
        if errors:
            content["errors"] = errors
        request_id = _request_id(request)
        if request_id:
            content["requestId"] = request_id
        return JSONResponse(status_code=status_code, content=content)

    @staticmethod
    def csv(
        request: Request, body: str, filename: str, status_code: int = status.HTTP_200_OK
    ) -> Response:
        """CSV attachment response"""
        return Response(
            content=body,
            status_code=status_code,
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
