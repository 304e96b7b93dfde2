from typing import Any, Dict, Optional

import httpx

from institute.config.settings import Settings
from institute.schemas.reconciliation_schemas import StoreErrorKind, StoreResult
from institute.utils.logging import get_logger
from institute.utils.warning_registry import WarningRegistry

logger = get_logger()


def _status_error_kind(status_code: int) -> StoreErrorKind:
    if status_code == 401:
        return StoreErrorKind.UNAUTHORIZED
    if status_code == 403:
        return StoreErrorKind.FORBIDDEN
    if status_code == 404:
        return StoreErrorKind.NOT_FOUND
    if status_code == 400:
        return StoreErrorKind.INVALID
    return StoreErrorKind.TRANSIENT


class PublicApiClient:
    """
    Client for the secondary HTTP API (`{"ok": true, "items"|"item": ...}` envelope).

    A shared `httpx.AsyncClient` may be injected; otherwise a short-lived client
    is opened per call against `base_url`.
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
        warnings: Optional[WarningRegistry] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http_client = http_client
        self.warnings = warnings or WarningRegistry()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        warnings: Optional[WarningRegistry] = None,
    ) -> "PublicApiClient":
        return cls(
            base_url=settings.PUBLIC_API_BASE_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            http_client=http_client,
            warnings=warnings,
        )

    def configured(self) -> bool:
        return bool(self.base_url) or self.http_client is not None

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> StoreResult:
        if not self.configured():
            self.warnings.warn_once(
                "public-api", "PUBLIC_API_BASE_URL is not set; skipping the secondary API"
            )
            return StoreResult.failure(StoreErrorKind.DISABLED, "Secondary API not configured")

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            if self.http_client is not None:
                response = await self.http_client.request(
                    method, f"{self.base_url}{path}", json=json, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method, f"{self.base_url}{path}", json=json, headers=headers
                    )
        except httpx.HTTPError as e:
            logger.warning(f"Secondary API {method} {path} failed: {e}")
            return StoreResult.failure(StoreErrorKind.TRANSIENT, str(e))

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400 or not isinstance(body, dict) or not body.get("ok"):
            message = body.get("error") if isinstance(body, dict) else None
            logger.warning(
                f"Secondary API {method} {path} returned {response.status_code}: {message or response.text[:200]}"
            )
            kind = (
                _status_error_kind(response.status_code)
                if response.status_code >= 400
                else StoreErrorKind.TRANSIENT
            )
            return StoreResult.failure(
                kind, message or "Unexpected response", status_code=response.status_code
            )

        return StoreResult.success(body, status_code=response.status_code)

    async def list(self, path: str) -> StoreResult:
        """GET a collection; data is the `items` list."""
        result = await self._request("GET", path)
        if result.ok:
            items = result.data.get("items")
            result.data = items if isinstance(items, list) else []
        return result

    async def create(self, path: str, payload: Dict[str, Any]) -> StoreResult:
        """POST a new record; data is the created `item`."""
        result = await self._request("POST", path, json=payload)
        if result.ok:
            item = result.data.get("item")
            if not isinstance(item, dict):
                return StoreResult.failure(StoreErrorKind.TRANSIENT, "Response carried no item")
            result.data = item
        return result

    async def delete(self, path: str, record_id: str, token: Optional[str] = None) -> StoreResult:
        """POST `{"id": record_id}` to a delete endpoint with the caller's bearer token."""
        return await self._request("POST", path, json={"id": record_id}, token=token)

    async def get(self, path: str, token: Optional[str] = None) -> StoreResult:
        """GET an arbitrary endpoint; data is the whole response body."""
        return await self._request("GET", path, token=token)
