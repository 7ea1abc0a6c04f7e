"""Station API client for shifts, assets, prices and the debtor ledger."""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

import httpx
import structlog

from shift_closing.config import get_settings

logger = structlog.get_logger(__name__)


class StationAPIError(Exception):
    """Base exception for station API errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class RateLimitError(StationAPIError):
    """Rate limit exceeded."""

    pass


class ShiftClosingGateway(Protocol):
    """Everything the closing wizard needs from the outside world."""

    async def get_current_open_shift(self, station_id: str) -> dict[str, Any] | None: ...

    async def get_shift_assets_structure(self, shift_id: str) -> dict[str, Any]: ...

    async def get_product_prices(
        self, filters: dict[str, Any] | None = None, force_refresh: bool = False
    ) -> list[dict[str, Any]]: ...

    async def get_debtors(self) -> list[dict[str, Any]]: ...

    async def record_fuel_debt(self, record: dict[str, Any]) -> dict[str, Any]: ...

    async def close_shift(self, shift_id: str, payload: dict[str, Any]) -> dict[str, Any]: ...


def to_jsonable(value: Any) -> Any:
    """Convert Decimals and datetimes so a payload can go through ``json=``."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


class StationAPIClient:
    """Async client for the station back office REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.station_api_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.station_api_timeout
        self._max_retries = (
            max_retries if max_retries is not None else settings.station_api_max_retries
        )

        self._client: httpx.AsyncClient | None = None
        self._price_cache: dict[tuple[tuple[str, str], ...], list[dict[str, Any]]] = {}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "StationAPIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # === Generic Request Methods ===

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make an API request with retry logic."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=to_jsonable(json) if json is not None else None,
            )

            if response.status_code == 429:
                retry_after = int(response.headers.get("Retry-After", "60"))
                raise RateLimitError(
                    f"Rate limited, retry after {retry_after}s",
                    status_code=429,
                    details={"retry_after": retry_after},
                )

            if response.status_code >= 400:
                try:
                    error_detail = response.json() if response.content else {}
                except ValueError:
                    error_detail = {
                        "raw": response.text[:500] if response.text else "empty response"
                    }
                raise StationAPIError(
                    f"API error: {response.status_code}",
                    status_code=response.status_code,
                    details=error_detail,
                )

            return response.json() if response.content else {}

        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(method, path, params, json, retry_count + 1)
            raise StationAPIError(f"Request failed: {e}") from e

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make GET request."""
        return await self._request("GET", path, params=params)

    async def post(
        self,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make POST request."""
        return await self._request("POST", path, params=params, json=json)

    @staticmethod
    def _unwrap(result: Any) -> Any:
        """Strip the ``{"data": ...}`` envelope some endpoints use."""
        if isinstance(result, dict) and "data" in result:
            return result["data"]
        return result

    @staticmethod
    def _extract_items(result: Any) -> list[dict[str, Any]]:
        """Return list of items from a list, enveloped or paged response."""
        result = StationAPIClient._unwrap(result)
        if isinstance(result, list):
            return result
        if isinstance(result, dict):
            for key in ("items", "products", "debtors"):
                items = result.get(key)
                if isinstance(items, list):
                    return items
        return []

    # === Shifts ===

    async def get_current_open_shift(self, station_id: str) -> dict[str, Any] | None:
        """Get the open shift for a station, or None when there is none."""
        try:
            result = self._unwrap(await self.get(f"/shift/station/{station_id}/open"))
        except StationAPIError as e:
            if e.status_code == 404:
                logger.info("no_open_shift", station_id=station_id)
                return None
            raise
        return result or None

    async def get_station_pumps_with_last_end_readings(
        self, station_id: str
    ) -> list[dict[str, Any]]:
        """Get the station's pumps with the END readings of the previous shift."""
        result = await self.get(f"/shift/station/{station_id}/pumps/last-end-readings")
        return self._extract_items(result)

    async def get_station_tanks_with_last_end_readings(
        self, station_id: str
    ) -> list[dict[str, Any]]:
        """Get the station's tanks with the END dips of the previous shift."""
        result = await self.get(f"/shift/station/{station_id}/tanks/last-end-readings")
        return self._extract_items(result)

    async def close_shift(self, shift_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Submit the closing payload for a shift."""
        result = self._unwrap(await self.post(f"/shift/{shift_id}/close", json=payload))
        logger.info("shift_closed", shift_id=shift_id)
        return result if isinstance(result, dict) else {"result": result}

    # === Assets ===

    async def get_shift_assets_structure(self, shift_id: str) -> dict[str, Any]:
        """Get the islands, pumps, tanks and attendants assigned to a shift."""
        result = self._unwrap(await self.get(f"/assets/shift/{shift_id}/structure"))
        if not isinstance(result, dict):
            raise StationAPIError("Invalid asset structure response format", details=result)
        return result

    # === Pricing ===

    async def get_product_prices(
        self, filters: dict[str, Any] | None = None, force_refresh: bool = False
    ) -> list[dict[str, Any]]:
        """Get fuel products with their selling prices.

        Results are cached per filter set until ``force_refresh`` is passed.
        """
        cache_key = tuple(sorted((str(k), str(v)) for k, v in (filters or {}).items()))
        if not force_refresh and cache_key in self._price_cache:
            return self._price_cache[cache_key]

        result = await self.get("/fuel-pricing/products", params=filters or None)
        products = self._extract_items(result)
        self._price_cache[cache_key] = products
        logger.debug("product_prices_loaded", count=len(products), force_refresh=force_refresh)
        return products

    # === Debtors ===

    async def get_debtors(self) -> list[dict[str, Any]]:
        """List debtor accounts."""
        return self._extract_items(await self.get("/debtors"))

    async def record_fuel_debt(self, record: dict[str, Any]) -> dict[str, Any]:
        """Record one fuel debt against a debtor account."""
        result = self._unwrap(await self.post("/debtors/record-fuel-debt", json=record))
        return result if isinstance(result, dict) else {"result": result}
