"""Supplier catalog API client."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Protocol

import requests

from catalog_engine.core.config import Settings
from catalog_engine.core.matcher import supplier_variant_from_raw
from catalog_engine.core.models import SupplierVariant, UnitKind, WorkUnit

from .ratelimit import TokenBucket

logger = logging.getLogger(__name__)

API_NAME = "catalog"


class CatalogApiError(Exception):
    """Raised when the catalog API returns an error or an unusable payload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CatalogRateLimitError(CatalogApiError):
    """Raised on HTTP 429 from the catalog API."""

    pass


class ApiLogSink(Protocol):
    """Receives one record per API call (the Repository implements this)."""

    def save_api_log(
        self,
        api_name: str,
        endpoint: str,
        method: str,
        request_params: str,
        response_status: int,
        response_size: int,
        duration_ms: int,
        success: bool,
        error_message: str = "",
    ) -> None: ...


class CatalogClient:
    """Catalog API client with injected pacing."""

    def __init__(
        self,
        settings: Settings,
        rate_limiter: TokenBucket | None = None,
        api_log: ApiLogSink | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the catalog client."""
        self.settings = settings
        self.base_url = settings.api.base_url.rstrip("/")
        self.access_token = settings.api.access_token
        self.mock_mode = settings.api.mock_mode
        self.timeout = settings.api.request_timeout_seconds
        self.rate_limiter = rate_limiter or TokenBucket(
            settings.api.requests_per_second, settings.api.burst
        )
        self.api_log = api_log

        # Session with keep-alive
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Connection": "keep-alive",
        })

    def _make_request(self, endpoint: str, params: dict[str, Any]) -> Any:
        """GET an endpoint and return the payload's ``data`` member."""
        if self.mock_mode:
            return self._mock_response(endpoint, params)

        self.rate_limiter.acquire()

        url = f"{self.base_url}/{endpoint}"
        headers = {"CJ-Access-Token": self.access_token}
        start_time = time.time()
        status = 0
        size = 0
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
            status = response.status_code
            size = len(response.content or b"")

            if status == 429:
                raise CatalogRateLimitError("Catalog API rate limited", status_code=status)
            if status != 200:
                raise CatalogApiError(f"Catalog API returned HTTP {status}", status_code=status)

            try:
                payload = response.json()
            except ValueError as e:
                raise CatalogApiError(f"Catalog API returned invalid JSON: {e}", status) from e

            if not isinstance(payload, dict):
                raise CatalogApiError("Catalog API returned an unexpected payload", status)
            if payload.get("result") is False or payload.get("code") not in (None, 200):
                message = payload.get("message") or "unknown error"
                raise CatalogApiError(f"Catalog API error: {message}", status)

            self._record(endpoint, params, status, size, start_time, True)
            return payload.get("data")
        except requests.RequestException as e:
            self._record(endpoint, params, status, size, start_time, False, str(e))
            logger.warning(f"Catalog request {endpoint} failed: {e}")
            raise CatalogApiError(f"Catalog request failed: {e}", status or None) from e
        except CatalogApiError as e:
            self._record(endpoint, params, status, size, start_time, False, str(e))
            logger.warning(f"Catalog request {endpoint} failed: {e}")
            raise

    def _record(
        self,
        endpoint: str,
        params: dict[str, Any],
        status: int,
        size: int,
        start_time: float,
        success: bool,
        error_message: str = "",
    ) -> None:
        if self.api_log is None:
            return
        duration_ms = int((time.time() - start_time) * 1000)
        try:
            self.api_log.save_api_log(
                api_name=API_NAME,
                endpoint=endpoint,
                method="GET",
                request_params=json.dumps(params, default=str),
                response_status=status,
                response_size=size,
                duration_ms=duration_ms,
                success=success,
                error_message=error_message,
            )
        except Exception as e:
            # Diagnostics only, never fail the call for it
            logger.warning(f"Could not record API log for {endpoint}: {e}")

    def _mock_response(self, endpoint: str, params: dict[str, Any]) -> Any:
        """Serve deterministic mock data."""
        from catalog_engine.utils import mock_data

        if endpoint == "product/list":
            return mock_data.get_mock_catalog_page(
                unit=params.get("productNameEn") or params.get("categoryId") or "",
                page_number=int(params.get("pageNum", 1)),
                page_size=int(params.get("pageSize", 20)),
            )
        if endpoint == "product/query":
            return mock_data.get_mock_product_detail(params.get("pid", ""))
        if endpoint == "product/variant/query":
            return mock_data.get_mock_product_detail(params.get("pid", ""))["variants"]
        raise CatalogApiError(f"No mock for endpoint {endpoint}")

    def list_page(self, unit: WorkUnit, page_number: int, page_size: int) -> list[dict[str, Any]]:
        """Fetch one listing page for a keyword or category."""
        params: dict[str, Any] = {"pageNum": page_number, "pageSize": page_size}
        if unit.kind == UnitKind.CATEGORY:
            params["categoryId"] = unit.value
        else:
            params["productNameEn"] = unit.value

        data = self._make_request("product/list", params)
        if data is None:
            return []
        items = data.get("list") if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise CatalogApiError("Listing payload has no item list")
        return [item for item in items if isinstance(item, dict)]

    def fetch_detail(self, product_id: str) -> dict[str, Any]:
        """Fetch the full product record, variants included."""
        data = self._make_request("product/query", {"pid": product_id})
        if isinstance(data, dict) and isinstance(data.get("content"), list):
            data = data["content"][0] if data["content"] else None
        if not isinstance(data, dict):
            raise CatalogApiError(f"No detail for product {product_id}")
        return data

    def get_product_variants(self, product_id: str) -> list[SupplierVariant]:
        """Fetch the live variant list used for fulfillment matching."""
        data = self._make_request("product/variant/query", {"pid": product_id})
        if not isinstance(data, list):
            raise CatalogApiError(f"No variants for product {product_id}")
        return [supplier_variant_from_raw(v) for v in data if isinstance(v, dict)]

    def close(self) -> None:
        self.session.close()
