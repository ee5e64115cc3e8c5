"""
Nalpac REST API: GET /products (bearer token), POST /orders.
"""
import logging

import httpx

from app.config import settings
from app.services.errors import SupplierFetchError, SupplierSubmissionError
from app.services.http_client import get_with_retry, post_no_retry
from app.services.suppliers.base import FeedItem, SupplierAdapter, normalize_feed

logger = logging.getLogger(__name__)


class NalpacAdapter(SupplierAdapter):
    name = "nalpac"

    def __init__(self, supplier_name: str, credentials=None, base_url: str = None):
        super().__init__(supplier_name, credentials)
        self.base_url = (base_url or settings.NALPAC_API_URL).rstrip("/")

    def _token(self) -> str:
        return (
            self.credentials.get("apiToken") or self.credentials.get("password") or self.credentials.get("apiKey") or ""
        ).strip()

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self._token()}", "Content-Type": "application/json"}

    async def fetch_catalog(self) -> list[FeedItem]:
        if not self._token():
            raise SupplierFetchError("Nalpac credentials not configured")
        try:
            resp = await get_with_retry(f"{self.base_url}/products", headers=self._headers())
        except httpx.HTTPError as e:
            raise SupplierFetchError(f"Nalpac request failed: {e}") from e
        if resp.status_code != 200:
            raise SupplierFetchError(f"Nalpac returned {resp.status_code}: {resp.text[:200]}")
        data = resp.json()
        rows = data.get("products", []) if isinstance(data, dict) else data
        items = normalize_feed(rows)
        logger.info("Nalpac feed: %s rows, %s usable", len(rows or []), len(items))
        return items

    async def test_connection(self) -> dict:
        try:
            resp = await get_with_retry(
                f"{self.base_url}/products", params={"limit": 1}, headers=self._headers(), max_retries=0
            )
        except httpx.HTTPError as e:
            return {"success": False, "message": f"Connection failed: {e}"}
        if resp.status_code == 200:
            return {"success": True, "message": "Connected to Nalpac API"}
        return {"success": False, "message": f"Nalpac returned HTTP {resp.status_code}"}

    async def submit_order(self, payload: dict) -> dict:
        body = {
            "reference": payload["orderId"],
            "lines": [
                {"sku": item["supplierSku"], "quantity": item["quantity"]}
                for item in payload.get("items", [])
            ],
        }
        try:
            resp = await post_no_retry(
                f"{self.base_url}/orders",
                json=body,
                headers=self._headers(),
                timeout=settings.SUPPLIER_SUBMIT_TIMEOUT,
            )
        except httpx.HTTPError as e:
            raise SupplierSubmissionError(self.supplier_name, f"request failed: {e}") from e
        if resp.status_code >= 400:
            retryable = resp.status_code >= 500 or resp.status_code == 429
            raise SupplierSubmissionError(
                self.supplier_name, f"HTTP {resp.status_code}: {resp.text[:200]}", retryable=retryable
            )
        data = resp.json() if resp.content else {}
        return {"success": True, "supplierOrderId": data.get("id") or data.get("orderNumber")}
