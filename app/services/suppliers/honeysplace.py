"""
Honey's Place data feed: GET {feed}/{token}/{json|xml|csv}. Orders go to the order endpoint as JSON.
"""
import csv
import io
import logging

import httpx
from lxml import etree

from app.config import settings
from app.services.errors import SupplierFetchError, SupplierSubmissionError
from app.services.http_client import get_with_retry, post_no_retry
from app.services.suppliers.base import FeedItem, SupplierAdapter, normalize_feed

logger = logging.getLogger(__name__)

FEED_FORMATS = ("json", "xml", "csv")


def parse_feed_body(body: str, fmt: str) -> list[dict]:
    """Parse a feed download into row dicts."""
    fmt = (fmt or "json").lower()
    if fmt == "csv":
        text = body.replace("\r\n", "\n").replace("\r", "\n")
        return list(csv.DictReader(io.StringIO(text)))
    if fmt == "xml":
        root = etree.fromstring(body.encode("utf-8"), parser=etree.XMLParser(resolve_entities=False, no_network=True))
        rows = []
        # comments and processing instructions have non-string tags
        for node in root:
            if not isinstance(node.tag, str):
                continue
            rows.append({
                etree.QName(child).localname: (child.text or "").strip()
                for child in node
                if isinstance(child.tag, str)
            })
        return rows
    raise ValueError(f"Unsupported feed format: {fmt}")


class HoneysPlaceAdapter(SupplierAdapter):
    name = "honeysplace"

    def __init__(self, supplier_name: str, credentials=None, feed_url: str = None):
        super().__init__(supplier_name, credentials)
        self.feed_url = (feed_url or settings.HONEYSPLACE_FEED_URL).rstrip("/")

    @property
    def feed_format(self) -> str:
        fmt = (self.credentials.get("feedFormat") or "json").lower()
        return fmt if fmt in FEED_FORMATS else "json"

    def _feed_endpoint(self) -> str:
        token = (self.credentials.get("apiToken") or "").strip()
        if not token:
            raise SupplierFetchError("Honey's Place feed token not configured")
        return f"{self.feed_url}/{token}/{self.feed_format}"

    async def fetch_catalog(self) -> list[FeedItem]:
        try:
            resp = await get_with_retry(self._feed_endpoint())
        except httpx.HTTPError as e:
            raise SupplierFetchError(f"Honey's Place feed download failed: {e}") from e
        if resp.status_code != 200:
            raise SupplierFetchError(f"Honey's Place feed returned {resp.status_code}")
        try:
            if self.feed_format == "json":
                data = resp.json()
                rows = data.get("products", []) if isinstance(data, dict) else data
            else:
                rows = parse_feed_body(resp.text, self.feed_format)
        except (ValueError, etree.XMLSyntaxError) as e:
            raise SupplierFetchError(f"Honey's Place feed could not be parsed: {e}") from e
        items = normalize_feed(rows)
        logger.info("Honey's Place feed (%s): %s rows, %s usable", self.feed_format, len(rows or []), len(items))
        return items

    async def test_connection(self) -> dict:
        try:
            resp = await get_with_retry(self._feed_endpoint(), max_retries=0)
        except (httpx.HTTPError, SupplierFetchError) as e:
            return {"success": False, "message": str(e)}
        if resp.status_code == 200:
            return {"success": True, "message": f"Feed reachable ({self.feed_format})"}
        return {"success": False, "message": f"Feed returned HTTP {resp.status_code}"}

    async def submit_order(self, payload: dict) -> dict:
        order_url = (self.credentials.get("orderUrl") or "").strip()
        if not order_url:
            raise SupplierSubmissionError(self.supplier_name, "order endpoint not configured", retryable=False)
        body = {
            "account": self.credentials.get("username"),
            "reference": payload["orderId"],
            "items": [
                {"sku": item["supplierSku"], "qty": item["quantity"]}
                for item in payload.get("items", [])
            ],
        }
        try:
            resp = await post_no_retry(
                order_url,
                json=body,
                headers={"Authorization": f"Token {self.credentials.get('apiToken', '')}"},
                timeout=settings.SUPPLIER_SUBMIT_TIMEOUT,
            )
        except httpx.HTTPError as e:
            raise SupplierSubmissionError(self.supplier_name, f"request failed: {e}") from e
        if resp.status_code >= 400:
            raise SupplierSubmissionError(
                self.supplier_name,
                f"HTTP {resp.status_code}: {resp.text[:200]}",
                retryable=resp.status_code >= 500 or resp.status_code == 429,
            )
        return {"success": True}
