"""
Supplier adapter interface and the normalized feed row every adapter produces.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class FeedItem:
    """Normalized supplier feed row consumed by CatalogStore.upsert_feed_item."""
    sku: str
    title: str
    cost: Decimal
    inventory: int
    supplier_sku: str
    upc: Optional[str] = None
    msrp: Optional[Decimal] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None


def _first(row: dict, *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None and str(value).strip() != "":
            return value
    return None


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value).strip().replace("$", "").replace(",", ""))
    except (InvalidOperation, ValueError):
        return None


def _int(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(float(str(value).strip()))
    except ValueError:
        return 0


def normalize_feed_row(row: dict) -> Optional[FeedItem]:
    """
    Map a raw supplier row to FeedItem. Accepts common key aliases
    (price for cost, qty/quantity/stock for inventory, name for title).
    Returns None for rows without a SKU or a usable cost.
    """
    if not isinstance(row, dict):
        return None
    lowered = {str(k).strip().lower(): v for k, v in row.items()}
    sku = _first(lowered, "sku", "item_number", "item", "product_code")
    if sku is None:
        return None
    sku = str(sku).strip()
    cost = _decimal(_first(lowered, "cost", "price", "wholesale_price", "wholesale"))
    if cost is None:
        logger.debug("Feed row %s skipped: no cost", sku)
        return None
    upc = _first(lowered, "upc", "barcode", "upc_code")
    return FeedItem(
        sku=sku,
        title=str(_first(lowered, "title", "name", "description") or sku).strip()[:255],
        cost=cost,
        inventory=max(_int(_first(lowered, "inventory", "qty", "quantity", "stock", "qty_available")), 0),
        supplier_sku=str(_first(lowered, "supplier_sku", "sku") or sku).strip(),
        upc=str(upc).strip() if upc is not None else None,
        msrp=_decimal(_first(lowered, "msrp", "retail_price", "map")),
        category=_first(lowered, "category", "category_name"),
        brand=_first(lowered, "brand", "manufacturer"),
        description=_first(lowered, "long_description", "description"),
    )


def normalize_feed(rows: list) -> list[FeedItem]:
    items = []
    for row in rows or []:
        item = normalize_feed_row(row)
        if item is not None:
            items.append(item)
    return items


class SupplierAdapter(ABC):
    """
    Transport for one supplier: catalog fetch, connection test, order submission.
    Built once per Supplier row by app.services.suppliers.build_adapter.
    """

    name: str = ""

    def __init__(self, supplier_name: str, credentials: Optional[dict] = None):
        self.supplier_name = supplier_name
        self.credentials = credentials or {}

    @abstractmethod
    async def fetch_catalog(self) -> list[FeedItem]:
        ...

    @abstractmethod
    async def test_connection(self) -> dict:
        ...

    @abstractmethod
    async def submit_order(self, payload: dict) -> dict:
        """Send one supplier bucket ({supplierId, orderId, items}); raise SupplierSubmissionError on rejection."""
        ...
