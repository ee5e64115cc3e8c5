"""
Order routing: resolve each line item to a supplier offer and group the results
into per-supplier buckets.

Line items are processed in input order; buckets are kept in first-seen order so the
same catalog snapshot and input always give the same plan.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence

from app.config import settings
from app.services.catalog_store import CatalogStore
from app.services.cost_resolver import LockMissPolicy, NotAvailable, resolve_supplier
from app.services.errors import NoRoutableItemsError

logger = logging.getLogger(__name__)

PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
NO_SUPPLIER_AVAILABLE = "NO_SUPPLIER_AVAILABLE"
INVALID_QUANTITY = "INVALID_QUANTITY"


@dataclass(frozen=True)
class LineItem:
    product_ref: str
    quantity: int
    sku: Optional[str] = None
    title: Optional[str] = None


@dataclass(frozen=True)
class RoutingDiagnostic:
    index: int
    product_ref: str
    code: str
    detail: Optional[str] = None

    def to_dict(self) -> dict:
        return {"index": self.index, "productRef": self.product_ref, "code": self.code, "detail": self.detail}


@dataclass(frozen=True)
class RoutedItem:
    product_id: str
    supplier_id: str
    quantity: int
    unit_cost: Decimal
    supplier_sku: str

    @property
    def total_cost(self) -> Decimal:
        return self.unit_cost * self.quantity


@dataclass
class SupplierBucket:
    supplier_id: str
    supplier_name: str
    items: list[RoutedItem] = field(default_factory=list)

    @property
    def total_cost(self) -> Decimal:
        return sum((item.total_cost for item in self.items), Decimal("0"))

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)


@dataclass
class RoutingPlan:
    buckets: list[SupplierBucket]
    diagnostics: list[RoutingDiagnostic] = field(default_factory=list)

    @property
    def total_cost(self) -> Decimal:
        return sum((b.total_cost for b in self.buckets), Decimal("0"))

    @property
    def total_items(self) -> int:
        return sum(b.total_items for b in self.buckets)

    def bucket_for(self, supplier_id: str) -> Optional[SupplierBucket]:
        for bucket in self.buckets:
            if bucket.supplier_id == supplier_id:
                return bucket
        return None

    def quantities_by_product(self) -> dict[str, int]:
        totals: dict[str, int] = {}
        for bucket in self.buckets:
            for item in bucket.items:
                totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
        return totals

    def to_dict(self) -> dict:
        return {
            "buckets": [
                {
                    "supplierId": b.supplier_id,
                    "supplierName": b.supplier_name,
                    "totalCost": float(b.total_cost),
                    "totalItems": b.total_items,
                    "items": [
                        {
                            "productId": i.product_id,
                            "quantity": i.quantity,
                            "unitCost": float(i.unit_cost),
                            "supplierSku": i.supplier_sku,
                        }
                        for i in b.items
                    ],
                }
                for b in self.buckets
            ],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


class OrderRouter:
    """Builds a RoutingPlan from line items against one store's catalog."""

    def __init__(self, catalog: CatalogStore, lock_miss_policy: Optional[LockMissPolicy] = None):
        self.catalog = catalog
        self.lock_miss_policy = lock_miss_policy or LockMissPolicy.from_setting(settings.LOCK_MISS_POLICY)

    def route_order(self, line_items: Sequence[LineItem], store_id: str) -> RoutingPlan:
        """
        Resolve every line item. Unresolvable items are excluded and reported in
        plan.diagnostics; if nothing resolves, NoRoutableItemsError is raised.
        """
        buckets: dict[str, SupplierBucket] = {}
        diagnostics: list[RoutingDiagnostic] = []

        for index, line in enumerate(line_items):
            if line.quantity <= 0:
                diagnostics.append(RoutingDiagnostic(index, line.product_ref, INVALID_QUANTITY, str(line.quantity)))
                continue

            product = self.catalog.find_product(store_id, line.product_ref, line.sku)
            if product is None:
                diagnostics.append(RoutingDiagnostic(index, line.product_ref, PRODUCT_NOT_FOUND))
                logger.info("Line %s (%s): product not found in store %s", index, line.product_ref, store_id)
                continue

            offers = self.catalog.in_stock_offers(product.id)
            selection = resolve_supplier(product, offers, self.lock_miss_policy)
            if isinstance(selection, NotAvailable):
                diagnostics.append(
                    RoutingDiagnostic(index, line.product_ref, NO_SUPPLIER_AVAILABLE, selection.detail or selection.reason)
                )
                logger.info("Line %s (%s): no supplier available (%s)", index, line.product_ref, selection.reason)
                continue

            bucket = buckets.get(selection.supplier_id)
            if bucket is None:
                bucket = SupplierBucket(supplier_id=selection.supplier_id, supplier_name=selection.supplier_name)
                buckets[selection.supplier_id] = bucket
            bucket.items.append(
                RoutedItem(
                    product_id=product.id,
                    supplier_id=selection.supplier_id,
                    quantity=line.quantity,
                    unit_cost=selection.unit_cost,
                    supplier_sku=selection.supplier_sku,
                )
            )

        if not buckets:
            raise NoRoutableItemsError(
                f"None of {len(line_items)} line item(s) could be routed",
                diagnostics=diagnostics,
            )
        return RoutingPlan(buckets=list(buckets.values()), diagnostics=diagnostics)
