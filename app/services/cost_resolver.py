"""
Supplier selection for a single product.

Pure functions over the product's lock settings and its in-stock offers; no DB access.
"""
import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence, Union


class LockMissPolicy(str, enum.Enum):
    """Behavior when a product is locked to a supplier that has no in-stock offer."""
    FALLBACK = "fallback"
    REJECT = "reject"

    @classmethod
    def from_setting(cls, value: Optional[str]) -> "LockMissPolicy":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.FALLBACK


@dataclass(frozen=True)
class Offer:
    """One supplier's price/inventory/SKU for a product."""
    supplier_id: str
    supplier_name: str
    cost: Decimal
    inventory: int
    supplier_sku: str


@dataclass(frozen=True)
class SelectedOffer:
    supplier_id: str
    supplier_name: str
    unit_cost: Decimal
    supplier_sku: str
    locked: bool = False


@dataclass(frozen=True)
class NotAvailable:
    reason: str
    detail: Optional[str] = None


NO_IN_STOCK_OFFER = "NO_IN_STOCK_OFFER"
LOCKED_SUPPLIER_UNAVAILABLE = "LOCKED_SUPPLIER_UNAVAILABLE"


def _cheapest(offers: Sequence[Offer]) -> Offer:
    # Ties on cost go to the alphabetically first supplier name
    return min(offers, key=lambda o: (Decimal(o.cost), o.supplier_name, o.supplier_id))


def resolve_supplier(
    product,
    offers: Sequence[Offer],
    lock_miss_policy: LockMissPolicy = LockMissPolicy.FALLBACK,
) -> Union[SelectedOffer, NotAvailable]:
    """
    Pick the fulfilling offer for `product`.

    `product` needs `is_supplier_locked` and `preferred_supplier` attributes.
    Offers with no inventory are ignored even if the caller passed them in.
    Order of evaluation: locked preferred supplier, then cheapest cost.
    """
    candidates = [o for o in offers if (o.inventory or 0) > 0]
    if not candidates:
        return NotAvailable(NO_IN_STOCK_OFFER)

    preferred = (getattr(product, "preferred_supplier", None) or "").strip()
    if getattr(product, "is_supplier_locked", False) and preferred:
        locked = [o for o in candidates if o.supplier_name == preferred]
        if locked:
            chosen = _cheapest(locked)
            return SelectedOffer(
                supplier_id=chosen.supplier_id,
                supplier_name=chosen.supplier_name,
                unit_cost=Decimal(chosen.cost),
                supplier_sku=chosen.supplier_sku,
                locked=True,
            )
        if lock_miss_policy == LockMissPolicy.REJECT:
            return NotAvailable(
                LOCKED_SUPPLIER_UNAVAILABLE,
                f"Locked supplier '{preferred}' has no in-stock offer",
            )

    chosen = _cheapest(candidates)
    return SelectedOffer(
        supplier_id=chosen.supplier_id,
        supplier_name=chosen.supplier_name,
        unit_cost=Decimal(chosen.cost),
        supplier_sku=chosen.supplier_sku,
    )
