"""
Supplier adapters, one per transport kind. The implementation is chosen once per
Supplier row from its type, not re-dispatched on every call.
"""
from app.models import Supplier, SupplierType
from app.services.credentials import get_supplier_credentials
from app.services.suppliers.base import FeedItem, SupplierAdapter, normalize_feed, normalize_feed_row
from app.services.suppliers.eldorado import EldoradoAdapter
from app.services.suppliers.honeysplace import HoneysPlaceAdapter
from app.services.suppliers.nalpac import NalpacAdapter

ADAPTERS: dict[SupplierType, type[SupplierAdapter]] = {
    SupplierType.REST_API: NalpacAdapter,
    SupplierType.DATA_FEED: HoneysPlaceAdapter,
    SupplierType.SFTP: EldoradoAdapter,
}


def build_adapter(supplier: Supplier) -> SupplierAdapter:
    """Adapter for the supplier's transport, with decrypted credentials."""
    supplier_type = SupplierType(supplier.type)
    adapter_cls = ADAPTERS.get(supplier_type)
    if adapter_cls is None:
        raise ValueError(f"No adapter for supplier type {supplier_type.value}")
    return adapter_cls(supplier.name, get_supplier_credentials(supplier))


__all__ = [
    "ADAPTERS",
    "EldoradoAdapter",
    "FeedItem",
    "HoneysPlaceAdapter",
    "NalpacAdapter",
    "SupplierAdapter",
    "build_adapter",
    "normalize_feed",
    "normalize_feed_row",
]
