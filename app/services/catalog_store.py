"""
Catalog store: Product / SupplierProduct lookups and feed upserts.

One CatalogStore wraps one Session and is passed to the router, the order service
and the sync engine instead of reaching for a module-level client.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.models import Product, Supplier, SupplierProduct, utcnow
from app.services.cost_resolver import Offer
from app.services.errors import CatalogConflictError
from app.services.suppliers.base import FeedItem

logger = logging.getLogger(__name__)


class CatalogStore:
    """Storage access for supplier catalogs, scoped to one DB session."""

    def __init__(self, db: Session):
        self.db = db

    def find_product(self, store_id: str, product_ref: Optional[str], sku: Optional[str] = None) -> Optional[Product]:
        """Match by storefront product id first, then by internal SKU, then by UPC."""
        ref = (product_ref or "").strip()
        sku = (sku or "").strip()
        if ref:
            product = (
                self.db.query(Product)
                .filter(Product.store_id == store_id, Product.shopify_product_id == ref)
                .order_by(Product.id)
                .first()
            )
            if product:
                return product
        candidates = [s for s in (sku, ref) if s]
        if not candidates:
            return None
        for column in (Product.internal_sku, Product.upc):
            product = (
                self.db.query(Product)
                .filter(Product.store_id == store_id, column.in_(candidates))
                .order_by(Product.id)
                .first()
            )
            if product:
                return product
        return None

    def in_stock_offers(self, product_id: str) -> list[Offer]:
        """Offers with inventory > 0 from active suppliers, ordered by supplier name."""
        rows = (
            self.db.query(SupplierProduct, Supplier)
            .join(Supplier, SupplierProduct.supplier_id == Supplier.id)
            .filter(
                SupplierProduct.product_id == product_id,
                SupplierProduct.inventory > 0,
                Supplier.is_active.is_(True),
            )
            .order_by(Supplier.name)
            .all()
        )
        return [
            Offer(
                supplier_id=sp.supplier_id,
                supplier_name=supplier.name,
                cost=Decimal(str(sp.cost)),
                inventory=int(sp.inventory or 0),
                supplier_sku=sp.supplier_sku,
            )
            for sp, supplier in rows
        ]

    def _find_for_feed(self, store_id: str, item: FeedItem) -> Optional[Product]:
        query = self.db.query(Product).filter(Product.store_id == store_id)
        if item.upc:
            return query.filter(Product.upc == item.upc).first()
        return query.filter(Product.internal_sku == item.sku).first()

    def _get_or_create_product(self, store_id: str, item: FeedItem) -> Product:
        product = self._find_for_feed(store_id, item)
        if product:
            if not product.title and item.title:
                product.title = item.title
            if product.msrp is None and item.msrp is not None:
                product.msrp = item.msrp
            if not product.category and item.category:
                product.category = item.category
            return product
        try:
            # Savepoint: another supplier's sync may insert the same UPC concurrently
            with self.db.begin_nested():
                product = Product(
                    store_id=store_id,
                    upc=item.upc or None,
                    internal_sku=None if item.upc else item.sku,
                    title=item.title or item.sku,
                    description=item.description,
                    brand=item.brand,
                    category=item.category,
                    msrp=item.msrp,
                )
                self.db.add(product)
                self.db.flush()
            return product
        except IntegrityError:
            product = self._find_for_feed(store_id, item)
            if product is None:
                raise
            return product

    def upsert_feed_item(self, store_id: str, supplier: Supplier, item: FeedItem) -> SupplierProduct:
        """
        Upsert Product (keyed on UPC, else SKU, within the store) and the supplier's offer
        (keyed on product + supplier). Last writer wins per row.
        """
        try:
            cost = Decimal(str(item.cost))
        except (InvalidOperation, TypeError, ValueError):
            raise ValueError(f"Invalid cost for {item.sku}: {item.cost!r}")
        if cost < 0:
            raise ValueError(f"Negative cost for {item.sku}: {cost}")
        inventory = max(int(item.inventory or 0), 0)

        product = self._get_or_create_product(store_id, item)
        offer = (
            self.db.query(SupplierProduct)
            .filter(SupplierProduct.product_id == product.id, SupplierProduct.supplier_id == supplier.id)
            .first()
        )
        now = utcnow()
        if offer:
            offer.cost = cost
            offer.inventory = inventory
            offer.supplier_sku = item.supplier_sku or offer.supplier_sku
            offer.last_sync_at = now
        else:
            offer = SupplierProduct(
                product_id=product.id,
                supplier_id=supplier.id,
                supplier_sku=item.supplier_sku or item.sku,
                cost=cost,
                inventory=inventory,
                last_sync_at=now,
            )
            self.db.add(offer)
        self.db.flush()
        return offer

    def _held_by_other(self, product: Product, column, value: str) -> bool:
        return (
            self.db.query(Product.id)
            .filter(Product.store_id == product.store_id, column == value, Product.id != product.id)
            .first()
            is not None
        )

    def import_product(
        self,
        store_id: str,
        product_id: str,
        internal_sku: Optional[str] = None,
        shopify_product_id: Optional[str] = None,
        add_to_favorites: Optional[bool] = None,
    ) -> Optional[Product]:
        """
        Make a synced product orderable from the storefront.

        The internal SKU defaults to the product's current one, else the cheapest offer's
        supplier SKU (ties broken by supplier name). Returns None if the product is not in
        the store; raises ValueError when no SKU can be assigned and CatalogConflictError
        when the SKU or storefront id already belongs to another product.
        """
        product = (
            self._product_query(store_id)
            .filter(Product.id == product_id)
            .first()
        )
        if product is None:
            return None

        sku = (internal_sku or "").strip() or product.internal_sku
        if not sku:
            offers = sorted(
                product.supplier_products,
                key=lambda sp: (Decimal(str(sp.cost)), sp.supplier.name if sp.supplier else ""),
            )
            if not offers:
                raise ValueError("Product has no supplier offers; an internal SKU is required")
            sku = offers[0].supplier_sku
        if self._held_by_other(product, Product.internal_sku, sku):
            raise CatalogConflictError(f"Internal SKU {sku} is already used by another product")

        storefront_id = (shopify_product_id or "").strip()
        if storefront_id and self._held_by_other(product, Product.shopify_product_id, storefront_id):
            raise CatalogConflictError(f"Shopify product {storefront_id} is already linked to another product")

        product.internal_sku = sku
        if storefront_id:
            product.shopify_product_id = storefront_id
        if add_to_favorites is not None:
            product.is_favorite = add_to_favorites
        product.imported_at = utcnow()
        self.db.flush()
        logger.info("Imported product %s as %s", product.id, sku)
        return product

    def _product_query(self, store_id: str):
        return (
            self.db.query(Product)
            .options(joinedload(Product.supplier_products).joinedload(SupplierProduct.supplier))
            .filter(Product.store_id == store_id)
        )

    def list_products(
        self,
        store_id: str,
        search: Optional[str] = None,
        category: Optional[str] = None,
        supplier: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> list[Product]:
        query = self._product_query(store_id)
        if search and search.strip():
            term = f"%{search.strip()}%"
            query = query.filter(
                or_(Product.title.ilike(term), Product.description.ilike(term), Product.upc.contains(search.strip()))
            )
        if category:
            query = query.filter(Product.category == category)
        if supplier:
            query = query.filter(
                Product.supplier_products.any(SupplierProduct.supplier.has(Supplier.name == supplier))
            )
        page = max(page, 1)
        return query.order_by(Product.title).offset((page - 1) * limit).limit(limit).all()

    def export_rows(self, store_id: str, supplier_names: list[str]) -> list[list]:
        """One row per product: title, upc, category, msrp, then cost/inventory per supplier."""
        rows = []
        for product in self._product_query(store_id).order_by(Product.title).all():
            by_supplier = {sp.supplier.name: sp for sp in product.supplier_products if sp.supplier}
            row = [product.title, product.upc or "", product.category or "", product.msrp if product.msrp is not None else ""]
            for name in supplier_names:
                sp = by_supplier.get(name)
                row.extend([sp.cost if sp else "", sp.inventory if sp else ""])
            rows.append(row)
        return rows
