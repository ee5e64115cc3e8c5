"""
Product routes: catalog listing with supplier offers, CSV export, import, favorites
"""
import csv
import io
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.http.dependencies import get_current_store
from app.http.requests.schemas import (
    FavoriteRequest,
    FavoriteResponse,
    ImportProductRequest,
    ProductListResponse,
    ProductResponse,
)
from app.models import Product, Store, Supplier
from app.services.catalog_store import CatalogStore
from app.services.errors import CatalogConflictError

logger = logging.getLogger(__name__)
router = APIRouter()


def _product_dict(product: Product) -> dict:
    return {
        "id": product.id,
        "title": product.title,
        "upc": product.upc,
        "internalSku": product.internal_sku,
        "shopifyProductId": product.shopify_product_id,
        "category": product.category,
        "brand": product.brand,
        "msrp": float(product.msrp) if product.msrp is not None else None,
        "isFavorite": product.is_favorite,
        "isSupplierLocked": product.is_supplier_locked,
        "preferredSupplier": product.preferred_supplier,
        "importedAt": product.imported_at,
        "suppliers": [
            {
                "supplier": sp.supplier.name if sp.supplier else None,
                "supplierSku": sp.supplier_sku,
                "cost": float(sp.cost),
                "inventory": sp.inventory,
                "lastSyncAt": sp.last_sync_at,
            }
            for sp in sorted(product.supplier_products, key=lambda sp: float(sp.cost))
        ],
    }


@router.get("", response_model=ProductListResponse)
async def list_products(
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    supplier: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    """List products with supplier offers, cheapest first"""
    products = CatalogStore(db).list_products(store.id, search, category, supplier, page, limit)
    return {"products": [_product_dict(p) for p in products], "page": page, "limit": limit}


@router.get("/export")
async def export_products(
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    """CSV of every product with cost and inventory per supplier"""
    suppliers = db.query(Supplier).order_by(Supplier.name).all()
    names = [s.name for s in suppliers]
    out = io.StringIO()
    writer = csv.writer(out)
    header = ["Title", "UPC", "Category", "MSRP"]
    for s in suppliers:
        label = s.display_name or s.name
        header.extend([f"{label} Cost", f"{label} Inventory"])
    writer.writerow(header)
    writer.writerows(CatalogStore(db).export_rows(store.id, names))
    return Response(
        content=out.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=intimasync-products.csv"},
    )


@router.post("/{product_id}/import", response_model=ProductResponse)
async def import_product(
    product_id: str,
    request: ImportProductRequest = None,
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    """Assign the internal SKU (and optionally the Shopify product id) so orders can find the product"""
    request = request or ImportProductRequest()
    try:
        product = CatalogStore(db).import_product(
            store.id,
            product_id,
            internal_sku=request.internalSku,
            shopify_product_id=request.shopifyProductId,
            add_to_favorites=request.addToFavorites,
        )
    except CatalogConflictError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    db.commit()
    db.refresh(product)
    return _product_dict(product)


@router.patch("/{product_id}/favorite", response_model=FavoriteResponse)
async def toggle_favorite(
    product_id: str,
    request: FavoriteRequest = None,
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    """Set or toggle the favorite flag"""
    product = db.query(Product).filter(Product.id == product_id, Product.store_id == store.id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if request is not None and request.isFavorite is not None:
        product.is_favorite = request.isFavorite
    else:
        product.is_favorite = not product.is_favorite
    db.commit()
    return {"id": product.id, "isFavorite": product.is_favorite}
