"""
Analytics routes
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.database import get_db
from app.http.dependencies import get_current_store
from app.http.requests.schemas import AnalyticsOverviewResponse
from app.models import Order, OrderItem, Product, Store, Supplier, SupplierProduct

logger = logging.getLogger(__name__)
router = APIRouter()

LOW_STOCK_THRESHOLD = 10


def supplier_stats(db: Session, store_id: str) -> list[dict]:
    """Order line count and cost per supplier; percentage is the supplier's share of lines."""
    rows = (
        db.query(
            Supplier.name,
            Supplier.display_name,
            func.count(OrderItem.id),
            func.coalesce(func.sum(OrderItem.total_cost), 0),
        )
        .join(OrderItem, OrderItem.supplier_id == Supplier.id)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.store_id == store_id)
        .group_by(Supplier.id, Supplier.name, Supplier.display_name)
        .order_by(Supplier.name)
        .all()
    )
    total_lines = sum(count for _, _, count, _ in rows)
    return [
        {
            "name": name,
            "displayName": display_name or name,
            "orders": int(count),
            "revenue": round(float(revenue or 0), 2),
            "percentage": round(count * 100 / total_lines) if total_lines else 0,
        }
        for name, display_name, count, revenue in rows
    ]


@router.get("/overview", response_model=AnalyticsOverviewResponse)
async def get_overview(
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    """Catalog size, order volume and revenue, per-supplier share and stock alerts"""
    try:
        total_products = db.query(func.count(Product.id)).filter(Product.store_id == store.id).scalar() or 0
        imported_products = db.query(func.count(Product.id)).filter(
            Product.store_id == store.id,
            Product.imported_at.isnot(None),
        ).scalar() or 0
        total_orders, total_revenue = db.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_amount), 0),
        ).filter(Order.store_id == store.id).one()

        offers = (
            db.query(func.count(SupplierProduct.id))
            .join(Product, Product.id == SupplierProduct.product_id)
            .filter(Product.store_id == store.id)
        )
        low_stock = offers.filter(
            SupplierProduct.inventory > 0,
            SupplierProduct.inventory <= LOW_STOCK_THRESHOLD,
        ).scalar() or 0
        out_of_stock = offers.filter(SupplierProduct.inventory <= 0).scalar() or 0

        return {
            "totalProducts": int(total_products),
            "importedProducts": int(imported_products),
            "totalOrders": int(total_orders or 0),
            "totalRevenue": round(float(total_revenue or 0), 2),
            "supplierStats": supplier_stats(db, store.id),
            "lowStockCount": int(low_stock),
            "outOfStockCount": int(out_of_stock),
        }
    except Exception as e:
        logger.error("Error in analytics overview: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching analytics: {e}")
