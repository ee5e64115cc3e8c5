"""
Supplier routes: listing, catalog sync and connection checks
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.http.dependencies import get_adapter_factory, get_current_store, get_sync_engine
from app.http.requests.schemas import SupplierListResponse
from app.models import Store, Supplier, SupplierProduct
from app.services.sync_engine import SupplierSyncEngine, sync_status

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=SupplierListResponse)
async def list_suppliers(
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    """List suppliers with catalog size"""
    counts = dict(
        db.query(SupplierProduct.supplier_id, func.count(SupplierProduct.id))
        .group_by(SupplierProduct.supplier_id)
        .all()
    )
    suppliers = db.query(Supplier).order_by(Supplier.name).all()
    return {
        "suppliers": [
            {
                "id": s.id,
                "name": s.name,
                "displayName": s.display_name or s.name,
                "type": s.type.value,
                "isActive": s.is_active,
                "syncStatus": (s.sync_status.value if s.sync_status else "NEVER"),
                "lastSyncAt": s.last_sync_at,
                "lastError": s.last_error,
                "productCount": counts.get(s.id, 0),
            }
            for s in suppliers
        ]
    }


@router.post("/sync-all")
async def sync_all(
    store: Store = Depends(get_current_store),
    engine: SupplierSyncEngine = Depends(get_sync_engine),
):
    """Sync every active supplier; one supplier failing does not stop the others"""
    result = await engine.sync_store(store.id)
    logger.info("Sync for %s: %s", store.shop_domain, result["message"])
    return result


@router.get("/sync-status")
async def get_sync_status(
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    """Last sync outcome per supplier"""
    return {"suppliers": sync_status(db, store.id)}


@router.post("/{supplier_id}/test")
async def test_supplier_connection(
    supplier_id: str,
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
    adapter_factory=Depends(get_adapter_factory),
):
    """Check that the supplier endpoint is reachable with the stored credentials"""
    supplier = db.query(Supplier).filter(Supplier.id == supplier_id).first()
    if not supplier:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Supplier not found")
    try:
        adapter = adapter_factory(supplier)
        return await asyncio.wait_for(adapter.test_connection(), timeout=settings.SUPPLIER_HTTP_TIMEOUT)
    except asyncio.TimeoutError:
        return {"success": False, "message": f"Connection test timed out after {settings.SUPPLIER_HTTP_TIMEOUT:.0f}s"}
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
