"""
Shared FastAPI dependencies for dashboard routes.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import Store
from app.services.supplier_submission import SubmissionDispatcher, get_submission_dispatcher
from app.services.suppliers import build_adapter
from app.services.sync_engine import SupplierSyncEngine


def get_current_store(
    db: Session = Depends(get_db),
    x_shopify_shop_domain: Optional[str] = Header(None),
    shop: Optional[str] = Query(None),
) -> Store:
    """Resolve the store from X-Shopify-Shop-Domain or ?shop=."""
    shop_domain = (x_shopify_shop_domain or shop or "").strip().lower()
    if not shop_domain:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing shop domain")
    store = db.query(Store).filter(Store.shop_domain == shop_domain).first()
    if not store:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
    if not store.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Store is not active")
    return store


def get_dispatcher() -> Optional[SubmissionDispatcher]:
    return get_submission_dispatcher()


def get_sync_engine() -> SupplierSyncEngine:
    return SupplierSyncEngine()


def get_adapter_factory():
    return build_adapter
