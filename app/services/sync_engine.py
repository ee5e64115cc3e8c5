"""
Supplier catalog sync engine.

Each supplier syncs in its own session: a fetch failure or timeout for one supplier
rolls back only that supplier's work, and the others still complete (allSettled semantics).
"""
import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.models import Store, Supplier, SupplierSyncStatus, SyncLog, SyncLogStatus, utcnow
from app.services.catalog_store import CatalogStore
from app.services.suppliers import build_adapter

logger = logging.getLogger(__name__)


class SupplierSyncEngine:
    """Pulls supplier catalogs into the store's Product / SupplierProduct tables."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        adapter_factory: Callable = build_adapter,
    ):
        self.session_factory = session_factory
        self.adapter_factory = adapter_factory

    async def sync_supplier(self, store_id: str, supplier_id: str) -> dict:
        """Fetch one supplier's feed and upsert it. Never raises for supplier-side failures."""
        db = self.session_factory()
        try:
            supplier = db.get(Supplier, supplier_id)
            if supplier is None:
                raise ValueError(f"Supplier {supplier_id} not found")
            supplier_name = supplier.name

            try:
                adapter = self.adapter_factory(supplier)
                supplier.sync_status = SupplierSyncStatus.RUNNING
                db.commit()

                items = await asyncio.wait_for(adapter.fetch_catalog(), timeout=settings.SUPPLIER_SYNC_TIMEOUT)

                supplier = db.get(Supplier, supplier_id)
                catalog = CatalogStore(db)
                processed = 0
                skipped = 0
                for item in items:
                    try:
                        catalog.upsert_feed_item(store_id, supplier, item)
                        processed += 1
                    except ValueError as e:
                        skipped += 1
                        logger.warning("%s: skipping feed row %s: %s", supplier_name, item.sku, e)

                supplier.sync_status = SupplierSyncStatus.SUCCESS
                supplier.last_sync_at = utcnow()
                supplier.last_error = None
                db.add(SyncLog(
                    store_id=store_id,
                    supplier_id=supplier_id,
                    sync_type="products",
                    status=SyncLogStatus.SUCCESS,
                    records_processed=processed,
                    message=f"Synced {processed} products" + (f", skipped {skipped}" if skipped else ""),
                ))
                db.commit()
                logger.info("%s sync completed: %s products (%s skipped)", supplier_name, processed, skipped)
                return {"supplier": supplier_name, "status": "success", "count": processed, "skipped": skipped}

            except Exception as e:
                db.rollback()
                if isinstance(e, asyncio.TimeoutError):
                    message = f"Sync timed out after {settings.SUPPLIER_SYNC_TIMEOUT:.0f}s"
                else:
                    message = str(e) or type(e).__name__
                logger.error("%s sync failed: %s", supplier_name, message)

                supplier = db.get(Supplier, supplier_id)
                supplier.sync_status = SupplierSyncStatus.FAILED
                supplier.last_error = message[:500]
                db.add(SyncLog(
                    store_id=store_id,
                    supplier_id=supplier_id,
                    sync_type="products",
                    status=SyncLogStatus.ERROR,
                    records_processed=0,
                    message=message[:500],
                ))
                db.commit()
                return {"supplier": supplier_name, "status": "error", "error": message}
        finally:
            db.close()

    def _active_suppliers(self) -> list[tuple[str, str]]:
        db = self.session_factory()
        try:
            rows = (
                db.query(Supplier.id, Supplier.name)
                .filter(Supplier.is_active.is_(True))
                .order_by(Supplier.name)
                .all()
            )
            return [(sid, name) for sid, name in rows]
        finally:
            db.close()

    async def sync_store(self, store_id: str) -> dict:
        """Sync every active supplier for one store concurrently."""
        suppliers = self._active_suppliers()
        if not suppliers:
            return {"success": True, "results": [], "message": "No active suppliers"}

        outcomes = await asyncio.gather(
            *(self.sync_supplier(store_id, sid) for sid, _ in suppliers),
            return_exceptions=True,
        )
        results = []
        for (_, name), outcome in zip(suppliers, outcomes):
            if isinstance(outcome, Exception):
                logger.error("%s sync crashed: %s", name, outcome)
                results.append({"supplier": name, "status": "error", "error": str(outcome)})
            else:
                results.append(outcome)

        succeeded = sum(1 for r in results if r["status"] == "success")
        return {
            "success": succeeded > 0,
            "results": results,
            "message": f"{succeeded}/{len(results)} supplier(s) synced",
        }

    async def sync_all_stores(self) -> dict:
        """Auto-sync pass over every active store with auto_sync enabled."""
        db = self.session_factory()
        try:
            stores = [
                (s.id, s.shop_domain)
                for s in db.query(Store).filter(Store.is_active.is_(True), Store.auto_sync.is_(True)).all()
            ]
        finally:
            db.close()

        synced = 0
        for store_id, shop_domain in stores:
            logger.info("Syncing suppliers for store: %s", shop_domain)
            result = await self.sync_store(store_id)
            if result["success"]:
                synced += 1
        return {"success": True, "stores": len(stores), "message": f"Synced {synced}/{len(stores)} store(s)"}


def sync_status(db: Session, store_id: str) -> list[dict]:
    """Latest sync outcome per supplier for a store; status is "never" when it has not synced."""
    status = []
    for supplier in db.query(Supplier).order_by(Supplier.name).all():
        last: Optional[SyncLog] = (
            db.query(SyncLog)
            .filter(SyncLog.store_id == store_id, SyncLog.supplier_id == supplier.id)
            .order_by(SyncLog.created_at.desc())
            .first()
        )
        status.append({
            "name": supplier.name,
            "displayName": supplier.display_name or supplier.name,
            "status": last.status.value if last else "never",
            "lastSync": last.created_at.isoformat() if last else None,
            "recordsProcessed": last.records_processed if last else 0,
            "message": last.message if last else None,
        })
    return status
