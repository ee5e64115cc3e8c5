"""
Shared fixtures: in-memory sqlite database, a store, three suppliers and fake adapters.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SHOPIFY_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key-for-suppliers")

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import Product, Store, Supplier, SupplierProduct, SupplierType
from app.services.errors import SupplierFetchError, SupplierSubmissionError
from app.services.suppliers.base import SupplierAdapter

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(db_session):
    store = Store(shop_domain="test-shop.myshopify.com", is_active=True, auto_sync=True)
    db_session.add(store)
    db_session.commit()
    db_session.refresh(store)
    return store


@pytest.fixture
def suppliers(db_session):
    """nalpac, honeysplace, eldorado keyed by name."""
    rows = {
        "nalpac": Supplier(name="nalpac", display_name="Nalpac", type=SupplierType.REST_API),
        "honeysplace": Supplier(name="honeysplace", display_name="Honey's Place", type=SupplierType.DATA_FEED),
        "eldorado": Supplier(name="eldorado", display_name="Eldorado", type=SupplierType.SFTP),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    for s in rows.values():
        db_session.refresh(s)
    return rows


@pytest.fixture
def make_product(db_session, store, suppliers):
    """make_product("SKU", {"nalpac": ("9.50", 3)}, shopify_product_id="111", ...)"""

    def _make(sku, offers, **fields):
        product = Product(store_id=store.id, internal_sku=sku, title=fields.pop("title", sku), **fields)
        db_session.add(product)
        db_session.flush()
        for name, (cost, inventory) in offers.items():
            db_session.add(SupplierProduct(
                product_id=product.id,
                supplier_id=suppliers[name].id,
                supplier_sku=f"{name.upper()}-{sku}",
                cost=Decimal(cost),
                inventory=inventory,
            ))
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make


class FakeAdapter(SupplierAdapter):
    """In-memory adapter: scripted catalog and submission outcomes."""

    def __init__(self, supplier_name, items=None, fetch_error=None, submit_errors=None, hang=False):
        super().__init__(supplier_name, {})
        self.items = items or []
        self.fetch_error = fetch_error
        self.submit_errors = list(submit_errors or [])
        self.hang = hang
        self.submitted = []

    async def fetch_catalog(self):
        if self.hang:
            import asyncio
            await asyncio.sleep(3600)
        if self.fetch_error:
            raise SupplierFetchError(self.fetch_error)
        return list(self.items)

    async def test_connection(self):
        return {"success": self.fetch_error is None, "message": self.fetch_error or "ok"}

    async def submit_order(self, payload):
        if self.submit_errors:
            error = self.submit_errors.pop(0)
            if error is not None:
                raise error
        self.submitted.append(payload)
        return {"success": True}


@pytest.fixture
def fake_adapters():
    """Registry of FakeAdapter by supplier name plus a factory usable as adapter_factory."""
    registry = {}

    def factory(supplier):
        if supplier.name not in registry:
            registry[supplier.name] = FakeAdapter(supplier.name)
        return registry[supplier.name]

    factory.registry = registry
    return factory


def submission_error(name, retryable=True):
    return SupplierSubmissionError(name, "supplier unavailable", retryable=retryable)


class RecordingDispatcher:
    """Stands in for the background dispatcher; remembers which task ids were handed over."""

    def __init__(self):
        self.calls = []

    def dispatch(self, task_ids):
        self.calls.append(list(task_ids))
        return len(task_ids)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def client(db_session, fake_adapters, dispatcher):
    from fastapi.testclient import TestClient

    from app.database import get_db
    from app.http.dependencies import get_adapter_factory, get_dispatcher, get_sync_engine
    from app.services.sync_engine import SupplierSyncEngine
    from main import app

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_sync_engine] = lambda: SupplierSyncEngine(TestingSessionLocal, fake_adapters)
    app.dependency_overrides[get_adapter_factory] = lambda: fake_adapters
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def shop_headers(store):
    return {"X-Shopify-Shop-Domain": store.shop_domain}
