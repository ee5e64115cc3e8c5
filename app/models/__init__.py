"""
SQLAlchemy models for stores, supplier catalogs, routed orders and the submission outbox.
All model and enum definitions live here for simplicity and to avoid circular imports.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, ForeignKey, Numeric, Enum as SQLEnum, JSON,
    UniqueConstraint, CheckConstraint, Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum
import uuid


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are stored without tz)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Enums
class SupplierType(str, enum.Enum):
    REST_API = "REST_API"
    DATA_FEED = "DATA_FEED"
    SFTP = "SFTP"

class SupplierSyncStatus(str, enum.Enum):
    NEVER = "NEVER"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

class OrderStatus(str, enum.Enum):
    ROUTED = "ROUTED"
    SUBMITTED = "SUBMITTED"
    PARTIALLY_SUBMITTED = "PARTIALLY_SUBMITTED"
    SUBMISSION_FAILED = "SUBMISSION_FAILED"

class SubmissionStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_FLIGHT = "IN_FLIGHT"
    SUBMITTED = "SUBMITTED"
    FAILED = "FAILED"

class SyncLogStatus(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"


# Models
class Store(Base):
    __tablename__ = "stores"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    shop_domain = Column("shop_domain", String, unique=True, nullable=False, index=True)
    is_active = Column("is_active", Boolean, default=True, nullable=False)
    auto_sync = Column("auto_sync", Boolean, default=True, nullable=False)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    products = relationship("Product", back_populates="store")
    orders = relationship("Order", back_populates="store")


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, unique=True, nullable=False, index=True)
    display_name = Column("display_name", String, nullable=True)
    type = Column(SQLEnum(SupplierType), nullable=False)
    credentials_encrypted = Column("credentials_encrypted", Text, nullable=True)  # Fernet blob, opaque to routing
    is_active = Column("is_active", Boolean, default=True, nullable=False)
    sync_status = Column("sync_status", SQLEnum(SupplierSyncStatus), default=SupplierSyncStatus.NEVER)
    last_sync_at = Column("last_sync_at", DateTime, nullable=True)
    last_error = Column("last_error", String, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())

    supplier_products = relationship("SupplierProduct", back_populates="supplier")


class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id = Column("store_id", String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    shopify_product_id = Column("shopify_product_id", String, nullable=True, index=True)
    internal_sku = Column("internal_sku", String, nullable=True, index=True)
    upc = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    brand = Column(String, nullable=True)
    category = Column(String, nullable=True)
    msrp = Column("msrp", Numeric(12, 2), nullable=True)
    is_supplier_locked = Column("is_supplier_locked", Boolean, default=False, nullable=False)
    preferred_supplier = Column("preferred_supplier", String, nullable=True)
    is_favorite = Column("is_favorite", Boolean, default=False, nullable=False)
    imported_at = Column("imported_at", DateTime, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    store = relationship("Store", back_populates="products")
    supplier_products = relationship("SupplierProduct", back_populates="product", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("store_id", "upc", name="products_store_upc_unique"),
        UniqueConstraint("store_id", "internal_sku", name="products_store_sku_unique"),
    )


class SupplierProduct(Base):
    __tablename__ = "supplier_products"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id = Column("product_id", String, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    supplier_id = Column("supplier_id", String, ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True)
    supplier_sku = Column("supplier_sku", String, nullable=False)
    cost = Column("cost", Numeric(12, 4), nullable=False)
    inventory = Column("inventory", Integer, default=0, nullable=False)
    last_sync_at = Column("last_sync_at", DateTime, nullable=True)

    product = relationship("Product", back_populates="supplier_products")
    supplier = relationship("Supplier", back_populates="supplier_products")

    __table_args__ = (
        UniqueConstraint("product_id", "supplier_id", name="supplier_products_product_supplier_unique"),
        CheckConstraint("inventory >= 0", name="supplier_products_inventory_non_negative"),
        CheckConstraint("cost >= 0", name="supplier_products_cost_non_negative"),
    )


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id = Column("store_id", String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    external_order_ref = Column("external_order_ref", String, nullable=False)
    order_number = Column("order_number", String, nullable=True)
    customer_email = Column("customer_email", String, nullable=True)
    total_amount = Column("total_amount", Numeric(12, 2), nullable=False)
    shipping_address = Column("shipping_address", JSON, nullable=True)
    status = Column(SQLEnum(OrderStatus), default=OrderStatus.ROUTED, nullable=False)
    routing_diagnostics = Column("routing_diagnostics", JSON, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    store = relationship("Store", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    submission_tasks = relationship("SubmissionTask", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("store_id", "external_order_ref", name="orders_store_external_ref_unique"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id = Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column("product_id", String, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    supplier_id = Column("supplier_id", String, ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True, index=True)
    quantity = Column(Integer, nullable=False)
    unit_cost = Column("unit_cost", Numeric(12, 4), nullable=False)
    total_cost = Column("total_cost", Numeric(12, 4), nullable=False)
    supplier_sku = Column("supplier_sku", String, nullable=False)
    submission_status = Column("submission_status", SQLEnum(SubmissionStatus), default=SubmissionStatus.PENDING, nullable=False)
    submission_error = Column("submission_error", String, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
    supplier = relationship("Supplier")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="order_items_quantity_positive"),
    )


class SubmissionTask(Base):
    """Outbox row: one per (order, supplier bucket), written with the order."""
    __tablename__ = "submission_tasks"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id = Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    supplier_id = Column("supplier_id", String, ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False)
    status = Column(SQLEnum(SubmissionStatus), default=SubmissionStatus.PENDING, nullable=False, index=True)
    attempts = Column("attempts", Integer, default=0, nullable=False)
    max_attempts = Column("max_attempts", Integer, default=5, nullable=False)
    next_attempt_at = Column("next_attempt_at", DateTime, nullable=True)
    claimed_at = Column("claimed_at", DateTime, nullable=True)
    last_error = Column("last_error", String, nullable=True)
    payload = Column("payload", JSON, nullable=False)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    order = relationship("Order", back_populates="submission_tasks")
    supplier = relationship("Supplier")

    __table_args__ = (
        UniqueConstraint("order_id", "supplier_id", name="submission_tasks_order_supplier_unique"),
    )


class SyncLog(Base):
    __tablename__ = "sync_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id = Column("store_id", String, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    supplier_id = Column("supplier_id", String, ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True)
    sync_type = Column("sync_type", String, nullable=False, default="products")
    status = Column(SQLEnum(SyncLogStatus), nullable=False)
    records_processed = Column("records_processed", Integer, default=0)
    message = Column(String, nullable=True)
    created_at = Column("created_at", DateTime, default=utcnow, index=True)

    supplier = relationship("Supplier")


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    source = Column("source", String, nullable=False, index=True)
    shop_domain = Column("shop_domain", String, nullable=True, index=True)
    topic = Column("topic", String, nullable=False, index=True)
    payload_summary = Column("payload_summary", String, nullable=True)
    processed_at = Column("processed_at", DateTime, nullable=True)
    error = Column("error", String, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
