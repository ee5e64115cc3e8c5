"""Initial schema: stores, supplier catalogs, routed orders, submission outbox, sync logs.

Revision ID: initial_schema
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


revision = "initial_schema"
down_revision = None
branch_labels = None
depends_on = None

supplier_type = sa.Enum("REST_API", "DATA_FEED", "SFTP", name="suppliertype")
supplier_sync_status = sa.Enum("NEVER", "RUNNING", "SUCCESS", "FAILED", name="suppliersyncstatus")
order_status = sa.Enum("ROUTED", "SUBMITTED", "PARTIALLY_SUBMITTED", "SUBMISSION_FAILED", name="orderstatus")
submission_status = sa.Enum("PENDING", "IN_FLIGHT", "SUBMITTED", "FAILED", name="submissionstatus")
sync_log_status = sa.Enum("SUCCESS", "ERROR", name="synclogstatus")


def upgrade() -> None:
    op.create_table(
        "stores",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("shop_domain", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("auto_sync", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_stores_shop_domain", "stores", ["shop_domain"], unique=True)

    op.create_table(
        "suppliers",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("type", supplier_type, nullable=False),
        sa.Column("credentials_encrypted", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sync_status", supplier_sync_status, nullable=True),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        sa.Column("last_error", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_suppliers_name", "suppliers", ["name"], unique=True)

    op.create_table(
        "products",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("store_id", sa.String(), sa.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shopify_product_id", sa.String(), nullable=True),
        sa.Column("internal_sku", sa.String(), nullable=True),
        sa.Column("upc", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("brand", sa.String(), nullable=True),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("msrp", sa.Numeric(12, 2), nullable=True),
        sa.Column("is_supplier_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("preferred_supplier", sa.String(), nullable=True),
        sa.Column("is_favorite", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("imported_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("store_id", "upc", name="products_store_upc_unique"),
        sa.UniqueConstraint("store_id", "internal_sku", name="products_store_sku_unique"),
    )
    op.create_index("ix_products_store_id", "products", ["store_id"])
    op.create_index("ix_products_shopify_product_id", "products", ["shopify_product_id"])
    op.create_index("ix_products_internal_sku", "products", ["internal_sku"])
    op.create_index("ix_products_upc", "products", ["upc"])

    op.create_table(
        "supplier_products",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("product_id", sa.String(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("supplier_id", sa.String(), sa.ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("supplier_sku", sa.String(), nullable=False),
        sa.Column("cost", sa.Numeric(12, 4), nullable=False),
        sa.Column("inventory", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("product_id", "supplier_id", name="supplier_products_product_supplier_unique"),
        sa.CheckConstraint("inventory >= 0", name="supplier_products_inventory_non_negative"),
        sa.CheckConstraint("cost >= 0", name="supplier_products_cost_non_negative"),
    )
    op.create_index("ix_supplier_products_product_id", "supplier_products", ["product_id"])
    op.create_index("ix_supplier_products_supplier_id", "supplier_products", ["supplier_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("store_id", sa.String(), sa.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False),
        sa.Column("external_order_ref", sa.String(), nullable=False),
        sa.Column("order_number", sa.String(), nullable=True),
        sa.Column("customer_email", sa.String(), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("shipping_address", sa.JSON(), nullable=True),
        sa.Column("status", order_status, nullable=False),
        sa.Column("routing_diagnostics", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("store_id", "external_order_ref", name="orders_store_external_ref_unique"),
    )
    op.create_index("ix_orders_store_id", "orders", ["store_id"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("order_id", sa.String(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.String(), sa.ForeignKey("products.id", ondelete="SET NULL"), nullable=True),
        sa.Column("supplier_id", sa.String(), sa.ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost", sa.Numeric(12, 4), nullable=False),
        sa.Column("total_cost", sa.Numeric(12, 4), nullable=False),
        sa.Column("supplier_sku", sa.String(), nullable=False),
        sa.Column("submission_status", submission_status, nullable=False),
        sa.Column("submission_error", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="order_items_quantity_positive"),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])
    op.create_index("ix_order_items_supplier_id", "order_items", ["supplier_id"])

    op.create_table(
        "submission_tasks",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("order_id", sa.String(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("supplier_id", sa.String(), sa.ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", submission_status, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("next_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.Column("last_error", sa.String(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("order_id", "supplier_id", name="submission_tasks_order_supplier_unique"),
    )
    op.create_index("ix_submission_tasks_order_id", "submission_tasks", ["order_id"])
    op.create_index("ix_submission_tasks_status", "submission_tasks", ["status"])

    op.create_table(
        "sync_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("store_id", sa.String(), sa.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False),
        sa.Column("supplier_id", sa.String(), sa.ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sync_type", sa.String(), nullable=False),
        sa.Column("status", sync_log_status, nullable=False),
        sa.Column("records_processed", sa.Integer(), nullable=True),
        sa.Column("message", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_sync_logs_store_id", "sync_logs", ["store_id"])
    op.create_index("ix_sync_logs_supplier_id", "sync_logs", ["supplier_id"])
    op.create_index("ix_sync_logs_created_at", "sync_logs", ["created_at"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("shop_domain", sa.String(), nullable=True),
        sa.Column("topic", sa.String(), nullable=False),
        sa.Column("payload_summary", sa.String(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("error", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_webhook_events_source", "webhook_events", ["source"])
    op.create_index("ix_webhook_events_shop_domain", "webhook_events", ["shop_domain"])
    op.create_index("ix_webhook_events_topic", "webhook_events", ["topic"])


def downgrade() -> None:
    for table in (
        "webhook_events",
        "sync_logs",
        "submission_tasks",
        "order_items",
        "orders",
        "supplier_products",
        "products",
        "suppliers",
        "stores",
    ):
        op.drop_table(table)
    bind = op.get_bind()
    for enum in (sync_log_status, submission_status, order_status, supplier_sync_status, supplier_type):
        enum.drop(bind, checkfirst=True)
