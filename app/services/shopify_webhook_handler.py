"""
Shopify webhook: HMAC verification, order payload parsing and topic handling.
orders/create routes and commits the order; app/uninstalled deactivates the store.
"""
import base64
import hmac
import hashlib
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.orm import Session

from app.models import Store, WebhookEvent, utcnow
from app.services.order_router import LineItem
from app.services.order_service import CommitResult, InboundOrder, OrderMetadata, OrderService

logger = logging.getLogger(__name__)


def verify_webhook_hmac(body: bytes, hmac_header: Optional[str], secret: Optional[str]) -> bool:
    """
    Verify X-Shopify-Hmac-Sha256: base64(HMAC-SHA256(raw_body, secret)) == header.
    """
    if not secret or not hmac_header or not body:
        return False
    computed = base64.b64encode(hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()).decode("utf-8")
    return hmac.compare_digest(computed, hmac_header.strip())


def _to_decimal(value) -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal("0")
    except (InvalidOperation, ValueError):
        return Decimal("0")


def _to_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_order_payload(payload: dict) -> InboundOrder:
    """
    Reduce a Shopify order payload to an InboundOrder.
    Line items without any product reference or with quantity <= 0 are dropped.
    """
    order_id = payload.get("id")
    if order_id in (None, ""):
        raise ValueError("Order payload has no id")

    line_items: list[LineItem] = []
    for index, raw in enumerate(payload.get("line_items") or []):
        if not isinstance(raw, dict):
            continue
        product_id = raw.get("product_id")
        sku = (raw.get("sku") or "").strip() or None
        ref = str(product_id) if product_id not in (None, "") else sku
        quantity = _to_int(raw.get("quantity"))
        if not ref:
            logger.warning("Order %s line %s has no product reference; dropped", order_id, index)
            continue
        if quantity <= 0:
            logger.warning("Order %s line %s (%s) has quantity %s; dropped", order_id, index, ref, quantity)
            continue
        line_items.append(LineItem(product_ref=ref, quantity=quantity, sku=sku, title=raw.get("title")))

    customer = payload.get("customer") or {}
    metadata = OrderMetadata(
        order_number=str(payload.get("order_number") or payload.get("name") or "") or None,
        customer_email=payload.get("email") or customer.get("email"),
        total_amount=_to_decimal(payload.get("total_price")),
        shipping_address=payload.get("shipping_address") or None,
    )
    return InboundOrder(external_order_ref=str(order_id), metadata=metadata, line_items=line_items)


def get_store(db: Session, shop_domain: str) -> Optional[Store]:
    return db.query(Store).filter(Store.shop_domain == shop_domain).first()


def record_event(db: Session, shop_domain: str, topic: str, payload: dict) -> WebhookEvent:
    summary = None
    if isinstance(payload, dict):
        oid = payload.get("id") or payload.get("order_id")
        if oid is not None:
            summary = f"id={oid}"
    event = WebhookEvent(source="shopify", shop_domain=shop_domain, topic=topic, payload_summary=summary)
    db.add(event)
    db.commit()
    return event


def mark_event(db: Session, event_id: str, error: Optional[str] = None) -> None:
    event = db.get(WebhookEvent, event_id)
    if event is None:
        return
    if error:
        event.error = error[:500]
    else:
        event.processed_at = utcnow()
        event.error = None
    db.commit()


def process_order_created(db: Session, store: Store, payload: dict, dispatcher=None) -> CommitResult:
    """orders/create: parse, route, commit. Routing and commit errors propagate to the caller."""
    inbound = parse_order_payload(payload)
    return OrderService(db, dispatcher=dispatcher).process_order(store, inbound)


def deactivate_store(db: Session, shop_domain: str) -> bool:
    """app/uninstalled: mark the store inactive. Returns False when the shop is unknown."""
    store = get_store(db, shop_domain)
    if store is None:
        return False
    store.is_active = False
    db.commit()
    logger.info("Store %s deactivated (app uninstalled)", shop_domain)
    return True
