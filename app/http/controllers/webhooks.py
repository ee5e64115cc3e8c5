"""
Shopify webhook receivers. Public (no dashboard auth); HMAC verified.
"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.http.dependencies import get_dispatcher
from app.services.errors import CommitFailure, NoRoutableItemsError
from app.services.shopify_webhook_handler import (
    deactivate_store,
    get_store,
    mark_event,
    process_order_created,
    record_event,
    verify_webhook_hmac,
)

logger = logging.getLogger(__name__)
router = APIRouter()


async def _verified_payload(request: Request, topic: str) -> tuple[str, dict]:
    raw_body = await request.body()
    hmac_header = request.headers.get("X-Shopify-Hmac-Sha256")
    shop_domain = (request.headers.get("X-Shopify-Shop-Domain") or "").strip().lower()
    if not shop_domain:
        logger.warning("Shopify webhook %s: missing X-Shopify-Shop-Domain", topic)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing shop domain")
    if not settings.SHOPIFY_WEBHOOK_SECRET:
        logger.warning("Shopify webhook %s: SHOPIFY_WEBHOOK_SECRET is not configured", topic)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Webhook secret not configured")
    if not verify_webhook_hmac(raw_body, hmac_header, settings.SHOPIFY_WEBHOOK_SECRET):
        logger.warning("Shopify webhook: HMAC verification failed for shop=%s topic=%s", shop_domain, topic)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")
    try:
        payload = json.loads(raw_body.decode("utf-8")) if raw_body else {}
    except ValueError as e:
        logger.warning("Shopify webhook: invalid JSON %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")
    return shop_domain, payload


@router.post("/orders/create")
async def order_created(
    request: Request,
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
):
    """
    Route a new storefront order to suppliers and persist it.
    Redelivery of an already committed order returns 200 with duplicate=true.
    """
    shop_domain, payload = await _verified_payload(request, "orders/create")
    event = record_event(db, shop_domain, "orders/create", payload)

    store = get_store(db, shop_domain)
    if store is None or not store.is_active:
        reason = "Unknown shop" if store is None else "Store is not active"
        logger.info("Order webhook for %s ignored: %s", shop_domain, reason)
        mark_event(db, event.id, reason)
        return {"ok": True, "ignored": True, "reason": reason}

    try:
        result = process_order_created(db, store, payload, dispatcher=dispatcher)
    except ValueError as e:
        mark_event(db, event.id, str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NoRoutableItemsError as e:
        logger.warning("Order %s for %s not routable: %s", payload.get("id"), shop_domain, e)
        mark_event(db, event.id, f"{e.reason}: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "error": e.reason,
                "message": str(e),
                "diagnostics": [d.to_dict() for d in e.diagnostics],
            },
        )
    except CommitFailure as e:
        mark_event(db, event.id, str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Order could not be saved; retry")

    mark_event(db, event.id)
    order = result.order
    if not result.created:
        return {"ok": True, "duplicate": True, "orderId": order.id}
    return {
        "ok": True,
        "duplicate": False,
        "orderId": order.id,
        "status": order.status.value,
        "suppliers": len(result.task_ids),
        "diagnostics": [d.to_dict() for d in result.diagnostics],
    }


@router.post("/app/uninstalled")
async def app_uninstalled(
    request: Request,
    db: Session = Depends(get_db),
):
    """Deactivate the store; its data is kept."""
    shop_domain, payload = await _verified_payload(request, "app/uninstalled")
    event = record_event(db, shop_domain, "app/uninstalled", payload)
    found = deactivate_store(db, shop_domain)
    mark_event(db, event.id, None if found else "Unknown shop")
    return {"ok": True, "deactivated": found}
