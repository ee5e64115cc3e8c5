"""
Order routes
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session, joinedload

from app.database import get_db
from app.http.dependencies import get_current_store, get_dispatcher
from app.http.requests.schemas import (
    OrderDetailEnvelope,
    RecentOrdersResponse,
    RetrySubmissionRequest,
    RetrySubmissionResponse,
)
from app.models import Order, OrderItem, Store, SubmissionTask
from app.services.supplier_submission import retry_failed

logger = logging.getLogger(__name__)
router = APIRouter()


def _order_summary(order: Order) -> dict:
    supplier_ids = {item.supplier_id for item in order.items if item.supplier_id}
    return {
        "id": order.id,
        "externalOrderRef": order.external_order_ref,
        "orderNumber": order.order_number,
        "customerEmail": order.customer_email,
        "totalAmount": float(order.total_amount or 0),
        "status": order.status.value,
        "supplierCount": len(supplier_ids),
        "itemCount": sum(item.quantity for item in order.items),
        "createdAt": order.created_at,
    }


def _get_order(db: Session, store: Store, order_id: str) -> Order:
    order = (
        db.query(Order)
        .options(
            joinedload(Order.items).joinedload(OrderItem.product),
            joinedload(Order.items).joinedload(OrderItem.supplier),
            joinedload(Order.submission_tasks).joinedload(SubmissionTask.supplier),
        )
        .filter(Order.id == order_id, Order.store_id == store.id)
        .first()
    )
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


@router.get("/recent", response_model=RecentOrdersResponse)
async def recent_orders(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    """Latest orders with supplier count"""
    orders = (
        db.query(Order)
        .options(joinedload(Order.items))
        .filter(Order.store_id == store.id)
        .order_by(Order.created_at.desc(), Order.id)
        .limit(limit)
        .all()
    )
    return {"orders": [_order_summary(o) for o in orders]}


@router.get("/{order_id}", response_model=OrderDetailEnvelope)
async def get_order(
    order_id: str,
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
):
    """Order detail: items with supplier and submission status"""
    order = _get_order(db, store, order_id)
    detail = _order_summary(order)
    detail.update({
        "shippingAddress": order.shipping_address,
        "routingDiagnostics": order.routing_diagnostics or [],
        "items": [
            {
                "id": item.id,
                "productId": item.product_id,
                "productTitle": item.product.title if item.product else None,
                "supplierId": item.supplier_id,
                "supplierName": item.supplier.name if item.supplier else None,
                "supplierSku": item.supplier_sku,
                "quantity": item.quantity,
                "unitCost": float(item.unit_cost),
                "totalCost": float(item.total_cost),
                "submissionStatus": item.submission_status.value,
                "submissionError": item.submission_error,
            }
            for item in order.items
        ],
        "submissions": [
            {
                "id": task.id,
                "supplierId": task.supplier_id,
                "supplierName": task.supplier.name if task.supplier else None,
                "status": task.status.value,
                "attempts": task.attempts,
                "maxAttempts": task.max_attempts,
                "nextAttemptAt": task.next_attempt_at,
                "lastError": task.last_error,
            }
            for task in order.submission_tasks
        ],
    })
    return {"order": detail}


@router.post("/{order_id}/retry-submission", response_model=RetrySubmissionResponse)
async def retry_submission(
    order_id: str,
    request: RetrySubmissionRequest = None,
    db: Session = Depends(get_db),
    store: Store = Depends(get_current_store),
    dispatcher=Depends(get_dispatcher),
):
    """Re-queue FAILED supplier submissions for this order (optionally one supplier)"""
    order = _get_order(db, store, order_id)
    supplier_id = request.supplierId if request else None
    task_ids = retry_failed(db, order.id, supplier_id)
    if not task_ids:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No failed submissions to retry")
    if dispatcher is not None:
        dispatcher.dispatch(task_ids)
    logger.info("Re-queued %s submission(s) for order %s", len(task_ids), order.id)
    return {"requeued": len(task_ids), "taskIds": task_ids}
