"""
Order persistence: route an inbound storefront order, then write Order + OrderItems +
one SubmissionTask per supplier bucket in a single transaction.

The storefront order id is the idempotency key; redelivery returns the stored order.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models import Order, OrderItem, OrderStatus, Store, SubmissionStatus, SubmissionTask, utcnow
from app.services.catalog_store import CatalogStore
from app.services.errors import CommitFailure
from app.services.order_router import LineItem, OrderRouter, RoutingDiagnostic, RoutingPlan
from app.services.supplier_submission import build_submission_payload

logger = logging.getLogger(__name__)


@dataclass
class OrderMetadata:
    order_number: Optional[str] = None
    customer_email: Optional[str] = None
    total_amount: Decimal = Decimal("0")
    shipping_address: Optional[dict] = None


@dataclass
class InboundOrder:
    """Storefront order event reduced to what routing needs."""
    external_order_ref: str
    metadata: OrderMetadata
    line_items: list[LineItem]


@dataclass
class CommitResult:
    order: Order
    created: bool
    task_ids: list[str] = field(default_factory=list)
    diagnostics: list[RoutingDiagnostic] = field(default_factory=list)


class OrderService:
    def __init__(self, db: Session, router: Optional[OrderRouter] = None, dispatcher=None):
        self.db = db
        self.router = router or OrderRouter(CatalogStore(db))
        self.dispatcher = dispatcher

    def find_existing(self, store_id: str, external_order_ref: str) -> Optional[Order]:
        return (
            self.db.query(Order)
            .filter(Order.store_id == store_id, Order.external_order_ref == external_order_ref)
            .first()
        )

    def commit_order(
        self,
        store_id: str,
        external_order_ref: str,
        metadata: OrderMetadata,
        plan: RoutingPlan,
    ) -> CommitResult:
        """
        Persist the routing decision atomically. Returns the existing order unchanged
        when one is already stored for this reference. Raises CommitFailure on storage errors.
        """
        existing = self.find_existing(store_id, external_order_ref)
        if existing:
            logger.info("Order %s already committed as %s; skipping", external_order_ref, existing.id)
            return CommitResult(order=existing, created=False)

        if not plan.buckets:
            raise ValueError("Routing plan has no buckets")

        try:
            order = Order(
                store_id=store_id,
                external_order_ref=external_order_ref,
                order_number=metadata.order_number,
                customer_email=metadata.customer_email,
                total_amount=Decimal(str(metadata.total_amount or 0)),
                shipping_address=metadata.shipping_address,
                status=OrderStatus.ROUTED,
                routing_diagnostics=[d.to_dict() for d in plan.diagnostics] or None,
            )
            self.db.add(order)
            self.db.flush()

            tasks = []
            written: dict[str, int] = {}
            for bucket in plan.buckets:
                for item in bucket.items:
                    written[item.product_id] = written.get(item.product_id, 0) + item.quantity
                    self.db.add(
                        OrderItem(
                            order_id=order.id,
                            product_id=item.product_id,
                            supplier_id=bucket.supplier_id,
                            quantity=item.quantity,
                            unit_cost=item.unit_cost,
                            total_cost=item.total_cost,
                            supplier_sku=item.supplier_sku,
                            submission_status=SubmissionStatus.PENDING,
                        )
                    )
                task = SubmissionTask(
                    order_id=order.id,
                    supplier_id=bucket.supplier_id,
                    status=SubmissionStatus.PENDING,
                    max_attempts=settings.SUBMISSION_MAX_ATTEMPTS,
                    next_attempt_at=utcnow(),
                    payload=build_submission_payload(order.id, bucket),
                )
                self.db.add(task)
                tasks.append(task)
            if written != plan.quantities_by_product():
                raise RuntimeError("Order item quantities do not match the routing plan")
            self.db.flush()
            task_ids = [t.id for t in tasks]
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            # Concurrent delivery of the same order won the insert
            existing = self.find_existing(store_id, external_order_ref)
            if existing:
                logger.info("Order %s committed concurrently as %s", external_order_ref, existing.id)
                return CommitResult(order=existing, created=False)
            logger.error("Commit of order %s failed: %s", external_order_ref, e)
            raise CommitFailure(external_order_ref, e) from e
        except (SQLAlchemyError, RuntimeError) as e:
            self.db.rollback()
            logger.error("Commit of order %s failed: %s", external_order_ref, e)
            raise CommitFailure(external_order_ref, e) from e

        self.db.refresh(order)
        logger.info(
            "Committed order %s (%s): %s item(s) across %s supplier(s), cost %s",
            order.id, external_order_ref, plan.total_items, len(plan.buckets), plan.total_cost,
        )
        return CommitResult(order=order, created=True, task_ids=task_ids, diagnostics=list(plan.diagnostics))

    def process_order(self, store: Store, inbound: InboundOrder) -> CommitResult:
        """
        Route and commit an inbound order, then dispatch supplier submissions.
        NoRoutableItemsError propagates with nothing written.
        """
        existing = self.find_existing(store.id, inbound.external_order_ref)
        if existing:
            logger.info("Duplicate delivery for order %s; returning %s", inbound.external_order_ref, existing.id)
            return CommitResult(order=existing, created=False)

        plan = self.router.route_order(inbound.line_items, store.id)
        result = self.commit_order(store.id, inbound.external_order_ref, inbound.metadata, plan)
        if result.created and self.dispatcher is not None:
            self.dispatcher.dispatch(result.task_ids)
        return result
