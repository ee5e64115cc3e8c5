"""
Supplier order submission via the submission_tasks outbox.

Tasks are written with the order. Each task is processed on its own: a failure for one
supplier never touches another supplier's task or the committed order/items routing data.
Retries back off exponentially up to max_attempts, after which the task is FAILED and escalated.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.models import Order, OrderItem, OrderStatus, SubmissionStatus, SubmissionTask, utcnow
from app.services.errors import SupplierSubmissionError
from app.services.http_client import post_no_retry
from app.services.suppliers import build_adapter

logger = logging.getLogger(__name__)


def build_submission_payload(order_id: str, bucket) -> dict:
    """Per-supplier sub-order: {supplierId, orderId, items: [{supplierSku, quantity, unitCost}]}."""
    return {
        "supplierId": bucket.supplier_id,
        "orderId": order_id,
        "items": [
            {"supplierSku": item.supplier_sku, "quantity": item.quantity, "unitCost": str(item.unit_cost)}
            for item in bucket.items
        ],
    }


def retry_delay(attempts: int) -> timedelta:
    base = settings.SUBMISSION_RETRY_BASE_SECONDS
    return timedelta(seconds=min(base * (2 ** max(attempts - 1, 0)), 6 * 60 * 60))


def stale_claim_age() -> timedelta:
    return timedelta(seconds=max(settings.SUPPLIER_SUBMIT_TIMEOUT * 2, 300))


async def escalate_failure(task: SubmissionTask, supplier_name: str, error: str) -> None:
    """Terminal failure: always logged at ERROR, and posted to ALERT_WEBHOOK_URL when set."""
    logger.error(
        "Submission to %s for order %s failed permanently after %s attempt(s): %s",
        supplier_name, task.order_id, task.attempts, error,
    )
    url = (settings.ALERT_WEBHOOK_URL or "").strip()
    if not url:
        return
    try:
        await post_no_retry(
            url,
            json={
                "text": f"Supplier submission failed: {supplier_name} / order {task.order_id}: {error}",
                "orderId": task.order_id,
                "supplier": supplier_name,
                "taskId": task.id,
                "attempts": task.attempts,
            },
            timeout=10.0,
        )
    except Exception as e:
        logger.warning("Alert webhook post failed: %s", e)


def roll_up_order_status(db: Session, order_id: str) -> Optional[OrderStatus]:
    """Derive Order.status from its submission tasks."""
    # sessions run with autoflush off; the status query must see pending task changes
    db.flush()
    order = db.get(Order, order_id)
    if order is None:
        return None
    statuses = [s for (s,) in db.query(SubmissionTask.status).filter(SubmissionTask.order_id == order_id).all()]
    if not statuses:
        return order.status
    submitted = sum(1 for s in statuses if s == SubmissionStatus.SUBMITTED)
    failed = sum(1 for s in statuses if s == SubmissionStatus.FAILED)
    if submitted == len(statuses):
        order.status = OrderStatus.SUBMITTED
    elif failed:
        order.status = OrderStatus.PARTIALLY_SUBMITTED if submitted else OrderStatus.SUBMISSION_FAILED
    elif submitted:
        order.status = OrderStatus.PARTIALLY_SUBMITTED
    else:
        order.status = OrderStatus.ROUTED
    return order.status


def _task_items(db: Session, task: SubmissionTask):
    return db.query(OrderItem).filter(
        OrderItem.order_id == task.order_id,
        OrderItem.supplier_id == task.supplier_id,
    )


def retry_failed(db: Session, order_id: str, supplier_id: Optional[str] = None) -> list[str]:
    """Re-queue FAILED tasks of an order (optionally one supplier). Returns re-queued task ids."""
    query = db.query(SubmissionTask).filter(
        SubmissionTask.order_id == order_id,
        SubmissionTask.status == SubmissionStatus.FAILED,
    )
    if supplier_id:
        query = query.filter(SubmissionTask.supplier_id == supplier_id)
    now = utcnow()
    task_ids = []
    for task in query.all():
        task.status = SubmissionStatus.PENDING
        task.attempts = 0
        task.next_attempt_at = now
        task.claimed_at = None
        for item in _task_items(db, task).all():
            item.submission_status = SubmissionStatus.PENDING
        task_ids.append(task.id)
    roll_up_order_status(db, order_id)
    db.commit()
    return task_ids


class SubmissionProcessor:
    """Runs single submission attempts against supplier adapters."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        adapter_factory: Callable = build_adapter,
    ):
        self.session_factory = session_factory
        self.adapter_factory = adapter_factory

    def _claim(self, db: Session, task_id: str) -> bool:
        now = utcnow()
        claimable = or_(
            SubmissionTask.status == SubmissionStatus.PENDING,
            and_(
                SubmissionTask.status == SubmissionStatus.IN_FLIGHT,
                SubmissionTask.claimed_at < now - stale_claim_age(),
            ),
        )
        updated = (
            db.query(SubmissionTask)
            .filter(SubmissionTask.id == task_id, claimable)
            .update(
                {
                    SubmissionTask.status: SubmissionStatus.IN_FLIGHT,
                    SubmissionTask.claimed_at: now,
                    SubmissionTask.attempts: SubmissionTask.attempts + 1,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        return updated == 1

    async def process_task(self, task_id: str) -> Optional[SubmissionStatus]:
        """One attempt for one task. Returns the task status afterwards (None if not claimable)."""
        db = self.session_factory()
        try:
            if not self._claim(db, task_id):
                return None
            task = db.get(SubmissionTask, task_id)
            supplier = task.supplier
            supplier_name = supplier.name if supplier else task.supplier_id

            error = None
            retryable = True
            try:
                adapter = self.adapter_factory(supplier)
                await asyncio.wait_for(adapter.submit_order(task.payload), timeout=settings.SUPPLIER_SUBMIT_TIMEOUT)
            except asyncio.TimeoutError:
                error = f"timed out after {settings.SUPPLIER_SUBMIT_TIMEOUT:.0f}s"
            except SupplierSubmissionError as e:
                error = str(e)
                retryable = e.retryable
            except Exception as e:
                logger.exception("Submission to %s raised unexpectedly", supplier_name)
                error = f"{type(e).__name__}: {e}"

            items = _task_items(db, task).all()
            if error is None:
                task.status = SubmissionStatus.SUBMITTED
                task.last_error = None
                for item in items:
                    item.submission_status = SubmissionStatus.SUBMITTED
                    item.submission_error = None
                logger.info("Submitted order %s to %s (attempt %s)", task.order_id, supplier_name, task.attempts)
            elif retryable and task.attempts < task.max_attempts:
                task.status = SubmissionStatus.PENDING
                task.last_error = error[:500]
                task.next_attempt_at = utcnow() + retry_delay(task.attempts)
                for item in items:
                    item.submission_error = error[:500]
                logger.warning(
                    "Submission to %s for order %s failed (attempt %s/%s): %s",
                    supplier_name, task.order_id, task.attempts, task.max_attempts, error,
                )
            else:
                task.status = SubmissionStatus.FAILED
                task.last_error = error[:500]
                for item in items:
                    item.submission_status = SubmissionStatus.FAILED
                    item.submission_error = error[:500]

            roll_up_order_status(db, task.order_id)
            db.commit()
            if task.status == SubmissionStatus.FAILED:
                await escalate_failure(task, supplier_name, error)
            return task.status
        finally:
            db.close()

    def due_task_ids(self, limit: int = 50) -> list[str]:
        db = self.session_factory()
        try:
            now = utcnow()
            rows = (
                db.query(SubmissionTask.id)
                .filter(
                    or_(
                        and_(
                            SubmissionTask.status == SubmissionStatus.PENDING,
                            or_(SubmissionTask.next_attempt_at.is_(None), SubmissionTask.next_attempt_at <= now),
                        ),
                        and_(
                            SubmissionTask.status == SubmissionStatus.IN_FLIGHT,
                            SubmissionTask.claimed_at < now - stale_claim_age(),
                        ),
                    )
                )
                .order_by(SubmissionTask.created_at, SubmissionTask.id)
                .limit(limit)
                .all()
            )
            return [task_id for (task_id,) in rows]
        finally:
            db.close()

    async def process_due_tasks(self, limit: int = 50) -> dict:
        """Worker pass: attempt every due task concurrently; one failure never aborts the others."""
        task_ids = self.due_task_ids(limit)
        if not task_ids:
            return {"success": True, "processed": 0, "submitted": 0, "failed": 0, "retrying": 0}
        results = await asyncio.gather(*(self.process_task(tid) for tid in task_ids), return_exceptions=True)
        summary = {"success": True, "processed": len(task_ids), "submitted": 0, "failed": 0, "retrying": 0, "errors": 0}
        for task_id, result in zip(task_ids, results):
            if isinstance(result, Exception):
                logger.error("Submission task %s crashed: %s", task_id, result)
                summary["errors"] += 1
            elif result == SubmissionStatus.SUBMITTED:
                summary["submitted"] += 1
            elif result == SubmissionStatus.FAILED:
                summary["failed"] += 1
            elif result == SubmissionStatus.PENDING:
                summary["retrying"] += 1
        summary["message"] = (
            f"{summary['processed']} task(s): {summary['submitted']} submitted, "
            f"{summary['retrying']} retrying, {summary['failed']} failed"
        )
        return summary


class SubmissionDispatcher:
    """Fire-and-forget scheduling of submission attempts right after an order commit."""

    def __init__(self, processor: Optional[SubmissionProcessor] = None):
        self.processor = processor or SubmissionProcessor()
        self._inflight: set = set()

    def dispatch(self, task_ids: list[str]) -> int:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.info("No running event loop; %s submission task(s) left for the outbox worker", len(task_ids))
            return 0
        for task_id in task_ids:
            fut = loop.create_task(self._run(task_id))
            self._inflight.add(fut)
            fut.add_done_callback(self._inflight.discard)
        return len(task_ids)

    async def _run(self, task_id: str) -> None:
        try:
            await self.processor.process_task(task_id)
        except Exception:
            # Task stays claimable; the outbox worker picks it up once the claim goes stale
            logger.exception("Background submission of task %s crashed", task_id)


_dispatcher: Optional[SubmissionDispatcher] = None


def get_submission_dispatcher() -> SubmissionDispatcher:
    """FastAPI dependency returning the process-wide dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = SubmissionDispatcher()
    return _dispatcher
