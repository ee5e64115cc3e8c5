"""
Order persistence tests: atomic commit, idempotency, failure leaves nothing behind
"""
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from app.models import Order, OrderItem, OrderStatus, SubmissionStatus, SubmissionTask
from app.services.errors import CommitFailure, NoRoutableItemsError
from app.services.order_router import LineItem
from app.services.order_service import InboundOrder, OrderMetadata, OrderService


def inbound(ref="5001", items=None):
    return InboundOrder(
        external_order_ref=ref,
        metadata=OrderMetadata(order_number="#1001", customer_email="buyer@example.com", total_amount=Decimal("59.90")),
        line_items=items if items is not None else [LineItem("A", 2), LineItem("B", 1)],
    )


@pytest.fixture
def catalog(make_product):
    return {
        "A": make_product("A", {"nalpac": ("10.00", 5), "eldorado": ("11.00", 5)}),
        "B": make_product("B", {"eldorado": ("6.50", 5)}),
    }


class TestProcessOrder:
    def test_commits_order_items_and_one_task_per_supplier(self, db_session, store, catalog, dispatcher):
        result = OrderService(db_session, dispatcher=dispatcher).process_order(store, inbound())

        assert result.created is True
        order = db_session.query(Order).one()
        assert order.id == result.order.id
        assert order.status == OrderStatus.ROUTED
        assert order.order_number == "#1001"
        assert order.total_amount == Decimal("59.90")

        items = db_session.query(OrderItem).order_by(OrderItem.unit_cost.desc()).all()
        assert [(i.quantity, i.unit_cost, i.total_cost) for i in items] == [
            (2, Decimal("10.00"), Decimal("20.00")),
            (1, Decimal("6.50"), Decimal("6.50")),
        ]
        assert all(i.submission_status == SubmissionStatus.PENDING for i in items)

        tasks = db_session.query(SubmissionTask).all()
        assert len(tasks) == 2
        assert sorted(t.id for t in tasks) == sorted(result.task_ids)
        assert dispatcher.calls == [result.task_ids]

    def test_item_totals_match_routing_plan(self, db_session, store, catalog):
        service = OrderService(db_session)
        plan = service.router.route_order(inbound().line_items, store.id)
        result = service.commit_order(store.id, "5002", OrderMetadata(), plan)

        items = db_session.query(OrderItem).filter(OrderItem.order_id == result.order.id).all()
        assert sum(i.total_cost for i in items) == plan.total_cost == Decimal("26.50")
        assert sum(i.quantity for i in items) == plan.total_items == 3

    def test_task_payload_is_the_supplier_sub_order(self, db_session, store, suppliers, catalog):
        result = OrderService(db_session).process_order(store, inbound(items=[LineItem("B", 3)]))

        task = db_session.query(SubmissionTask).one()
        assert task.supplier_id == suppliers["eldorado"].id
        assert task.payload == {
            "supplierId": suppliers["eldorado"].id,
            "orderId": result.order.id,
            "items": [{"supplierSku": "ELDORADO-B", "quantity": 3, "unitCost": "6.5000"}],
        }

    def test_redelivery_returns_existing_order(self, db_session, store, catalog, dispatcher):
        service = OrderService(db_session, dispatcher=dispatcher)

        first = service.process_order(store, inbound())
        second = service.process_order(store, inbound())

        assert second.created is False
        assert second.order.id == first.order.id
        assert db_session.query(Order).count() == 1
        assert db_session.query(OrderItem).count() == 2
        assert db_session.query(SubmissionTask).count() == 2
        assert len(dispatcher.calls) == 1

    def test_unroutable_order_writes_nothing(self, db_session, store, catalog):
        with pytest.raises(NoRoutableItemsError):
            OrderService(db_session).process_order(store, inbound(items=[LineItem("NOPE", 1)]))
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderItem).count() == 0

    def test_partial_order_keeps_diagnostics(self, db_session, store, catalog):
        result = OrderService(db_session).process_order(
            store, inbound(items=[LineItem("A", 1), LineItem("NOPE", 2)])
        )
        assert result.order.routing_diagnostics == [
            {"index": 1, "productRef": "NOPE", "code": "PRODUCT_NOT_FOUND", "detail": None}
        ]
        assert db_session.query(OrderItem).count() == 1


class TestCommitOrder:
    def test_storage_failure_rolls_back_everything(self, db_session, store, catalog, monkeypatch):
        service = OrderService(db_session)
        plan = service.router.route_order(inbound().line_items, store.id)

        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "commit", failing_commit)
        with pytest.raises(CommitFailure) as exc:
            service.commit_order(store.id, "5003", OrderMetadata(), plan)
        monkeypatch.undo()

        assert exc.value.external_order_ref == "5003"
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderItem).count() == 0
        assert db_session.query(SubmissionTask).count() == 0

    def test_concurrent_duplicate_insert_returns_winner(self, db_session, store, catalog):
        winner = Order(store_id=store.id, external_order_ref="5004", total_amount=Decimal("1"))
        db_session.add(winner)
        db_session.commit()

        service = OrderService(db_session)
        plan = service.router.route_order(inbound().line_items, store.id)
        real_find = service.find_existing
        calls = []

        def racing_find(store_id, ref):
            # First check misses, as if the other delivery committed just after it
            calls.append(ref)
            return None if len(calls) == 1 else real_find(store_id, ref)

        service.find_existing = racing_find
        result = service.commit_order(store.id, "5004", OrderMetadata(), plan)

        assert result.created is False
        assert result.order.id == winner.id
        assert db_session.query(Order).count() == 1
        assert db_session.query(OrderItem).count() == 0

    def test_empty_plan_is_rejected(self, db_session, store):
        from app.services.order_router import RoutingPlan

        with pytest.raises(ValueError):
            OrderService(db_session).commit_order(store.id, "5005", OrderMetadata(), RoutingPlan(buckets=[]))
