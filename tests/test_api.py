"""
Dashboard API tests: orders, suppliers, products, health
"""
import csv
import io

import pytest

from app.models import Product, SubmissionStatus, SubmissionTask
from app.services.order_router import LineItem
from app.services.order_service import InboundOrder, OrderMetadata, OrderService
from app.services.suppliers.base import FeedItem
from conftest import FakeAdapter


class TestStoreResolution:
    def test_missing_shop(self, client, store):
        assert client.get("/api/suppliers").status_code == 400

    def test_unknown_shop(self, client, store):
        response = client.get("/api/suppliers", headers={"X-Shopify-Shop-Domain": "nobody.myshopify.com"})
        assert response.status_code == 404

    def test_shop_query_parameter(self, client, store, suppliers):
        assert client.get("/api/suppliers", params={"shop": store.shop_domain}).status_code == 200

    def test_inactive_store(self, client, db_session, store, shop_headers):
        store.is_active = False
        db_session.commit()
        assert client.get("/api/suppliers", headers=shop_headers).status_code == 403


@pytest.fixture
def placed_order(db_session, store, make_product):
    make_product("A", {"eldorado": ("5.00", 5)}, title="Candle")
    make_product("B", {"nalpac": ("3.00", 5)}, title="Oil")
    result = OrderService(db_session).process_order(
        store,
        InboundOrder("8001", OrderMetadata(order_number="#8001"), [LineItem("A", 1), LineItem("B", 2)]),
    )
    return result.order


class TestOrders:
    def test_recent_orders(self, client, shop_headers, placed_order):
        response = client.get("/api/orders/recent", headers=shop_headers)

        assert response.status_code == 200
        orders = response.json()["orders"]
        assert len(orders) == 1
        assert orders[0]["id"] == placed_order.id
        assert orders[0]["supplierCount"] == 2
        assert orders[0]["itemCount"] == 3
        assert orders[0]["status"] == "ROUTED"

    def test_order_detail(self, client, shop_headers, placed_order):
        response = client.get(f"/api/orders/{placed_order.id}", headers=shop_headers)

        assert response.status_code == 200
        order = response.json()["order"]
        assert order["orderNumber"] == "#8001"
        assert sorted((i["supplierName"], i["productTitle"], i["quantity"]) for i in order["items"]) == [
            ("eldorado", "Candle", 1),
            ("nalpac", "Oil", 2),
        ]
        assert {s["status"] for s in order["submissions"]} == {"PENDING"}

    def test_order_from_other_store_is_hidden(self, client, db_session, placed_order):
        from app.models import Store

        db_session.add(Store(shop_domain="other.myshopify.com"))
        db_session.commit()
        response = client.get(
            f"/api/orders/{placed_order.id}", headers={"X-Shopify-Shop-Domain": "other.myshopify.com"}
        )
        assert response.status_code == 404

    def test_retry_without_failures_conflicts(self, client, shop_headers, placed_order):
        response = client.post(f"/api/orders/{placed_order.id}/retry-submission", headers=shop_headers)
        assert response.status_code == 409

    def test_retry_requeues_failed_supplier(self, client, db_session, shop_headers, placed_order, suppliers, dispatcher):
        for task in db_session.query(SubmissionTask).all():
            task.status = SubmissionStatus.FAILED
        db_session.commit()

        response = client.post(
            f"/api/orders/{placed_order.id}/retry-submission",
            json={"supplierId": suppliers["nalpac"].id},
            headers=shop_headers,
        )

        assert response.status_code == 200
        assert response.json()["requeued"] == 1
        assert dispatcher.calls == [response.json()["taskIds"]]
        db_session.expire_all()
        statuses = {t.supplier_id: t.status for t in db_session.query(SubmissionTask).all()}
        assert statuses[suppliers["nalpac"].id] == SubmissionStatus.PENDING
        assert statuses[suppliers["eldorado"].id] == SubmissionStatus.FAILED


class TestSuppliers:
    def test_list_with_product_counts(self, client, shop_headers, suppliers, make_product):
        make_product("A", {"nalpac": ("1.00", 1), "eldorado": ("1.10", 1)})
        make_product("B", {"nalpac": ("2.00", 1)})

        data = client.get("/api/suppliers", headers=shop_headers).json()["suppliers"]

        counts = {s["name"]: s["productCount"] for s in data}
        assert counts == {"eldorado": 1, "honeysplace": 0, "nalpac": 2}
        assert data[0]["syncStatus"] == "NEVER"

    def test_sync_all_reports_each_supplier(self, client, shop_headers, suppliers, fake_adapters):
        fake_adapters.registry["eldorado"] = FakeAdapter("eldorado", fetch_error="SFTP down")
        fake_adapters.registry["nalpac"] = FakeAdapter("nalpac", items=[
            FeedItem(sku="N-1", title="Candle", cost=1, inventory=2, supplier_sku="N-1")
        ])

        response = client.post("/api/suppliers/sync-all", headers=shop_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert {r["supplier"]: r["status"] for r in data["results"]} == {
            "eldorado": "error",
            "honeysplace": "success",
            "nalpac": "success",
        }

        status = {s["name"]: s for s in client.get("/api/suppliers/sync-status", headers=shop_headers).json()["suppliers"]}
        assert status["eldorado"]["status"] == "error"
        assert status["nalpac"]["recordsProcessed"] == 1

    def test_connection_check(self, client, shop_headers, suppliers, fake_adapters):
        fake_adapters.registry["honeysplace"] = FakeAdapter("honeysplace", fetch_error="bad token")

        response = client.post(f"/api/suppliers/{suppliers['honeysplace'].id}/test", headers=shop_headers)

        assert response.json() == {"success": False, "message": "bad token"}

    def test_connection_check_unknown_supplier(self, client, shop_headers, suppliers):
        assert client.post("/api/suppliers/nope/test", headers=shop_headers).status_code == 404


class TestProducts:
    @pytest.fixture
    def catalog(self, make_product):
        return [
            make_product("A", {"nalpac": ("4.00", 2), "eldorado": ("3.50", 0)}, title="Candle", upc="111", category="Home"),
            make_product("B", {"honeysplace": ("9.00", 1)}, title="Oil", category="Bath"),
        ]

    def test_list_with_offers_cheapest_first(self, client, shop_headers, catalog):
        data = client.get("/api/products", headers=shop_headers).json()

        assert [p["title"] for p in data["products"]] == ["Candle", "Oil"]
        assert [o["supplier"] for o in data["products"][0]["suppliers"]] == ["eldorado", "nalpac"]
        assert data["page"] == 1

    def test_list_filters(self, client, shop_headers, catalog):
        data = client.get("/api/products", params={"category": "Bath"}, headers=shop_headers).json()
        assert [p["title"] for p in data["products"]] == ["Oil"]
        data = client.get("/api/products", params={"supplier": "nalpac"}, headers=shop_headers).json()
        assert [p["title"] for p in data["products"]] == ["Candle"]

    def test_invalid_paging_is_a_bad_request(self, client, shop_headers, catalog):
        assert client.get("/api/products", params={"page": 0}, headers=shop_headers).status_code == 400

    def test_export_csv(self, client, shop_headers, catalog):
        response = client.get("/api/products/export", headers=shop_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "intimasync-products.csv" in response.headers["content-disposition"]
        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == [
            "Title", "UPC", "Category", "MSRP",
            "Eldorado Cost", "Eldorado Inventory",
            "Honey's Place Cost", "Honey's Place Inventory",
            "Nalpac Cost", "Nalpac Inventory",
        ]
        assert rows[1] == ["Candle", "111", "Home", "", "3.5000", "0", "", "", "4.0000", "2"]

    def test_import_assigns_cheapest_supplier_sku(self, client, db_session, shop_headers, catalog):
        product_id = catalog[0].id
        catalog[0].internal_sku = None
        db_session.commit()

        response = client.post(
            f"/api/products/{product_id}/import",
            json={"shopifyProductId": "9001", "addToFavorites": True},
            headers=shop_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["internalSku"] == "ELDORADO-A"
        assert data["shopifyProductId"] == "9001"
        assert data["isFavorite"] is True
        assert data["importedAt"] is not None

    def test_import_conflicting_sku(self, client, shop_headers, catalog):
        response = client.post(
            f"/api/products/{catalog[0].id}/import", json={"internalSku": "B"}, headers=shop_headers
        )
        assert response.status_code == 409

    def test_import_unknown_product(self, client, shop_headers, catalog):
        assert client.post("/api/products/nope/import", headers=shop_headers).status_code == 404

    def test_favorite_toggle_and_set(self, client, db_session, shop_headers, catalog):
        product_id = catalog[0].id
        url = f"/api/products/{product_id}/favorite"

        assert client.patch(url, headers=shop_headers).json() == {"id": product_id, "isFavorite": True}
        assert client.patch(url, json={"isFavorite": True}, headers=shop_headers).json()["isFavorite"] is True
        assert client.patch(url, headers=shop_headers).json()["isFavorite"] is False
        db_session.expire_all()
        assert db_session.get(Product, product_id).is_favorite is False

    def test_favorite_unknown_product(self, client, shop_headers, catalog):
        assert client.patch("/api/products/nope/favorite", headers=shop_headers).status_code == 404


def test_health_reports_outbox_backlog(client, placed_order):
    data = client.get("/health").json()
    assert data["service"] == "api"
    assert data["db"] == "ok"
    assert data["outbox"] == {"PENDING": 2}
    assert set(data["workers"]) == {"submission_outbox", "supplier_sync"}
