"""
Supplier adapter tests: feed parsing, adapter selection, credentials and HTTP error mapping.
No network: the shared HTTP helpers are monkeypatched per module.
"""
import asyncio
from decimal import Decimal

import httpx
import pytest

from app.models import Supplier, SupplierType
from app.services.credentials import get_supplier_credentials, set_supplier_credentials
from app.services.errors import SupplierFetchError, SupplierSubmissionError
from app.services.suppliers import (
    EldoradoAdapter,
    HoneysPlaceAdapter,
    NalpacAdapter,
    build_adapter,
    eldorado,
    honeysplace,
    nalpac,
)
from app.services.suppliers.eldorado import build_order_tsv, parse_tsv
from app.services.suppliers.honeysplace import parse_feed_body

PAYLOAD = {
    "supplierId": "sup-1",
    "orderId": "order-1",
    "items": [
        {"supplierSku": "X-1", "quantity": 2, "unitCost": "4.50"},
        {"supplierSku": "X-2", "quantity": 1, "unitCost": "9.00"},
    ],
}


class TestFeedParsing:
    def test_honeysplace_csv(self):
        body = "sku,name,price,qty\r\nHP-1,Lotion,3.25,12\r\nHP-2,Oil,4.00,0\r\n"
        rows = parse_feed_body(body, "csv")
        assert rows == [
            {"sku": "HP-1", "name": "Lotion", "price": "3.25", "qty": "12"},
            {"sku": "HP-2", "name": "Oil", "price": "4.00", "qty": "0"},
        ]

    def test_honeysplace_xml(self):
        body = (
            "<products>"
            "<product><sku>HP-1</sku><price> 3.25 </price><qty>12</qty></product>"
            "<product><sku>HP-2</sku><price>4.00</price><qty/></product>"
            "</products>"
        )
        rows = parse_feed_body(body, "XML")
        assert rows == [{"sku": "HP-1", "price": "3.25", "qty": "12"}, {"sku": "HP-2", "price": "4.00", "qty": ""}]

    def test_honeysplace_xml_skips_comments_and_namespaces(self):
        body = (
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<feed xmlns="urn:honeysplace"><!-- generated nightly -->'
            "<product><sku>HP-1</sku><!-- legacy --><qty>2</qty></product>"
            "</feed>"
        )
        assert parse_feed_body(body, "xml") == [{"sku": "HP-1", "qty": "2"}]

    def test_honeysplace_unknown_format(self):
        with pytest.raises(ValueError):
            parse_feed_body("", "yaml")

    def test_eldorado_tsv_round_trip_of_order_file(self):
        assert build_order_tsv(PAYLOAD) == "order_id\tsku\tquantity\norder-1\tX-1\t2\norder-1\tX-2\t1\n"
        rows = parse_tsv("item_number\twholesale\tqty_available\r\nE-1\t2.10\t5\r\n")
        assert rows == [{"item_number": "E-1", "wholesale": "2.10", "qty_available": "5"}]


class TestBuildAdapter:
    @pytest.mark.parametrize("supplier_type, adapter_cls", [
        (SupplierType.REST_API, NalpacAdapter),
        (SupplierType.DATA_FEED, HoneysPlaceAdapter),
        (SupplierType.SFTP, EldoradoAdapter),
    ])
    def test_adapter_follows_supplier_type(self, supplier_type, adapter_cls):
        supplier = Supplier(name="acme", type=supplier_type)
        adapter = build_adapter(supplier)
        assert isinstance(adapter, adapter_cls)
        assert adapter.supplier_name == "acme"
        assert adapter.credentials == {}

    def test_credentials_are_decrypted_for_the_adapter(self):
        supplier = Supplier(name="nalpac", type=SupplierType.REST_API)
        set_supplier_credentials(supplier, {"apiToken": "secret-token"})

        assert "secret-token" not in supplier.credentials_encrypted
        assert get_supplier_credentials(supplier) == {"apiToken": "secret-token"}
        assert build_adapter(supplier).credentials == {"apiToken": "secret-token"}

    def test_unreadable_credentials_are_treated_as_unset(self):
        supplier = Supplier(name="nalpac", type=SupplierType.REST_API, credentials_encrypted="garbage")
        assert get_supplier_credentials(supplier) == {}


def fake_get(response):
    calls = []

    async def _get(url, **kwargs):
        calls.append((url, kwargs))
        if isinstance(response, Exception):
            raise response
        return response

    _get.calls = calls
    return _get


def fake_post(response):
    calls = []

    async def _post(url, **kwargs):
        calls.append((url, kwargs))
        if isinstance(response, Exception):
            raise response
        return response

    _post.calls = calls
    return _post


class TestNalpac:
    def adapter(self):
        return NalpacAdapter("nalpac", {"apiToken": "tok"}, base_url="https://nalpac.test/api/")

    def test_fetch_catalog(self, monkeypatch):
        get = fake_get(httpx.Response(200, json={"products": [
            {"sku": "N-1", "name": "Candle", "price": "4.20", "qty": 3, "upc": "111"},
            {"sku": "N-2"},
        ]}))
        monkeypatch.setattr(nalpac, "get_with_retry", get)

        items = asyncio.run(self.adapter().fetch_catalog())

        assert [(i.sku, i.cost, i.inventory, i.upc) for i in items] == [("N-1", Decimal("4.20"), 3, "111")]
        url, kwargs = get.calls[0]
        assert url == "https://nalpac.test/api/products"
        assert kwargs["headers"]["Authorization"] == "Bearer tok"

    def test_fetch_without_token_fails(self):
        with pytest.raises(SupplierFetchError):
            asyncio.run(NalpacAdapter("nalpac", {}).fetch_catalog())

    def test_fetch_http_error_status(self, monkeypatch):
        monkeypatch.setattr(nalpac, "get_with_retry", fake_get(httpx.Response(401, text="bad token")))
        with pytest.raises(SupplierFetchError, match="401"):
            asyncio.run(self.adapter().fetch_catalog())

    def test_submit_order_posts_lines(self, monkeypatch):
        post = fake_post(httpx.Response(201, json={"id": "NP-555"}))
        monkeypatch.setattr(nalpac, "post_no_retry", post)

        result = asyncio.run(self.adapter().submit_order(PAYLOAD))

        assert result == {"success": True, "supplierOrderId": "NP-555"}
        url, kwargs = post.calls[0]
        assert url == "https://nalpac.test/api/orders"
        assert kwargs["json"]["lines"] == [{"sku": "X-1", "quantity": 2}, {"sku": "X-2", "quantity": 1}]

    @pytest.mark.parametrize("status, retryable", [(500, True), (429, True), (400, False)])
    def test_submit_error_status_sets_retryable(self, monkeypatch, status, retryable):
        monkeypatch.setattr(nalpac, "post_no_retry", fake_post(httpx.Response(status, text="nope")))
        with pytest.raises(SupplierSubmissionError) as exc:
            asyncio.run(self.adapter().submit_order(PAYLOAD))
        assert exc.value.retryable is retryable

    def test_submit_connection_error_is_retryable(self, monkeypatch):
        monkeypatch.setattr(nalpac, "post_no_retry", fake_post(httpx.ConnectError("refused")))
        with pytest.raises(SupplierSubmissionError) as exc:
            asyncio.run(self.adapter().submit_order(PAYLOAD))
        assert exc.value.retryable is True

    def test_connection_check(self, monkeypatch):
        monkeypatch.setattr(nalpac, "get_with_retry", fake_get(httpx.Response(200, json=[])))
        assert asyncio.run(self.adapter().test_connection())["success"] is True


class TestHoneysPlace:
    def test_fetch_csv_feed(self, monkeypatch):
        get = fake_get(httpx.Response(200, text="sku,price,qty\nHP-1,3.25,12\n"))
        monkeypatch.setattr(honeysplace, "get_with_retry", get)
        adapter = HoneysPlaceAdapter(
            "honeysplace", {"apiToken": "abc", "feedFormat": "CSV"}, feed_url="https://feed.test/"
        )

        items = asyncio.run(adapter.fetch_catalog())

        assert [(i.sku, i.cost, i.inventory) for i in items] == [("HP-1", Decimal("3.25"), 12)]
        assert get.calls[0][0] == "https://feed.test/abc/csv"

    def test_unknown_format_falls_back_to_json(self):
        adapter = HoneysPlaceAdapter("honeysplace", {"feedFormat": "yaml"})
        assert adapter.feed_format == "json"

    def test_missing_token(self):
        with pytest.raises(SupplierFetchError):
            asyncio.run(HoneysPlaceAdapter("honeysplace", {}).fetch_catalog())

    def test_unparseable_feed(self, monkeypatch):
        monkeypatch.setattr(honeysplace, "get_with_retry", fake_get(httpx.Response(200, text="<products>")))
        adapter = HoneysPlaceAdapter("honeysplace", {"apiToken": "abc", "feedFormat": "xml"})
        with pytest.raises(SupplierFetchError, match="parsed"):
            asyncio.run(adapter.fetch_catalog())

    def test_submit_without_order_endpoint_is_not_retryable(self):
        adapter = HoneysPlaceAdapter("honeysplace", {"apiToken": "abc"})
        with pytest.raises(SupplierSubmissionError) as exc:
            asyncio.run(adapter.submit_order(PAYLOAD))
        assert exc.value.retryable is False


class TestEldorado:
    def test_missing_credentials(self):
        with pytest.raises(SupplierFetchError, match="credentials"):
            asyncio.run(EldoradoAdapter("eldorado", {}).fetch_catalog())

    def test_fetch_parses_downloaded_tsv(self, monkeypatch):
        adapter = EldoradoAdapter("eldorado", {"username": "u", "password": "p"})
        monkeypatch.setattr(adapter, "_download_feed", lambda: "item_number\twholesale\tqty_available\nE-1\t2.10\t5\n")

        items = asyncio.run(adapter.fetch_catalog())
        assert [(i.sku, i.cost, i.inventory) for i in items] == [("E-1", Decimal("2.10"), 5)]

    def test_download_failure_maps_to_fetch_error(self, monkeypatch):
        adapter = EldoradoAdapter("eldorado", {"username": "u", "password": "p"})

        def refuse():
            raise OSError("connection refused")

        monkeypatch.setattr(adapter, "_download_feed", refuse)
        with pytest.raises(SupplierFetchError, match="refused"):
            asyncio.run(adapter.fetch_catalog())

    def test_upload_failure_is_retryable(self, monkeypatch):
        adapter = EldoradoAdapter("eldorado", {"username": "u", "password": "p"})

        def refuse(payload):
            raise OSError("connection reset")

        monkeypatch.setattr(adapter, "_upload_order", refuse)
        with pytest.raises(SupplierSubmissionError) as exc:
            asyncio.run(adapter.submit_order(PAYLOAD))
        assert exc.value.retryable is True

    def test_credentials_override_host(self):
        adapter = EldoradoAdapter("eldorado", {"host": "sftp.example.com", "port": "2222"})
        assert adapter.host == "sftp.example.com"
        assert adapter.port == 2222
        assert eldorado.ORDER_DIR == "/orders"
