import asyncio
import json

import httpx
import pytest

from pos_gateway.backend import OrderBy, RestBackendClient, eq, ilike, in_, is_null
from pos_gateway.backend.rest import encode_filter, encode_order
from pos_gateway.exceptions import BackendError


def _client(handler) -> RestBackendClient:
    return RestBackendClient(
        base_url="https://project.example.co",
        api_key="anon-key",
        service_key="service-key",
        transport=httpx.MockTransport(handler),
    )


def test_encode_filters():
    assert encode_filter(eq("is_active", True)) == ("is_active", "eq.true")
    assert encode_filter(in_("status", ["pending", "ready"])) == ("status", "in.(pending,ready)")
    assert encode_filter(ilike("order_number", "%12%")) == ("order_number", "ilike.*12*")
    assert encode_filter(is_null("current_order_id")) == ("current_order_id", "is.null")
    assert encode_order([OrderBy("category"), OrderBy("created_at", descending=True)]) == (
        "category.asc,created_at.desc"
    )


def test_missing_configuration():
    with pytest.raises(ValueError):
        RestBackendClient(base_url="", api_key="")


def test_select_builds_query():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["headers"] = request.headers
        return httpx.Response(200, json=[{"id": "o-1"}])

    client = _client(handler)
    rows = asyncio.run(client.select(
        "orders",
        "*, order_items(*)",
        filters=[in_("status", ["pending", "preparing"])],
        order=[OrderBy("created_at")],
        limit=5,
    ))

    assert rows == [{"id": "o-1"}]
    assert seen["url"].path == "/rest/v1/orders"
    assert seen["url"].params["select"] == "*,order_items(*)"
    assert seen["url"].params["status"] == "in.(pending,preparing)"
    assert seen["url"].params["order"] == "created_at.asc"
    assert seen["url"].params["limit"] == "5"
    assert seen["headers"]["apikey"] == "anon-key"
    assert seen["headers"]["authorization"] == "Bearer service-key"


def test_rpc_posts_named_params_and_decodes_text_payload():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/rest/v1/rpc/adjust_inventory_stock"
        assert json.loads(request.content) == {"p_item_id": "inv-1", "p_quantity": 2}
        return httpx.Response(200, json=json.dumps({"success": True, "new_stock": 7}))

    result = asyncio.run(_client(handler).rpc(
        "adjust_inventory_stock", {"p_item_id": "inv-1", "p_quantity": 2}
    ))
    assert result == {"success": True, "new_stock": 7}


def test_error_response_becomes_backend_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"message": "Insufficient stock for Lemon", "code": "P0001", "details": None},
        )

    with pytest.raises(BackendError) as exc:
        asyncio.run(_client(handler).rpc("create_order_atomic", {}))

    assert exc.value.message == "Insufficient stock for Lemon"
    assert exc.value.code == "P0001"
    assert exc.value.status == 400
    assert exc.value.status_code == 400


def test_transport_failure_becomes_backend_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    with pytest.raises(BackendError) as exc:
        asyncio.run(client.select("orders"))
    assert exc.value.code == "connection_error"
    assert exc.value.status_code == 502
    assert asyncio.run(client.health_check()) is False


def test_update_requires_filters_and_asks_for_representation():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "PATCH"
        assert request.headers["prefer"] == "return=representation"
        assert request.url.params["id"] == "eq.t-1"
        return httpx.Response(200, json=[{"id": "t-1", "status": "cleaning"}])

    client = _client(handler)
    with pytest.raises(BackendError):
        asyncio.run(client.update("restaurant_tables", {"status": "cleaning"}, []))

    rows = asyncio.run(client.update("restaurant_tables", {"status": "cleaning"}, [eq("id", "t-1")]))
    assert rows == [{"id": "t-1", "status": "cleaning"}]


def test_missing_row_code_maps_to_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400, json={"message": "Inventory item not found", "code": "P0002", "details": None}
        )

    with pytest.raises(BackendError) as exc:
        asyncio.run(_client(handler).rpc("adjust_inventory_stock", {"p_item_id": "x"}))

    assert exc.value.status_code == 404


def test_server_error_stays_bad_gateway():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "boom", "code": "XX000"})

    with pytest.raises(BackendError) as exc:
        asyncio.run(_client(handler).select("orders"))

    assert exc.value.status == 500
    assert exc.value.status_code == 502
