import asyncio
import json

import httpx
import pytest

from dinebell.api import ApiError, RestaurantApi


def make_api(handler, **kwargs) -> RestaurantApi:
    return RestaurantApi("http://pos.test/backend/api", transport=httpx.MockTransport(handler), **kwargs)


def run(api, coro_factory):
    async def scenario():
        try:
            return await coro_factory(api)
        finally:
            await api.aclose()

    return asyncio.run(scenario())


def test_list_notifications_unwraps_envelope_and_sends_token() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(
            200,
            json={"success": True, "data": [{"id": 1, "status": "pending", "customerName": "Layla"}]},
        )

    api = make_api(handler, token="secret", endpoint_suffix=".php")
    records = run(api, lambda a: a.list_notifications())

    assert seen["url"] == "http://pos.test/backend/api/notifications/list.php"
    assert seen["auth"] == "Bearer secret"
    assert records[0].id == "1"
    assert records[0].customer_name == "Layla"


def test_bare_list_and_malformed_entries() -> None:
    def handler(request):
        return httpx.Response(200, json=[{"id": "A"}, {"status": "no id"}, "junk"])

    records = run(make_api(handler), lambda a: a.list_notifications())

    assert [r.id for r in records] == ["A"]


def test_html_answer_is_an_error() -> None:
    def handler(request):
        return httpx.Response(200, text="<!DOCTYPE html><html>Not Found</html>", headers={"content-type": "text/html"})

    with pytest.raises(ApiError) as excinfo:
        run(make_api(handler), lambda a: a.list_notifications())

    assert "HTML" in str(excinfo.value)


def test_invalid_json_is_an_error_not_an_empty_list() -> None:
    def handler(request):
        return httpx.Response(200, text="{oops", headers={"content-type": "application/json"})

    with pytest.raises(ApiError):
        run(make_api(handler), lambda a: a.list_notifications())


def test_http_error_carries_message_and_status() -> None:
    def handler(request):
        return httpx.Response(403, json={"success": False, "message": "Forbidden branch"})

    with pytest.raises(ApiError) as excinfo:
        run(make_api(handler), lambda a: a.list_orders("r1"))

    assert excinfo.value.status == 403
    assert "Forbidden branch" in str(excinfo.value)


def test_success_false_envelope_is_an_error() -> None:
    def handler(request):
        return httpx.Response(200, json={"success": False, "message": "Restaurant not found"})

    with pytest.raises(ApiError):
        run(make_api(handler), lambda a: a.list_notifications())


def test_mark_read_one_and_all() -> None:
    bodies = []

    def handler(request):
        assert request.method == "POST"
        assert request.url.path == "/backend/api/notifications/mark-read"
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True, "message": "ok"})

    api = make_api(handler)

    async def both(a):
        await a.mark_read("5")
        await a.mark_read()

    run(api, both)

    assert bodies == [{"id": "5"}, {}]


def test_list_orders_query_skips_missing_values() -> None:
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"success": True, "data": [{"id": 1, "orderNumber": "1001"}]})

    orders = run(make_api(handler), lambda a: a.list_orders("r1", branch_id="b2"))

    assert seen["params"] == {"restaurantId": "r1", "branchId": "b2"}
    assert orders[0].order_number == "1001"


def test_update_order_status_is_put() -> None:
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True})

    run(make_api(handler), lambda a: a.update_order_status("9", "ready", "no onions"))

    assert seen == {"method": "PUT", "body": {"id": "9", "status": "ready", "notes": "no onions"}}


@pytest.mark.parametrize("data", [None, False])
def test_no_subscription(data) -> None:
    def handler(request):
        return httpx.Response(200, json={"success": True, "data": data})

    assert run(make_api(handler), lambda a: a.current_subscription("r1")) is None


def test_current_subscription() -> None:
    def handler(request):
        assert request.url.params["restaurantId"] == "r1"
        return httpx.Response(
            200,
            json={"success": True, "data": {"status": "active", "endDate": "2030-01-01 00:00:00", "limits": {"maxProducts": -1}}},
        )

    snap = run(make_api(handler), lambda a: a.current_subscription("r1"))

    assert snap.status.value == "active"
    assert snap.end_date == "2030-01-01 00:00:00"
    assert snap.limits == {"maxProducts": -1}


def test_subscription_usage() -> None:
    def handler(request):
        return httpx.Response(200, json={"success": True, "data": {"menuItems": 4, "categories": 2, "branches": 1, "orders": 30}})

    usage = run(make_api(handler), lambda a: a.subscription_usage("r1"))

    assert (usage.products, usage.categories, usage.branches, usage.orders) == (4, 2, 1, 30)
