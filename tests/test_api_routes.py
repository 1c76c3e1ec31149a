# HTTP tests for the routers: checkout through batch completion, header-based caller
# identity, and how domain errors render (status code + {"detail": ...}).

from datetime import datetime, timedelta

import httpx
import pytest

from campus_connect.api.deps import get_notifier
from campus_connect.db import get_session
from campus_connect.main import app
from campus_connect.models import Order
from conftest import UTC, fresh

pytestmark = pytest.mark.anyio


@pytest.fixture
async def client(session_factory, notifier):
    async def _session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_notifier] = lambda: notifier
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()

async def _otp(session, order_id):
    otp = (await fresh(session, Order, order_id)).delivery_otp
    await session.commit()
    return otp


async def test_healthz(client):
    r = await client.get("/healthz")
    assert r.status_code == 200

async def test_checkout_to_completion(client, session, make_shop, make_customer, notifier):
    shop = await make_shop()
    customer = await make_customer(shop, {shop.product_ids[0]: 2})
    vendor = {"X-Shop-Id": shop.shop_id}

    r = await client.post(
        "/orders",
        json={"shop_id": shop.shop_id, "payment_method": "CASH", "delivery_address_id": customer.address_id},
        headers={"X-User-Id": customer.user_id},
    )
    assert r.status_code == 201, r.text
    order = r.json()
    assert order["order_status"] == "NEW"
    assert order["total_price"] == "70.00"
    assert order["display_id"].endswith("-000001")
    batch_id = order["batch_id"]
    assert batch_id

    dash = (await client.get("/vendor/dashboard", headers=vendor)).json()
    assert dash["open_batch"]["id"] == batch_id
    assert dash["open_batch"]["order_count"] == 1

    r = await client.post(f"/vendor/batches/{batch_id}/lock", headers=vendor)
    assert (r.status_code, r.json()["status"]) == (200, "LOCKED")
    r = await client.get(f"/vendor/batches/{batch_id}/summary", headers=vendor)
    assert [(i["name"], i["quantity"]) for i in r.json()] == [("Maggi", 2)]
    r = await client.post(f"/vendor/batches/{batch_id}/start", headers=vendor)
    assert (r.status_code, r.json()["status"]) == (200, "IN_TRANSIT")

    r = await client.post(f"/vendor/batches/{batch_id}/complete", headers=vendor)
    assert r.status_code == 409
    assert r.json() == {"detail": "1 order still pending OTP verification", "pending_orders": 1}

    r = await client.post(f"/vendor/orders/{order['id']}/verify-otp", json={"otp": "12ab"}, headers=vendor)
    assert (r.status_code, r.json()["detail"]) == (400, "Invalid OTP format. Must be 4 digits.")
    r = await client.post(f"/vendor/orders/{order['id']}/verify-otp", json={"otp": "0000"}, headers=vendor)
    assert (r.status_code, r.json()["detail"]) == (400, "Invalid OTP")

    otp = await _otp(session, order["id"])
    r = await client.post(f"/vendor/orders/{order['id']}/verify-otp", json={"otp": otp}, headers=vendor)
    assert (r.status_code, r.json()["message"]) == (200, "Order delivered successfully")

    r = await client.post(f"/vendor/batches/{batch_id}/complete", headers=vendor)
    assert (r.status_code, r.json()["status"]) == (200, "COMPLETED")

    titles = [p.title for _, p in notifier.sent]
    assert titles == ["New Order Received", "Order Out for Delivery", "Order Delivered"]

async def test_cancel_route(client, make_shop, place_order):
    shop = await make_shop()
    batch_id = (await place_order(shop)).batch_id
    vendor = {"X-Shop-Id": shop.shop_id}

    r = await client.post(f"/vendor/batches/{batch_id}/cancel", json={}, headers=vendor)
    assert r.status_code == 409

    await client.post(f"/vendor/batches/{batch_id}/lock", headers=vendor)
    r = await client.post(f"/vendor/batches/{batch_id}/cancel", json={"reason": "Rain"}, headers=vendor)
    assert r.status_code == 200
    assert r.json() == {"message": "Batch cancelled. 1 order affected.", "cancelled_orders": 1}

async def test_caller_identity_required(client, make_shop):
    shop = await make_shop()
    r = await client.post("/orders", json={"shop_id": shop.shop_id, "payment_method": "CASH", "delivery_address_id": "x"})
    assert (r.status_code, r.json()["detail"]) == (403, "Unauthorized: Please log in.")
    r = await client.get("/vendor/dashboard")
    assert (r.status_code, r.json()["detail"]) == (403, "Unauthorized: You do not own a shop.")

async def test_other_shop_gets_403(client, make_shop, place_order):
    shop = await make_shop()
    other = await make_shop()
    batch_id = (await place_order(shop)).batch_id

    r = await client.post(f"/vendor/batches/{batch_id}/lock", headers={"X-Shop-Id": other.shop_id})
    assert r.status_code == 403
    r = await client.get(f"/vendor/batches/{batch_id}/summary", headers={"X-Shop-Id": other.shop_id})
    assert r.status_code == 403
    r = await client.post("/vendor/batches/missing/lock", headers={"X-Shop-Id": shop.shop_id})
    assert r.status_code == 404

async def test_empty_cart_is_404(client, make_shop, make_customer):
    shop = await make_shop()
    customer = await make_customer(shop)
    r = await client.post(
        "/orders",
        json={"shop_id": shop.shop_id, "payment_method": "UPI", "delivery_address_id": customer.address_id},
        headers={"X-User-Id": customer.user_id},
    )
    assert (r.status_code, r.json()["detail"]) == (404, "Cart is empty.")

async def test_storefront_slot_routes(client, make_shop):
    shop = await make_shop(slots=(540, 1080))

    r = await client.get(f"/shops/{shop.shop_id}/next-slot")
    assert r.status_code == 200
    assert r.json()["enabled"] is True

    r = await client.get(f"/shops/{shop.shop_id}/batch-slots")
    assert [s["cutoff_time_minutes"] for s in r.json()] == [540, 1080]
    assert all(s["is_today_available"] for s in r.json())

    assert (await client.get("/shops/missing/next-slot")).status_code == 404

async def test_batch_card_crud(client, make_shop):
    shop = await make_shop(slots=(540,))
    vendor = {"X-Shop-Id": shop.shop_id}

    r = await client.post("/vendor/batch-slots", json={"cutoff_time_minutes": 1260, "label": "Night"}, headers=vendor)
    assert r.status_code == 201
    night = r.json()
    assert (night["sort_order"], night["label"]) == (1, "Night")

    r = await client.post("/vendor/batch-slots", json={"cutoff_time_minutes": 1500}, headers=vendor)
    assert (r.status_code, r.json()["detail"]) == (400, "Invalid cutoff time. Must be 0-1439 minutes.")

    ids = [s["id"] for s in (await client.get("/vendor/batch-slots", headers=vendor)).json()]
    r = await client.put("/vendor/batch-slots/order", json={"ordered_ids": list(reversed(ids))}, headers=vendor)
    assert [s["id"] for s in r.json()] == list(reversed(ids))

    r = await client.patch(
        f"/vendor/batch-slots/{night['id']}",
        json={"cutoff_time_minutes": 1230, "label": "Late", "is_active": False},
        headers=vendor,
    )
    assert (r.json()["cutoff_time_minutes"], r.json()["is_active"]) == (1230, False)

    r = await client.delete(f"/vendor/batch-slots/{night['id']}", headers=vendor)
    assert r.json() == {"message": "Batch card deleted"}
    r = await client.delete(f"/vendor/batch-slots/{night['id']}", headers=vendor)
    assert r.status_code == 404

def _instant(stamp):
    return datetime.fromisoformat(stamp.replace("Z", "+00:00"))

async def test_lifecycle_routes_send_utc_timestamps(client, make_shop, place_order):
    shop = await make_shop()
    batch_id = (await place_order(shop)).batch_id
    vendor = {"X-Shop-Id": shop.shop_id}

    for step in ("lock", "start"):
        r = await client.post(f"/vendor/batches/{batch_id}/{step}", headers=vendor)
        cutoff = _instant(r.json()["cutoff_time"])
        assert cutoff.utcoffset() == timedelta(0)
        assert cutoff == datetime(2024, 3, 10, 12, 30, tzinfo=UTC)

    dash = (await client.get("/vendor/dashboard", headers=vendor)).json()
    assert _instant(dash["active_batches"][0]["cutoff_time"]) == datetime(2024, 3, 10, 12, 30, tzinfo=UTC)

async def test_order_status_route(client, make_shop, place_order, notifier):
    shop = await make_shop()
    other = await make_shop()
    order_id = (await place_order(shop)).id

    r = await client.post(f"/vendor/orders/{order_id}/status", json={"status": "CANCELLED"}, headers={"X-Shop-Id": other.shop_id})
    assert r.status_code == 403

    r = await client.post(f"/vendor/orders/{order_id}/status", json={"status": "CANCELLED"}, headers={"X-Shop-Id": shop.shop_id})
    assert r.status_code == 200
    assert (r.json()["order_status"], r.json()["payment_status"]) == ("CANCELLED", "FAILED")
    assert [p.title for _, p in notifier.sent] == ["Order Status Updated"]

    r = await client.post(f"/vendor/orders/{order_id}/status", json={"status": "OUT_FOR_DELIVERY"}, headers={"X-Shop-Id": shop.shop_id})
    assert r.status_code == 409
