import httpx
import pytest
from sqlalchemy import select

from optimeal.config import Settings
from optimeal.main import create_app
from optimeal.models import Checkout

pytestmark = pytest.mark.component

CUSTOMER = {"X-User-Id": "1", "X-User-Role": "customer"}
OTHER_CUSTOMER = {"X-User-Id": "2", "X-User-Role": "customer"}
KITCHEN = {"X-User-Id": "3", "X-User-Role": "kitchen"}


def make_app(sessionmaker, calendar, gateway, publisher):
    settings = Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        MP_BACK_URL_SUCCESS="https://optimeal.test/ok",
    )
    return create_app(
        settings,
        sessionmaker=sessionmaker,
        calendar=calendar,
        gateway=gateway,
        publisher=publisher,
    )


@pytest.fixture
async def client(sessionmaker, calendar, gateway, publisher, catalog):
    app = make_app(sessionmaker, calendar, gateway, publisher)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


def order_body(items=None, pickup_time="2026-10-18T11:15:00-03:00"):
    return {
        "items": items or [{"product_id": 1, "quantity": 2, "side_id": 1, "notes": "sin sal"}],
        "pickup_time": pickup_time,
    }


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["database"] == "ok"


async def test_shifts(client):
    response = await client.get("/shifts/")

    assert response.status_code == 200
    data = response.json()
    assert data["shifts"][0] == "11:00-11:30"
    assert data["shifts"][-1] == "all"
    assert data["timezone_offset_minutes"] == -180


async def test_create_order_requires_user(client):
    response = await client.post("/orders/", json=order_body())

    assert response.status_code == 401


async def test_unknown_role_is_forbidden(client):
    response = await client.post("/orders/", json=order_body(), headers={"X-User-Id": "1", "X-User-Role": "chef"})

    assert response.status_code == 403


async def test_create_order(client, publisher):
    response = await client.post("/orders/", json=order_body(), headers=CUSTOMER)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "PENDING"
    assert data["user_id"] == 1
    assert data["total_price"] == 500000
    assert data["count_items"] == 2
    assert data["items"][0]["product_name"] == "Milanesa"
    assert data["items"][0]["side_name"] == "Rice"
    assert data["pickup_time"].startswith("2026-10-18T14:15:00")
    assert publisher.names[0] == "new-order"


async def test_create_order_insufficient_stock(client):
    body = order_body(items=[{"product_id": 2, "quantity": 2}])

    response = await client.post("/orders/", json=body, headers=CUSTOMER)

    assert response.status_code == 409
    data = response.json()
    assert data["success"] is False
    assert data["reason"] == "insufficient_stock"
    assert data["details"]["shortages"] == [
        {"product_id": 2, "name": "Tarta", "requested": 2, "available": 1}
    ]


async def test_create_order_outside_shifts(client):
    response = await client.post("/orders/", json=order_body(pickup_time="2026-10-18T10:59:00-03:00"), headers=CUSTOMER)

    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_pickup_time"


async def test_create_order_unknown_product(client):
    response = await client.post("/orders/", json=order_body(items=[{"product_id": 99, "quantity": 1}]), headers=CUSTOMER)

    assert response.status_code == 404
    assert response.json()["details"]["missing_product_ids"] == [99]


async def test_create_order_rejects_non_positive_quantity(client):
    response = await client.post("/orders/", json=order_body(items=[{"product_id": 1, "quantity": 0}]), headers=CUSTOMER)

    assert response.status_code == 422


async def test_order_visibility(client):
    order_id = (await client.post("/orders/", json=order_body(), headers=CUSTOMER)).json()["id"]

    assert (await client.get(f"/orders/{order_id}", headers=CUSTOMER)).status_code == 200
    assert (await client.get(f"/orders/{order_id}", headers=OTHER_CUSTOMER)).status_code == 404
    assert (await client.get(f"/orders/{order_id}", headers=KITCHEN)).status_code == 200
    assert (await client.get("/orders/999", headers=KITCHEN)).status_code == 404

    mine = await client.get("/orders/me", headers=CUSTOMER)
    assert [o["id"] for o in mine.json()] == [order_id]
    assert (await client.get("/orders/me", headers=OTHER_CUSTOMER)).json() == []


async def test_kitchen_listing(client):
    await client.post("/orders/", json=order_body(), headers=CUSTOMER)
    await client.post("/orders/", json=order_body(pickup_time="2026-10-18T12:40:00-03:00"), headers=OTHER_CUSTOMER)

    assert (await client.get("/orders/", headers=CUSTOMER)).status_code == 403

    response = await client.get("/orders/", params={"shift": "11:00-11:30"}, headers=KITCHEN)
    assert response.status_code == 200
    assert [o["user_id"] for o in response.json()] == [1]

    response = await client.get("/orders/", headers=KITCHEN)
    assert len(response.json()) == 2


async def test_status_transitions(client):
    order_id = (await client.post("/orders/", json=order_body(), headers=CUSTOMER)).json()["id"]

    assert (await client.patch(f"/orders/{order_id}/status", json={"status": "PREPARING"}, headers=CUSTOMER)).status_code == 403

    response = await client.patch(f"/orders/{order_id}/status", json={"status": "PREPARING"}, headers=KITCHEN)
    assert response.status_code == 200
    assert response.json()["status"] == "PREPARING"

    response = await client.patch(f"/orders/{order_id}/status", json={"status": "DELIVERED"}, headers=KITCHEN)
    assert response.status_code == 409
    assert response.json()["reason"] == "invalid_transition"

    response = await client.patch(f"/orders/{order_id}/status", json={"status": "COOKED"}, headers=KITCHEN)
    assert response.status_code == 422


async def test_shift_summary(client):
    await client.post("/orders/", json=order_body(), headers=CUSTOMER)

    response = await client.get("/orders/shift-summary", params={"shift": "11:00-11:30"}, headers=KITCHEN)

    assert response.status_code == 200
    data = response.json()
    assert data["shift"] == "11:00-11:30"
    assert data["total_main_dishes"] == 2
    assert data["main_dishes"][0]["remaining_to_prepare"] == 2
    assert data["sides"][0]["name"] == "Rice"

    response = await client.get("/orders/shift-summary", headers=KITCHEN)
    assert response.json()["shift"] == "all"


async def test_checkout_paid_through_webhook(client, gateway, sessionmaker):
    body = {"items": [{"product_id": 1, "quantity": 1, "side_id": 2}], "shift": "12:00-12:30"}

    response = await client.post("/payments/checkout", json=body, headers=CUSTOMER)

    assert response.status_code == 200
    created = response.json()
    assert created["redirect_url"] == "https://mp.test/checkout/pref-1"
    assert gateway.intents[0]["redirect_urls"]["success"] == "https://optimeal.test/ok"

    status_url = f"/payments/checkout/{created['checkout_id']}/status"
    assert (await client.get(status_url, headers=CUSTOMER)).json()["status"] == "PENDING"

    async with sessionmaker() as session:
        reference = (await session.execute(select(Checkout.external_reference))).scalar_one()
    payload = gateway.settle("pay-1", "approved", reference)

    for _ in range(2):
        response = await client.post("/payments/webhooks/mercadopago", json=payload)
        assert response.status_code == 200
        assert response.text == "ok"

    assert (await client.get(status_url, headers=CUSTOMER)).json()["status"] == "APPROVED"
    orders = (await client.get("/orders/me", headers=CUSTOMER)).json()
    assert len(orders) == 1
    assert orders[0]["pickup_time"].startswith("2026-10-18T15:00:00")


async def test_checkout_for_all_is_rejected(client):
    body = {"items": [{"product_id": 1, "quantity": 1}], "shift": "all"}

    response = await client.post("/payments/checkout", json=body, headers=CUSTOMER)

    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_shift"


async def test_checkout_gateway_failure(client, gateway):
    gateway.fail_create = True
    body = {"items": [{"product_id": 2, "quantity": 1}], "shift": "11:00-11:30"}

    response = await client.post("/payments/checkout", json=body, headers=CUSTOMER)

    assert response.status_code == 502
    assert response.json()["reason"] == "gateway_error"

    # сток вернулся: можно заказать последнюю единицу
    gateway.fail_create = False
    response = await client.post("/payments/checkout", json=body, headers=CUSTOMER)
    assert response.status_code == 200


async def test_unknown_checkout_status(client):
    response = await client.get("/payments/checkout/999/status", headers=CUSTOMER)

    assert response.status_code == 404
    assert response.json()["reason"] == "not_found"


async def test_checkout_status_visibility(client):
    body = {"items": [{"product_id": 1, "quantity": 1}], "shift": "11:00-11:30"}
    checkout_id = (await client.post("/payments/checkout", json=body, headers=CUSTOMER)).json()["checkout_id"]
    status_url = f"/payments/checkout/{checkout_id}/status"

    assert (await client.get(status_url, headers=CUSTOMER)).status_code == 200
    assert (await client.get(status_url, headers=KITCHEN)).status_code == 200

    response = await client.get(status_url, headers=OTHER_CUSTOMER)
    assert response.status_code == 404
    assert response.json()["reason"] == "not_found"


@pytest.mark.parametrize(
    "content",
    [
        b"not json",
        b"[1, 2, 3]",
        b'{"type": "payment", "data": {"id": "unknown-payment"}}',
    ],
)
async def test_webhook_always_acknowledges(client, content):
    response = await client.post(
        "/payments/webhooks/mercadopago", content=content, headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 200
    assert response.text == "ok"


async def test_checkout_disabled_without_gateway(sessionmaker, calendar, publisher, catalog):
    app = make_app(sessionmaker, calendar, None, publisher)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        body = {"items": [{"product_id": 1, "quantity": 1}], "shift": "11:00-11:30"}
        response = await client.post("/payments/checkout", json=body, headers=CUSTOMER)
        webhook = await client.post("/payments/webhooks/mercadopago", json={"type": "payment", "data": {"id": "1"}})

    assert response.status_code == 503
    assert webhook.status_code == 200
