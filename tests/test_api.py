"""HTTP-поверхность: здоровье, обязательный Idempotency-Key, сквозной сценарий."""

import httpx
import pytest

from raffle_backend.app import create_app


@pytest.fixture
async def client(engine):
    app = create_app()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


def _headers(actor_id, role, shop_id=None, **extra):
    headers = {"X-Actor-Id": str(actor_id), "X-Actor-Role": role}
    if shop_id is not None:
        headers["X-Shop-Id"] = str(shop_id)
    headers.update(extra)
    return headers


async def _active_raffle(client, shop_id, value="2.50"):
    shop = _headers(100, "shop", shop_id)
    product = await client.post(
        "/api/shop/products",
        json={
            "shop_id": shop_id,
            "name": "Headphones",
            "value": value,
            "height_cm": "10",
            "width_cm": "8",
            "depth_cm": "5",
        },
        headers=shop,
    )
    assert product.status_code == 201, product.text
    assert product.json()["requires_deposit"] is False

    raffle = await client.post(
        "/api/shop/raffles", json={"product_id": product.json()["id"]}, headers=shop
    )
    assert raffle.status_code == 201, raffle.text
    raffle_id = raffle.json()["id"]

    submitted = await client.post(f"/api/shop/raffles/{raffle_id}/submit", headers=shop)
    assert submitted.json()["status"] == "pending_approval"

    approved = await client.post(
        f"/api/admin/raffles/{raffle_id}/approve", headers=_headers(1, "admin")
    )
    assert approved.status_code == 200, approved.text
    assert approved.json()["status"] == "active"
    return raffle_id


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "db": True}


async def test_request_id_is_echoed(client):
    resp = await client.get("/health", headers={"X-Request-ID": "req-42"})
    assert resp.headers.get("X-Request-ID") == "req-42"


async def test_purchase_without_idempotency_key(client, shop_id):
    """Покупка без Idempotency-Key отклоняется до бизнес-логики."""
    raffle_id = await _active_raffle(client, shop_id)

    resp = await client.post(
        f"/api/raffles/{raffle_id}/purchases",
        json={"quantity": 1, "amount": "0.50"},
        headers=_headers(501, "user"),
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "idempotency_key_required"


async def test_purchase_flow_until_winner(client, shop_id):
    """Сквозной сценарий: покупки, повтор по ключу, распродажа и победитель."""
    raffle_id = await _active_raffle(client, shop_id)

    first = await client.post(
        f"/api/raffles/{raffle_id}/purchases",
        json={"quantity": 3, "amount": "1.50"},
        headers=_headers(501, "user", **{"Idempotency-Key": "order-1"}),
    )
    assert first.status_code == 200, first.text
    assert first.json()["ticket_numbers"] == [1, 2, 3]
    assert first.json()["replayed"] is False

    replay = await client.post(
        f"/api/raffles/{raffle_id}/purchases",
        json={"quantity": 3, "amount": "1.50"},
        headers=_headers(501, "user", **{"Idempotency-Key": "order-1"}),
    )
    assert replay.json()["ticket_numbers"] == [1, 2, 3]
    assert replay.json()["replayed"] is True

    too_many = await client.post(
        f"/api/raffles/{raffle_id}/purchases",
        json={"quantity": 3, "amount": "1.50"},
        headers=_headers(502, "user", **{"Idempotency-Key": "order-2"}),
    )
    assert too_many.status_code == 409
    assert too_many.json() == {
        "error": "insufficient_tickets",
        "message": "Not enough tickets left.",
        "details": {"requested": 3, "remaining": 2},
    }

    last = await client.post(
        f"/api/raffles/{raffle_id}/purchases",
        json={"quantity": 2, "amount": "1.00"},
        headers=_headers(502, "user", **{"Idempotency-Key": "order-3"}),
    )
    assert last.status_code == 200, last.text
    assert last.json()["raffle_status"] == "finished"

    card = (await client.get(f"/api/raffles/{raffle_id}")).json()
    assert card["status"] == "finished"
    assert card["sold_tickets"] == card["total_tickets"] == 5
    assert 1 <= card["winning_number"] <= 5
    assert card["winner_user_id"] in (501, 502)

    mine = await client.get("/api/raffles/me/participations", headers=_headers(501, "user"))
    assert mine.status_code == 200
    assert [p["id"] for p in mine.json()] == [raffle_id]
    assert mine.json()[0]["my_tickets"] == 3


async def test_reject_without_reason_over_http(client, shop_id):
    shop = _headers(100, "shop", shop_id)
    product = await client.post(
        "/api/shop/products",
        json={
            "shop_id": shop_id,
            "name": "Bike",
            "value": "300",
            "height_cm": "100",
            "width_cm": "60",
            "depth_cm": "170",
        },
        headers=shop,
    )
    assert product.json()["requires_deposit"] is True
    raffle = await client.post(
        "/api/shop/raffles", json={"product_id": product.json()["id"]}, headers=shop
    )
    raffle_id = raffle.json()["id"]
    await client.post(f"/api/shop/raffles/{raffle_id}/submit", headers=shop)

    resp = await client.post(
        f"/api/admin/raffles/{raffle_id}/reject", json={"reason": " "}, headers=_headers(1, "admin")
    )

    assert resp.status_code == 422
    assert resp.json()["error"] == "missing_reject_reason"
    card = (await client.get(f"/api/raffles/{raffle_id}")).json()
    assert card["status"] == "pending_approval"


async def test_error_payloads(client, shop_id):
    """Единая форма ошибок: {"error", "message", "details"?}."""
    missing = await client.get("/api/raffles/999999")
    assert missing.status_code == 404
    assert missing.json()["error"] == "raffle_not_found"
    assert missing.json()["details"] == {"raffle_id": 999999}

    forbidden = await client.get("/api/admin/raffles/pending", headers=_headers(501, "user"))
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "unauthorized"

    anonymous = await client.get("/api/raffles/me/participations")
    assert anonymous.status_code == 401
    assert anonymous.json()["error"] == "http_error"

    system_role = await client.get(
        "/api/raffles/me/participations", headers=_headers(0, "system")
    )
    assert system_role.status_code == 403

    bad_body = await client.post(
        "/api/shop/products",
        json={"shop_id": shop_id, "name": "X"},
        headers=_headers(100, "shop", shop_id),
    )
    assert bad_body.status_code == 422
    assert bad_body.json()["error"] == "validation_error"


async def test_audit_log_endpoint(client, shop_id):
    raffle_id = await _active_raffle(client, shop_id)

    resp = await client.get(
        "/api/admin/audit-logs",
        params={"entity_type": "raffle", "entity_id": raffle_id},
        headers=_headers(1, "admin"),
    )

    assert resp.status_code == 200
    actions = [entry["action"] for entry in resp.json()]
    assert sorted(actions) == ["RAFFLE_APPROVE", "RAFFLE_CREATE", "RAFFLE_SUBMIT"]


async def test_listing_sets_etag(client, shop_id):
    raffle_id = await _active_raffle(client, shop_id)

    resp = await client.get("/api/raffles")

    assert resp.status_code == 200
    assert resp.headers["ETag"] == resp.json()["etag"]
    assert [item["id"] for item in resp.json()["items"]] == [raffle_id]
