"""Розыгрыши магазина: создание, особые условия, витрина и участия."""

import pytest

from raffle_backend.app.core.errors_core import (
    InvalidStateTransitionError,
    NotFoundError,
    RaffleNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from raffle_backend.app.models import RaffleStatus
from raffle_backend.app.services import products_service, raffles_service, tickets_service

from .conftest import user


async def test_create_snapshots_product(make_product, shop_actor, count_audit):
    """Число билетов и флаг депозита - снимок товара на момент создания."""
    product = await make_product(value="49.99", dims=(30, 10, 10))

    raffle = await raffles_service.svc_create_raffle(
        shop_actor, product_id=product["id"], special_conditions="  Pickup only  "
    )

    assert raffle["status"] == RaffleStatus.DRAFT.value
    assert raffle["total_tickets"] == 99
    assert raffle["sold_tickets"] == 0
    assert raffle["remaining_tickets"] == 99
    assert raffle["product_value"] == "49.99"
    assert raffle["requires_deposit"] is True
    assert raffle["special_conditions"] == "Pickup only"
    assert await count_audit("raffle", raffle["id"], "RAFFLE_CREATE") == 1


async def test_create_for_unknown_product(shop_actor):
    with pytest.raises(NotFoundError):
        await raffles_service.svc_create_raffle(shop_actor, product_id=9999)


async def test_users_cannot_create_raffles(make_product):
    product = await make_product()
    with pytest.raises(UnauthorizedError):
        await raffles_service.svc_create_raffle(user(501), product_id=product["id"])


async def test_conditions_editable_only_in_draft(make_draft_raffle, shop_actor):
    """Особые условия правятся только в DRAFT."""
    raffle_id = await make_draft_raffle()

    updated = await raffles_service.svc_update_conditions(shop_actor, raffle_id, "Ships in 3 days")
    assert updated["special_conditions"] == "Ships in 3 days"

    await raffles_service.svc_submit_raffle(shop_actor, raffle_id)
    with pytest.raises(InvalidStateTransitionError):
        await raffles_service.svc_update_conditions(shop_actor, raffle_id, "Too late")


async def test_conditions_length_limit(make_draft_raffle, shop_actor):
    raffle_id = await make_draft_raffle()
    with pytest.raises(ValidationError):
        await raffles_service.svc_update_conditions(shop_actor, raffle_id, "x" * 4001)


async def test_get_raffle_card(make_active_raffle, db):
    """Карточка содержит счётчики и пустой результат до розыгрыша."""
    raffle_id = await make_active_raffle(value="10.00")
    await tickets_service.reserve(raffle_id, 4, 501, payment_ref="card-1")

    card = await raffles_service.svc_get_raffle(db, raffle_id)

    assert card["sold_tickets"] == 4
    assert card["remaining_tickets"] == 16
    assert card["winning_number"] is None
    assert card["activated_at"] is not None

    with pytest.raises(RaffleNotFoundError):
        await raffles_service.svc_get_raffle(db, 424242)


async def test_list_by_status_and_shop(make_draft_raffle, make_active_raffle, shop_actor, db):
    """Витрина фильтруется по статусам и магазину."""
    draft_id = await make_draft_raffle()
    active_id = await make_active_raffle(value="10.00")

    active = await raffles_service.svc_list_raffles(db, statuses=[RaffleStatus.ACTIVE])
    assert [item["id"] for item in active["items"]] == [active_id]
    assert active["next_cursor"] is None

    by_shop = await raffles_service.svc_list_raffles(db, shop_id=shop_actor.shop_id)
    assert {item["id"] for item in by_shop["items"]} == {draft_id, active_id}

    other = await raffles_service.svc_list_raffles(db, shop_id=shop_actor.shop_id + 1000)
    assert other["items"] == []


async def test_list_tickets_by_owner(make_active_raffle, db):
    raffle_id = await make_active_raffle(value="10.00")
    await tickets_service.reserve(raffle_id, 2, 501, payment_ref="t-1")
    await tickets_service.reserve(raffle_id, 3, 502, payment_ref="t-2")

    mine = await raffles_service.svc_list_tickets(db, raffle_id, owner_id=502)
    assert [t["number"] for t in mine["items"]] == [3, 4, 5]

    page = await raffles_service.svc_list_tickets(db, raffle_id, limit=2, after_number=1)
    assert [t["number"] for t in page["items"]] == [2, 3]
    assert page["next_cursor"] == 3


async def test_participations_skip_non_public_statuses(make_active_raffle, shop_actor, db):
    """Участия: только ACTIVE, SOLD_OUT, FINISHED; победа видна пользователю."""
    visible_id = await make_active_raffle(value="10.00")
    await tickets_service.reserve(visible_id, 2, 501, payment_ref="pa-1")

    paused_id = await make_active_raffle(value="10.00")
    await tickets_service.reserve(paused_id, 1, 501, payment_ref="pa-2")
    await raffles_service.svc_pause_raffle(shop_actor, paused_id)

    won_id = await make_active_raffle(value="1.00")
    await tickets_service.svc_reserve_tickets(
        won_id, 2, user(501), payment_ref="pa-3", rng=lambda n: 1
    )

    items = await raffles_service.svc_user_participations(db, 501)

    by_id = {item["id"]: item for item in items}
    assert set(by_id) == {visible_id, won_id}
    assert by_id[visible_id]["my_tickets"] == 2
    assert by_id[visible_id]["is_winner"] is False
    assert by_id[won_id]["status"] == RaffleStatus.FINISHED.value
    assert by_id[won_id]["is_winner"] is True
    assert by_id[won_id]["my_winning_number"] == 2


async def test_product_listing_paginates(make_product, shop_actor, db):
    first = await make_product()
    second = await make_product()
    third = await make_product()

    page = await products_service.svc_list_products(db, shop_actor.shop_id, limit=2)
    assert [p["id"] for p in page["items"]] == [third["id"], second["id"]]
    assert page["next_cursor"] == second["id"]

    rest = await products_service.svc_list_products(
        db, shop_actor.shop_id, limit=2, before_id=page["next_cursor"]
    )
    assert [p["id"] for p in rest["items"]] == [first["id"]]
    assert rest["next_cursor"] is None
