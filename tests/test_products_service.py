"""Товары магазина: флаг депозита, заморозка стоимости и размеров."""

from decimal import Decimal

import pytest

from raffle_backend.app.core.errors_core import (
    InvalidDimensionError,
    InvalidProductValueError,
    ProductLockedError,
    UnauthorizedError,
    ValidationError,
)
from raffle_backend.app.core.security_core import Actor, ActorRole
from raffle_backend.app.services import products_service, raffles_service


async def test_create_computes_deposit_flag(make_product):
    """requires_deposit вычисляется из габаритов, а не передаётся клиентом."""
    small = await make_product(dims=(10, 10, 10))
    large = await make_product(dims=(10, 10, 16))

    assert small["requires_deposit"] is False
    assert large["requires_deposit"] is True
    assert small["value"] == "100.00"
    assert small["status"] == "active"


@pytest.mark.parametrize("value", ["0", "-5", "nan", "not-a-price"])
async def test_create_rejects_bad_value(make_product, value):
    """Стоимость - конечное число больше нуля."""
    with pytest.raises(InvalidProductValueError):
        await make_product(value=value)


async def test_create_rejects_bad_dimensions(make_product):
    with pytest.raises(InvalidDimensionError):
        await make_product(dims=(0, 10, 10))


async def test_update_recomputes_deposit_flag(make_product, shop_actor):
    """Изменение размеров пересчитывает флаг депозита в обе стороны."""
    product = await make_product(dims=(10, 10, 10))

    grown = await products_service.svc_update_product(shop_actor, product["id"], {"width_cm": 20})
    assert grown["requires_deposit"] is True
    assert Decimal(grown["width_cm"]) == 20

    shrunk = await products_service.svc_update_product(shop_actor, product["id"], {"width_cm": 12})
    assert shrunk["requires_deposit"] is False


async def test_value_and_dimensions_locked_after_submit(make_product, shop_actor):
    """Как только розыгрыш товара ушёл из DRAFT, стоимость и размеры заморожены."""
    product = await make_product()
    raffle = await raffles_service.svc_create_raffle(shop_actor, product_id=product["id"])

    # В DRAFT правка ещё разрешена.
    updated = await products_service.svc_update_product(
        shop_actor, product["id"], {"value": "120.00"}
    )
    assert updated["value"] == "120.00"

    await raffles_service.svc_submit_raffle(shop_actor, raffle["id"])

    with pytest.raises(ProductLockedError):
        await products_service.svc_update_product(shop_actor, product["id"], {"value": "1.00"})
    with pytest.raises(ProductLockedError):
        await products_service.svc_update_product(shop_actor, product["id"], {"depth_cm": 99})

    renamed = await products_service.svc_update_product(
        shop_actor, product["id"], {"name": "Renamed prize"}
    )
    assert renamed["name"] == "Renamed prize"
    assert renamed["value"] == "120.00"


async def test_unknown_fields_rejected(make_product, shop_actor):
    product = await make_product()
    with pytest.raises(ValidationError):
        await products_service.svc_update_product(
            shop_actor, product["id"], {"requires_deposit": False}
        )


async def test_foreign_shop_cannot_touch_product(make_product, add_shop):
    """Чужой магазин не может править товар."""
    product = await make_product()
    other_shop_id = await add_shop(owner_user_id=200)
    stranger = Actor(id=200, role=ActorRole.SHOP, shop_id=other_shop_id)

    with pytest.raises(UnauthorizedError):
        await products_service.svc_update_product(stranger, product["id"], {"name": "Mine"})


async def test_deactivated_product_cannot_start_raffle(make_product, shop_actor, db):
    """Неактивный товар не годится для нового розыгрыша, но виден в листинге."""
    product = await make_product()
    result = await products_service.svc_deactivate_product(shop_actor, product["id"])
    assert result["status"] == "inactive"

    with pytest.raises(ValidationError):
        await raffles_service.svc_create_raffle(shop_actor, product_id=product["id"])

    page = await products_service.svc_list_products(db, shop_actor.shop_id, status="inactive")
    assert [item["id"] for item in page["items"]] == [product["id"]]


async def test_unknown_status_rejected(make_product, shop_actor):
    product = await make_product()
    with pytest.raises(ValidationError):
        await products_service.svc_set_product_status(shop_actor, product["id"], "deleted")
