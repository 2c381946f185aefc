# -*- coding: utf-8 -*-
# raffle_backend/app/services/products_service.py
# =============================================================================
# Назначение кода:
#   Товары магазина: создание, правка, деактивация, листинг.
#
# Канон/инварианты:
#   • requires_deposit всегда вычисляется DepositPolicyEvaluator и
#     пересчитывается при каждом изменении размеров.
#   • Стоимость и размеры замораживаются, как только товар участвует в
#     розыгрыше вне DRAFT (ProductLockedError); имя/описание/категория - нет.
#   • Стоимость - конечное число > 0 (InvalidProductValueError).
#   • Актёр SHOP работает только со своим магазином; ADMIN - с любым.
# =============================================================================

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.core.database_core import lifespan_session
from raffle_backend.app.core.errors_core import (
    InvalidProductValueError,
    NotFoundError,
    ProductLockedError,
    ValidationError,
)
from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.core.security_core import (
    Actor,
    ActorRole,
    require_role,
    require_shop_owner,
)
from raffle_backend.app.core.utils_core import NumberLike, decimal_from, quantize_decimal
from raffle_backend.app.crud.raffles_crud import RafflesCRUD
from raffle_backend.app.crud.shop_crud import ProductsCRUD, ShopsCRUD
from raffle_backend.app.models import PRODUCT_STATUS_ENUM, Product
from raffle_backend.app.services.deposit_policy_service import evaluate_deposit_requirement

logger = get_logger(__name__)

PRODUCT_ROLES = (ActorRole.SHOP, ActorRole.ADMIN)
_METADATA_FIELDS = ("name", "description", "category")
_FROZEN_FIELDS = ("value", "height_cm", "width_cm", "depth_cm")


def product_to_dict(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "shop_id": product.shop_id,
        "name": product.name,
        "description": product.description,
        "category": product.category,
        "value": str(product.value),
        "height_cm": str(product.height_cm),
        "width_cm": str(product.width_cm),
        "depth_cm": str(product.depth_cm),
        "requires_deposit": product.requires_deposit,
        "status": product.status,
    }


def _product_value(raw: NumberLike) -> Decimal:
    try:
        value = decimal_from(raw)
    except ValueError as exc:
        raise InvalidProductValueError(
            "Product value must be a number.", details={"value": str(raw)}
        ) from exc
    if not value.is_finite() or value <= 0:
        raise InvalidProductValueError(
            "Product value must be a positive number.", details={"value": str(raw)}
        )
    return quantize_decimal(value)


def _clean_name(raw: Optional[str]) -> str:
    name = (raw or "").strip()
    if not name:
        raise ValidationError("Product name is required.", details={"field": "name"})
    return name


async def _load_for_write(db: AsyncSession, product_id: int, actor: Actor, action: str) -> Product:
    require_role(actor, PRODUCT_ROLES, action=action)
    product = await ProductsCRUD(db).get_product(product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found.", details={"product_id": product_id})
    require_shop_owner(actor, product.shop_id, action=action)
    return product


async def svc_create_product(
    actor: Actor,
    *,
    shop_id: int,
    name: str,
    value: NumberLike,
    height_cm: NumberLike,
    width_cm: NumberLike,
    depth_cm: NumberLike,
    description: Optional[str] = None,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    require_role(actor, PRODUCT_ROLES, action="product_create")
    require_shop_owner(actor, shop_id, action="product_create")

    clean_name = _clean_name(name)
    clean_value = _product_value(value)
    requires_deposit = evaluate_deposit_requirement(height_cm, width_cm, depth_cm)

    async with lifespan_session() as db:
        async with db.begin():
            shop = await ShopsCRUD(db).get_shop(shop_id)
            if shop is None:
                raise NotFoundError(f"Shop {shop_id} not found.", details={"shop_id": shop_id})
            product = Product(
                shop_id=shop.id,
                name=clean_name,
                description=description,
                category=category,
                value=clean_value,
                height_cm=decimal_from(height_cm),
                width_cm=decimal_from(width_cm),
                depth_cm=decimal_from(depth_cm),
                requires_deposit=requires_deposit,
                status="active",
            )
            await ProductsCRUD(db).add_product(product)
            result = product_to_dict(product)

    logger.info(
        "Product created",
        extra={
            "product_id": result["id"],
            "shop_id": shop_id,
            "requires_deposit": requires_deposit,
        },
    )
    return result


async def svc_update_product(
    actor: Actor,
    product_id: int,
    changes: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Частичная правка товара. changes - подмножество полей
    name/description/category/value/height_cm/width_cm/depth_cm.
    """
    unknown = set(changes) - set(_METADATA_FIELDS) - set(_FROZEN_FIELDS)
    if unknown:
        raise ValidationError(
            "Unknown product fields.", details={"fields": sorted(unknown)}
        )

    async with lifespan_session() as db:
        async with db.begin():
            product = await _load_for_write(db, product_id, actor, "product_update")

            frozen_changes = {k: changes[k] for k in _FROZEN_FIELDS if k in changes}
            if frozen_changes:
                if await RafflesCRUD(db).count_non_draft_for_product(product.id) > 0:
                    raise ProductLockedError(product.id)
                if "value" in frozen_changes:
                    product.value = _product_value(frozen_changes["value"])
                dims = {
                    field: frozen_changes.get(field, getattr(product, field))
                    for field in ("height_cm", "width_cm", "depth_cm")
                }
                product.requires_deposit = evaluate_deposit_requirement(
                    dims["height_cm"], dims["width_cm"], dims["depth_cm"]
                )
                for field, raw in dims.items():
                    setattr(product, field, decimal_from(raw))

            if "name" in changes:
                product.name = _clean_name(changes["name"])
            if "description" in changes:
                product.description = changes["description"]
            if "category" in changes:
                product.category = changes["category"]

            await db.flush()
            result = product_to_dict(product)

    logger.info(
        "Product updated",
        extra={"product_id": product_id, "fields": sorted(changes)},
    )
    return result


async def svc_set_product_status(actor: Actor, product_id: int, status: str) -> Dict[str, Any]:
    """active | inactive | archived; розыгрыши со снимком стоимости не затрагиваются."""
    if status not in PRODUCT_STATUS_ENUM:
        raise ValidationError(
            "Unknown product status.",
            details={"status": status, "allowed": list(PRODUCT_STATUS_ENUM)},
        )
    async with lifespan_session() as db:
        async with db.begin():
            product = await _load_for_write(db, product_id, actor, "product_status")
            previous = product.status
            product.status = status
            await db.flush()
            result = product_to_dict(product)

    logger.info(
        "Product status changed",
        extra={"product_id": product_id, "from": previous, "to": status},
    )
    return result


async def svc_deactivate_product(actor: Actor, product_id: int) -> Dict[str, Any]:
    return await svc_set_product_status(actor, product_id, "inactive")


async def svc_list_products(
    db: AsyncSession,
    shop_id: int,
    *,
    limit: int = 50,
    before_id: Optional[int] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    rows: List[Product] = await ProductsCRUD(db).list_by_shop(
        shop_id, limit=limit, before_id=before_id, status=status
    )
    items = [product_to_dict(p) for p in rows]
    next_cursor = rows[-1].id if len(rows) == limit else None
    return {"items": items, "next_cursor": next_cursor}


__all__ = [
    "PRODUCT_ROLES",
    "product_to_dict",
    "svc_create_product",
    "svc_update_product",
    "svc_set_product_status",
    "svc_deactivate_product",
    "svc_list_products",
]
