# -*- coding: utf-8 -*-
# raffle_backend/app/routes/shop_routes.py
# =============================================================================
# Назначение кода:
#   HTTP-ручки магазина: товары (создание, правка, статус, листинг) и
#   розыгрыши магазина (создание, особые условия, submit/pause/resume/cancel).
#
# Канон/инварианты:
#   • Флаг депозита и число билетов считают сервисы, не роуты.
#   • Актёр SHOP действует только от имени своего магазина (X-Shop-Id);
#     проверки владельца - в сервисах/машине состояний.
# =============================================================================

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.core.security_core import Actor
from raffle_backend.app.deps import get_actor, get_db, pagination_params
from raffle_backend.app.schemas.raffles_schemas import (
    ProductIn,
    ProductOut,
    ProductPage,
    ProductStatusIn,
    ProductUpdateIn,
    RaffleConditionsIn,
    RaffleCreateIn,
    RaffleOut,
    RafflePage,
    ReasonIn,
)
from raffle_backend.app.services import products_service, raffles_service

logger = get_logger(__name__)
router = APIRouter(prefix="/shop", tags=["shop"])


# -----------------------------------------------------------------------------
# Товары
# -----------------------------------------------------------------------------
@router.post("/products", response_model=ProductOut, status_code=201, summary="Создать товар")
async def create_product(
    payload: ProductIn,
    actor: Actor = Depends(get_actor),
) -> ProductOut:
    result = await products_service.svc_create_product(actor, **payload.model_dump())
    return ProductOut(**result)


@router.patch("/products/{product_id}", response_model=ProductOut, summary="Изменить товар")
async def update_product(
    product_id: int,
    payload: ProductUpdateIn,
    actor: Actor = Depends(get_actor),
) -> ProductOut:
    changes = payload.model_dump(exclude_unset=True)
    return ProductOut(**await products_service.svc_update_product(actor, product_id, changes))


@router.post(
    "/products/{product_id}/status", response_model=ProductOut, summary="Статус товара"
)
async def set_product_status(
    product_id: int,
    payload: ProductStatusIn,
    actor: Actor = Depends(get_actor),
) -> ProductOut:
    result = await products_service.svc_set_product_status(actor, product_id, payload.status)
    return ProductOut(**result)


@router.get("/{shop_id}/products", response_model=ProductPage, summary="Товары магазина")
async def list_products(
    shop_id: int,
    limit: int = Query(50, ge=1, le=500),
    before_id: Optional[int] = Query(None, ge=1, description="Курсор: id последнего товара"),
    status: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> ProductPage:
    result = await products_service.svc_list_products(
        db, shop_id, limit=limit, before_id=before_id, status=status
    )
    next_cursor = result["next_cursor"]
    return ProductPage(
        items=result["items"],
        next_cursor=str(next_cursor) if next_cursor is not None else None,
    )


# -----------------------------------------------------------------------------
# Розыгрыши магазина
# -----------------------------------------------------------------------------
@router.post("/raffles", response_model=RaffleOut, status_code=201, summary="Создать розыгрыш")
async def create_raffle(
    payload: RaffleCreateIn,
    actor: Actor = Depends(get_actor),
) -> RaffleOut:
    result = await raffles_service.svc_create_raffle(
        actor,
        product_id=payload.product_id,
        special_conditions=payload.special_conditions,
    )
    return RaffleOut(**result)


@router.patch("/raffles/{raffle_id}", response_model=RaffleOut, summary="Особые условия")
async def update_conditions(
    raffle_id: int,
    payload: RaffleConditionsIn,
    actor: Actor = Depends(get_actor),
) -> RaffleOut:
    result = await raffles_service.svc_update_conditions(
        actor, raffle_id, payload.special_conditions
    )
    return RaffleOut(**result)


@router.post("/raffles/{raffle_id}/submit", response_model=RaffleOut, summary="На модерацию")
async def submit_raffle(raffle_id: int, actor: Actor = Depends(get_actor)) -> RaffleOut:
    return RaffleOut(**await raffles_service.svc_submit_raffle(actor, raffle_id))


@router.post("/raffles/{raffle_id}/pause", response_model=RaffleOut, summary="Пауза")
async def pause_raffle(raffle_id: int, actor: Actor = Depends(get_actor)) -> RaffleOut:
    return RaffleOut(**await raffles_service.svc_pause_raffle(actor, raffle_id))


@router.post("/raffles/{raffle_id}/resume", response_model=RaffleOut, summary="Продолжить")
async def resume_raffle(raffle_id: int, actor: Actor = Depends(get_actor)) -> RaffleOut:
    return RaffleOut(**await raffles_service.svc_resume_raffle(actor, raffle_id))


@router.post("/raffles/{raffle_id}/cancel", response_model=RaffleOut, summary="Отменить")
async def cancel_raffle(
    raffle_id: int,
    payload: ReasonIn,
    actor: Actor = Depends(get_actor),
) -> RaffleOut:
    return RaffleOut(**await raffles_service.svc_cancel_raffle(actor, raffle_id, payload.reason))


@router.get("/{shop_id}/raffles", response_model=RafflePage, summary="Розыгрыши магазина")
async def list_shop_raffles(
    shop_id: int,
    page: dict = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
) -> RafflePage:
    result = await raffles_service.svc_list_raffles(
        db, limit=page["limit"], shop_id=shop_id, cursor=page["position"]
    )
    return RafflePage(items=result["items"], next_cursor=result["next_cursor"])


__all__ = ["router"]
