# -*- coding: utf-8 -*-
# raffle_backend/app/routes/raffles_routes.py
# =============================================================================
# Назначение кода:
#   Публичные и пользовательские HTTP-ручки розыгрышей: витрина, карточка
#   розыгрыша, билеты розыгрыша, покупка билетов, мои участия.
#
# Канон/инварианты:
#   • Покупка билетов СТРОГО с Idempotency-Key; ключ становится payment_ref,
#     повтор запроса возвращает те же номера.
#   • Все списки - курсорная пагинация (без OFFSET), ETag на страницах.
#   • Ручки тонкие: вся логика в сервисах, ошибки - через errors_core.
# =============================================================================

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.core.errors_core import ValidationError
from raffle_backend.app.core.logging_core import get_logger, set_request_context
from raffle_backend.app.core.security_core import Actor
from raffle_backend.app.core.system_locks import monetary_op, require_idempotency_key
from raffle_backend.app.deps import get_actor, get_db, make_etag, pagination_params
from raffle_backend.app.models import RaffleStatus
from raffle_backend.app.schemas.raffles_schemas import (
    ParticipationOut,
    PurchaseIn,
    PurchaseOut,
    RaffleCardOut,
    RafflePage,
    TicketPage,
)
from raffle_backend.app.services import raffles_service, tickets_service

logger = get_logger(__name__)
router = APIRouter(prefix="/raffles", tags=["raffles"])


def _parse_statuses(raw: Optional[List[str]]) -> List[RaffleStatus]:
    if not raw:
        return [RaffleStatus.ACTIVE]
    try:
        return [RaffleStatus(s.strip().lower()) for s in raw]
    except ValueError as exc:
        raise ValidationError(
            "Unknown raffle status.",
            details={"allowed": [s.value for s in RaffleStatus]},
        ) from exc


@router.get("", response_model=RafflePage, summary="Витрина розыгрышей (курсорно)")
async def list_raffles(
    response: Response,
    status: Optional[List[str]] = Query(None, description="Статусы (по умолчанию active)"),
    shop_id: Optional[int] = Query(None, ge=1),
    page: dict = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
) -> RafflePage:
    result = await raffles_service.svc_list_raffles(
        db,
        limit=page["limit"],
        statuses=_parse_statuses(status),
        shop_id=shop_id,
        cursor=page["position"],
    )
    etag = make_etag({"kind": "raffles", "items": result["items"]})
    response.headers["ETag"] = etag
    return RafflePage(items=result["items"], next_cursor=result["next_cursor"], etag=etag)


@router.get("/me/participations", response_model=List[ParticipationOut], summary="Мои участия")
async def my_participations(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> List[ParticipationOut]:
    items = await raffles_service.svc_user_participations(db, actor.id)
    return [ParticipationOut(**item) for item in items]


@router.get("/{raffle_id}", response_model=RaffleCardOut, summary="Карточка розыгрыша")
async def get_raffle(
    raffle_id: int,
    db: AsyncSession = Depends(get_db),
) -> RaffleCardOut:
    return RaffleCardOut(**await raffles_service.svc_get_raffle(db, raffle_id))


@router.get("/{raffle_id}/tickets", response_model=TicketPage, summary="Билеты розыгрыша")
async def list_tickets(
    raffle_id: int,
    limit: int = Query(100, ge=1, le=500),
    after_number: Optional[int] = Query(None, ge=0, description="Курсор: последний номер"),
    owner_id: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
) -> TicketPage:
    result = await raffles_service.svc_list_tickets(
        db, raffle_id, limit=limit, after_number=after_number, owner_id=owner_id
    )
    next_cursor = result["next_cursor"]
    return TicketPage(
        items=result["items"],
        next_cursor=str(next_cursor) if next_cursor is not None else None,
    )


@router.post("/{raffle_id}/purchases", response_model=PurchaseOut, summary="Купить билеты")
@monetary_op
async def purchase_tickets(
    raffle_id: int,
    payload: PurchaseIn,
    idempotency_key: str = Depends(require_idempotency_key),
    actor: Actor = Depends(get_actor),
) -> PurchaseOut:
    """
    Подтверждённая покупка: выдаёт номера подряд из счётчика розыгрыша.
    Повтор с тем же Idempotency-Key вернёт те же номера (replayed=true).
    """
    set_request_context(idempotency_key=idempotency_key)
    result = await tickets_service.svc_reserve_tickets(
        raffle_id,
        payload.quantity,
        actor,
        payment_ref=idempotency_key,
        amount=payload.amount,
    )
    return PurchaseOut(**result)


__all__ = ["router"]
