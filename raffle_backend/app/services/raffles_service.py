# -*- coding: utf-8 -*-
# raffle_backend/app/services/raffles_service.py
# =============================================================================
# Назначение кода:
#   Операции магазина над розыгрышами и витрина:
#   • создание (DRAFT), правка особых условий, submit/pause/resume/cancel;
#   • карточка розыгрыша, листинг по статусам/магазину, билеты розыгрыша;
#   • участия пользователя (только ACTIVE, SOLD_OUT, FINISHED).
#
# Канон/инварианты:
#   • Число билетов считается при создании: floor(value × 2), стоимость и
#     флаг депозита - снимок товара на момент создания.
#   • Все переходы - через RaffleStateMachine внутри with_raffle_transaction.
#   • Особые условия редактируются только в DRAFT.
#
# Запреты:
#   • Никаких продаж билетов и выбора победителя: это tickets/winner сервисы.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.core.database_core import lifespan_session
from raffle_backend.app.core.errors_core import (
    InvalidStateTransitionError,
    NotFoundError,
    RaffleNotFoundError,
    ValidationError,
)
from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.core.security_core import (
    Actor,
    ActorRole,
    require_role,
    require_shop_owner,
)
from raffle_backend.app.crud.raffles_crud import RafflesCRUD
from raffle_backend.app.crud.shop_crud import ProductsCRUD
from raffle_backend.app.deps import encode_cursor
from raffle_backend.app.models import Raffle, RaffleStatus, RaffleTicket
from raffle_backend.app.services.admin.admin_logging import AuditAction, AuditLogger
from raffle_backend.app.services.raffle_state_service import (
    RaffleStateMachine,
    raffle_to_dict,
)
from raffle_backend.app.services.raffle_tx_service import with_raffle_transaction
from raffle_backend.app.services.tickets_service import compute_total_tickets

logger = get_logger(__name__)

SHOP_ROLES = (ActorRole.SHOP, ActorRole.ADMIN)
PARTICIPATION_STATUSES: Tuple[RaffleStatus, ...] = (
    RaffleStatus.ACTIVE,
    RaffleStatus.SOLD_OUT,
    RaffleStatus.FINISHED,
)
_CONDITIONS_MAX = 4000


def _clean_conditions(raw: Optional[str]) -> Optional[str]:
    text_ = (raw or "").strip()
    if len(text_) > _CONDITIONS_MAX:
        raise ValidationError(
            f"special_conditions must not exceed {_CONDITIONS_MAX} characters.",
            details={"field": "special_conditions"},
        )
    return text_ or None


def ticket_to_dict(ticket: RaffleTicket) -> Dict[str, Any]:
    return {
        "id": ticket.id,
        "raffle_id": ticket.raffle_id,
        "number": ticket.number,
        "owner_id": ticket.owner_id,
        "status": ticket.status,
        "purchase_id": ticket.purchase_id,
        "purchased_at": ticket.purchased_at,
    }


# -----------------------------------------------------------------------------
# Запись
# -----------------------------------------------------------------------------
async def svc_create_raffle(
    actor: Actor,
    *,
    product_id: int,
    special_conditions: Optional[str] = None,
) -> Dict[str, Any]:
    """Создать розыгрыш в DRAFT по товару магазина."""
    require_role(actor, SHOP_ROLES, action="raffle_create")
    conditions = _clean_conditions(special_conditions)

    async with lifespan_session() as db:
        async with db.begin():
            product = await ProductsCRUD(db).get_product(product_id)
            if product is None:
                raise NotFoundError(
                    f"Product {product_id} not found.", details={"product_id": product_id}
                )
            require_shop_owner(actor, product.shop_id, action="raffle_create")
            if product.status != "active":
                raise ValidationError(
                    "Raffles can only be created for active products.",
                    details={"product_id": product.id, "status": product.status},
                )

            total = compute_total_tickets(product.value)
            raffle = Raffle(
                shop_id=product.shop_id,
                product_id=product.id,
                product_value=product.value,
                requires_deposit=product.requires_deposit,
                total_tickets=total,
                sold_tickets=0,
                status=RaffleStatus.DRAFT.value,
                special_conditions=conditions,
            )
            await RafflesCRUD(db).add_raffle(raffle)
            await AuditLogger.write(
                db,
                actor=actor,
                action=AuditAction.RAFFLE_CREATE,
                entity_type="raffle",
                entity_id=raffle.id,
                new_status=RaffleStatus.DRAFT.value,
                details={"product_id": product.id, "total_tickets": total},
            )
            result = raffle_to_dict(raffle)

    logger.info(
        "Raffle created",
        extra={
            "raffle_id": result["id"],
            "product_id": product_id,
            "total_tickets": result["total_tickets"],
            "requires_deposit": result["requires_deposit"],
        },
    )
    return result


async def svc_update_conditions(
    actor: Actor,
    raffle_id: int,
    special_conditions: Optional[str],
) -> Dict[str, Any]:
    require_role(actor, SHOP_ROLES, action="raffle_update")
    conditions = _clean_conditions(special_conditions)

    async def _tx(db: AsyncSession) -> Dict[str, Any]:
        raffle = await RafflesCRUD(db).lock_raffle(raffle_id)
        if raffle is None:
            raise RaffleNotFoundError(raffle_id)
        require_shop_owner(actor, raffle.shop_id, action="raffle_update")
        if raffle.status != RaffleStatus.DRAFT.value:
            raise InvalidStateTransitionError(
                "Only draft raffles can be edited.",
                details={"raffle_id": raffle.id, "status": raffle.status},
            )
        raffle.special_conditions = conditions
        await db.flush()
        await AuditLogger.write(
            db,
            actor=actor,
            action=AuditAction.RAFFLE_UPDATE,
            entity_type="raffle",
            entity_id=raffle.id,
            details={"fields": ["special_conditions"]},
        )
        return raffle_to_dict(raffle)

    return await with_raffle_transaction(raffle_id, _tx)


async def svc_transition(
    raffle_id: int,
    target: RaffleStatus,
    actor: Actor,
    *,
    reason: Optional[str] = None,
    expected_from: Optional[RaffleStatus] = None,
) -> Dict[str, Any]:
    """
    Перевести розыгрыш в target в его собственной транзакции.

    expected_from фиксирует ребро графа: если текущий статус (прочитанный под
    блокировкой) другой, переход отклоняется, даже когда из текущего статуса
    в target есть иное разрешённое ребро.
    """

    async def _tx(db: AsyncSession) -> Dict[str, Any]:
        raffle = await RafflesCRUD(db).lock_raffle(raffle_id)
        if raffle is None:
            raise RaffleNotFoundError(raffle_id)
        if expected_from is not None and raffle.status != expected_from.value:
            raise InvalidStateTransitionError(
                f"Raffle must be {expected_from.value} for this action.",
                details={
                    "raffle_id": raffle.id,
                    "from": raffle.status,
                    "to": target.value,
                    "expected": expected_from.value,
                },
            )
        await RaffleStateMachine.transition(db, raffle, target, actor, reason=reason)
        return raffle_to_dict(raffle)

    return await with_raffle_transaction(raffle_id, _tx)


async def svc_submit_raffle(actor: Actor, raffle_id: int) -> Dict[str, Any]:
    return await svc_transition(
        raffle_id, RaffleStatus.PENDING_APPROVAL, actor, expected_from=RaffleStatus.DRAFT
    )


async def svc_pause_raffle(actor: Actor, raffle_id: int) -> Dict[str, Any]:
    return await svc_transition(
        raffle_id, RaffleStatus.PAUSED, actor, expected_from=RaffleStatus.ACTIVE
    )


async def svc_resume_raffle(actor: Actor, raffle_id: int) -> Dict[str, Any]:
    return await svc_transition(
        raffle_id, RaffleStatus.ACTIVE, actor, expected_from=RaffleStatus.PAUSED
    )


async def svc_cancel_raffle(actor: Actor, raffle_id: int, reason: Optional[str]) -> Dict[str, Any]:
    return await svc_transition(raffle_id, RaffleStatus.CANCELLED, actor, reason=reason)


# -----------------------------------------------------------------------------
# Чтение
# -----------------------------------------------------------------------------
async def svc_get_raffle(db: AsyncSession, raffle_id: int) -> Dict[str, Any]:
    """Карточка розыгрыша: снимок + результат розыгрыша, если он есть."""
    crud = RafflesCRUD(db)
    raffle = await crud.get_raffle(raffle_id)
    if raffle is None:
        raise RaffleNotFoundError(raffle_id)
    card = raffle_to_dict(raffle)
    draw = await crud.get_draw_result(raffle.id)
    card["winning_number"] = draw.winning_number if draw is not None else None
    card["winner_user_id"] = draw.winner_user_id if draw is not None else None
    return card


async def svc_list_raffles(
    db: AsyncSession,
    *,
    limit: int = 50,
    statuses: Optional[Sequence[RaffleStatus]] = None,
    shop_id: Optional[int] = None,
    cursor: Optional[Tuple[datetime, int]] = None,
) -> Dict[str, Any]:
    rows = await RafflesCRUD(db).list_raffles_cursor(
        limit=limit, statuses=statuses, shop_id=shop_id, cursor=cursor
    )
    next_cursor = None
    if len(rows) == limit:
        last = rows[-1]
        next_cursor = encode_cursor(last.created_at, last.id)
    return {"items": [raffle_to_dict(r) for r in rows], "next_cursor": next_cursor}


async def svc_list_tickets(
    db: AsyncSession,
    raffle_id: int,
    *,
    limit: int = 100,
    after_number: Optional[int] = None,
    owner_id: Optional[int] = None,
) -> Dict[str, Any]:
    crud = RafflesCRUD(db)
    if await crud.get_raffle(raffle_id) is None:
        raise RaffleNotFoundError(raffle_id)
    rows = await crud.list_tickets_by_raffle(
        raffle_id, limit=limit, after_number=after_number, owner_id=owner_id
    )
    next_cursor = rows[-1].number if len(rows) == limit else None
    return {"items": [ticket_to_dict(t) for t in rows], "next_cursor": next_cursor}


async def svc_user_participations(db: AsyncSession, user_id: int) -> List[Dict[str, Any]]:
    """Розыгрыши, где у пользователя есть билеты (без DRAFT/PAUSED/отменённых)."""
    rows = await RafflesCRUD(db).participation_rows(user_id, statuses=PARTICIPATION_STATUSES)
    items: List[Dict[str, Any]] = []
    for raffle, tickets_count, winning_number in rows:
        item = raffle_to_dict(raffle)
        item["my_tickets"] = tickets_count
        item["is_winner"] = winning_number is not None
        item["my_winning_number"] = winning_number
        items.append(item)
    return items


__all__ = [
    "SHOP_ROLES",
    "PARTICIPATION_STATUSES",
    "ticket_to_dict",
    "svc_create_raffle",
    "svc_update_conditions",
    "svc_transition",
    "svc_submit_raffle",
    "svc_pause_raffle",
    "svc_resume_raffle",
    "svc_cancel_raffle",
    "svc_get_raffle",
    "svc_list_raffles",
    "svc_list_tickets",
    "svc_user_participations",
]
