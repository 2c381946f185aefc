# -*- coding: utf-8 -*-
# raffle_backend/app/services/tickets_service.py
# =============================================================================
# Назначение кода:
#   Аллокатор билетов розыгрыша.
#   • compute_total_tickets() - число билетов из стоимости товара;
#   • reserve_in_tx()         - резерв N билетов внутри транзакции розыгрыша;
#   • svc_reserve_tickets()   - то же самое через with_raffle_transaction.
#
# Канон/инварианты:
#   • total = floor(value × TICKETS_PER_CURRENCY_UNIT), только Decimal.
#   • Номера выдаются подряд из счётчика sold_tickets: [sold+1 .. sold+N].
#     Номер никогда не переиспользуется (refunded-номера остаются занятыми).
#   • Частичной продажи нет: N > remaining → InsufficientTicketsError.
#   • Единственное место, где меняется Raffle.sold_tickets.
#   • sold == total → ACTIVE→SOLD_OUT в той же транзакции; в режиме inline там же
#     выбирается победитель.
#
# ИИ-защита/самовосстановление:
#   • payment_ref - якорь идемпотентности: повтор с тем же ref возвращает
#     уже выданные номера и ничего не аллоцирует.
#   • Перед выдачей номеров счётчик сверяется с max(number) в БД; расхождение -
#     InvariantViolation, транзакция откатывается.
#
# Запреты:
#   • Никаких денежных операций: сумма платежа только записывается в покупку.
# =============================================================================

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.core.config_core import get_settings
from raffle_backend.app.core.errors_core import (
    InsufficientTicketsError,
    InvalidProductValueError,
    InvalidStateTransitionError,
    RaffleNotFoundError,
    ValidationError,
)
from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.core.security_core import Actor, ActorRole, require_role
from raffle_backend.app.core.system_locks import (
    DuplicateTicketNumberError,
    ensure_counter_matches_tickets,
    ensure_sold_within_total,
)
from raffle_backend.app.core.utils_core import (
    NumberLike,
    decimal_from,
    floor_int,
    quantize_decimal,
)
from raffle_backend.app.crud.raffles_crud import RafflesCRUD
from raffle_backend.app.models import RaffleStatus, TicketPurchase
from raffle_backend.app.services import winner_service
from raffle_backend.app.services.raffle_state_service import RaffleStateMachine
from raffle_backend.app.services.raffle_tx_service import with_raffle_transaction

logger = get_logger(__name__)
settings = get_settings()

RESERVE_ROLES = (ActorRole.USER, ActorRole.SYSTEM)


# -----------------------------------------------------------------------------
# Число билетов
# -----------------------------------------------------------------------------
def compute_total_tickets(product_value: NumberLike) -> int:
    """floor(value × TICKETS_PER_CURRENCY_UNIT); 100.00 → 200, 49.99 → 99."""
    try:
        value = decimal_from(product_value)
    except ValueError as exc:
        raise InvalidProductValueError(
            "Product value must be a number.",
            details={"value": str(product_value)},
        ) from exc
    if not value.is_finite():
        raise InvalidProductValueError(
            "Product value must be a finite number.",
            details={"value": str(product_value)},
        )
    total = floor_int(value * Decimal(settings.TICKETS_PER_CURRENCY_UNIT))
    if total <= 0:
        raise InvalidProductValueError(
            "Product value is too small to produce any tickets.",
            details={"value": str(value), "total_tickets": total},
        )
    return total


def _validate_quantity(quantity: int) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer.", details={"field": "quantity"})
    if quantity < 1:
        raise ValidationError(
            "quantity must be at least 1.",
            details={"field": "quantity", "value": quantity},
        )
    if quantity > settings.MAX_TICKETS_PER_PURCHASE:
        raise ValidationError(
            f"quantity must not exceed {settings.MAX_TICKETS_PER_PURCHASE}.",
            details={
                "field": "quantity",
                "value": quantity,
                "max": settings.MAX_TICKETS_PER_PURCHASE,
            },
        )
    return quantity


def _validate_amount(amount: Optional[NumberLike]) -> Optional[Decimal]:
    if amount is None:
        return None
    try:
        value = decimal_from(amount)
    except ValueError as exc:
        raise ValidationError("amount must be a number.", details={"field": "amount"}) from exc
    if not value.is_finite() or value <= 0:
        raise ValidationError(
            "amount must be a positive number.",
            details={"field": "amount", "value": str(amount)},
        )
    return quantize_decimal(value)


def _purchase_result(purchase: TicketPurchase, *, replayed: bool) -> Dict[str, Any]:
    return {
        "raffle_id": purchase.raffle_id,
        "purchase_id": purchase.id,
        "payment_ref": purchase.payment_ref,
        "ticket_numbers": list(range(purchase.first_number, purchase.last_number + 1)),
        "replayed": replayed,
    }


# -----------------------------------------------------------------------------
# Резерв внутри транзакции розыгрыша
# -----------------------------------------------------------------------------
async def reserve_in_tx(
    db: AsyncSession,
    *,
    raffle_id: int,
    quantity: int,
    actor: Actor,
    payment_ref: str,
    owner_id: Optional[int] = None,
    amount: Optional[Decimal] = None,
    rng: Optional[Callable[[int], int]] = None,
) -> Dict[str, Any]:
    """
    Зарезервировать quantity билетов за owner_id (по умолчанию actor.id).

    Вызывающий держит транзакцию розыгрыша. Возвращает словарь с номерами
    билетов, итоговым статусом розыгрыша и флагом replayed.
    """
    crud = RafflesCRUD(db)
    owner = int(owner_id if owner_id is not None else actor.id)

    raffle = await crud.lock_raffle(raffle_id)
    if raffle is None:
        raise RaffleNotFoundError(raffle_id)

    # Под блокировкой строки: параллельное подтверждение того же payment_ref
    # ждёт commit первого и видит его покупку.
    existing = await crud.get_purchase_by_ref(payment_ref)
    if existing is not None:
        if (
            existing.raffle_id != int(raffle_id)
            or existing.user_id != owner
            or existing.quantity != quantity
        ):
            raise ValidationError(
                "payment_ref was already used for a different purchase.",
                details={"payment_ref": payment_ref},
            )
        logger.info(
            "Purchase replayed by payment_ref",
            extra={"raffle_id": raffle_id, "purchase_id": existing.id},
        )
        result = _purchase_result(existing, replayed=True)
        result["raffle_status"] = raffle.status
        return result

    if raffle.status != RaffleStatus.ACTIVE.value:
        raise InvalidStateTransitionError(
            "Tickets can only be bought for an active raffle.",
            details={"raffle_id": raffle.id, "status": raffle.status},
        )

    remaining = raffle.total_tickets - raffle.sold_tickets
    if quantity > remaining:
        logger.info(
            "Reserve rejected: not enough tickets",
            extra={"raffle_id": raffle.id, "requested": quantity, "remaining": remaining},
        )
        raise InsufficientTicketsError(requested=quantity, remaining=remaining)

    ensure_counter_matches_tickets(
        raffle_id=raffle.id,
        sold_tickets=raffle.sold_tickets,
        max_ticket_number=await crud.max_ticket_number(raffle.id),
    )

    first_number = raffle.sold_tickets + 1
    last_number = raffle.sold_tickets + quantity
    raffle.sold_tickets = last_number
    ensure_sold_within_total(
        raffle_id=raffle.id,
        sold_tickets=raffle.sold_tickets,
        total_tickets=raffle.total_tickets,
    )
    await db.flush()

    purchase = TicketPurchase(
        raffle_id=raffle.id,
        user_id=owner,
        payment_ref=payment_ref,
        quantity=quantity,
        amount=amount,
        first_number=first_number,
        last_number=last_number,
    )
    try:
        await crud.add_purchase(purchase)
    except IntegrityError as exc:
        raise ValidationError(
            "payment_ref conflicts with another purchase.",
            details={"payment_ref": payment_ref},
        ) from exc

    numbers = list(range(first_number, last_number + 1))
    try:
        await crud.create_tickets(
            raffle_id=raffle.id,
            owner_id=owner,
            numbers=numbers,
            purchase_id=purchase.id,
        )
    except IntegrityError as exc:
        logger.critical(
            "Duplicate ticket number on insert",
            extra={"raffle_id": raffle.id, "first": first_number, "last": last_number},
        )
        raise DuplicateTicketNumberError(
            f"raffle={raffle.id}: ticket numbers {first_number}..{last_number} already taken"
        ) from exc

    logger.info(
        "Tickets reserved",
        extra={
            "raffle_id": raffle.id,
            "owner_id": owner,
            "quantity": quantity,
            "first": first_number,
            "last": last_number,
            "sold_tickets": raffle.sold_tickets,
            "total_tickets": raffle.total_tickets,
        },
    )

    if raffle.sold_tickets == raffle.total_tickets:
        await RaffleStateMachine.transition(
            db,
            raffle,
            RaffleStatus.SOLD_OUT,
            actor,
            details={"purchase_id": purchase.id},
        )
        if settings.draw_inline:
            await winner_service.finalize_in_tx(db, raffle, Actor.system(), rng=rng)

    result = _purchase_result(purchase, replayed=False)
    result["raffle_status"] = raffle.status
    return result


async def svc_reserve_tickets(
    raffle_id: int,
    quantity: int,
    actor: Actor,
    *,
    payment_ref: str,
    owner_id: Optional[int] = None,
    amount: Optional[NumberLike] = None,
    rng: Optional[Callable[[int], int]] = None,
) -> Dict[str, Any]:
    """Публичная точка TicketAllocator.reserve: валидация + транзакция розыгрыша."""
    require_role(actor, RESERVE_ROLES, action="reserve_tickets")
    qty = _validate_quantity(quantity)
    clean_amount = _validate_amount(amount)
    ref = (payment_ref or "").strip()
    if not ref:
        raise ValidationError("payment_ref is required.", details={"field": "payment_ref"})

    async def _tx(db: AsyncSession) -> Dict[str, Any]:
        return await reserve_in_tx(
            db,
            raffle_id=raffle_id,
            quantity=qty,
            actor=actor,
            payment_ref=ref,
            owner_id=owner_id,
            amount=clean_amount,
            rng=rng,
        )

    return await with_raffle_transaction(raffle_id, _tx)


async def reserve(
    raffle_id: int,
    quantity: int,
    owner_id: int,
    *,
    payment_ref: str,
    amount: Optional[NumberLike] = None,
) -> List[int]:
    """Короткая форма: номера билетов, выданных пользователю owner_id."""
    result = await svc_reserve_tickets(
        raffle_id,
        quantity,
        Actor(id=int(owner_id), role=ActorRole.USER),
        payment_ref=payment_ref,
        amount=amount,
    )
    return list(result["ticket_numbers"])


__all__ = [
    "RESERVE_ROLES",
    "compute_total_tickets",
    "reserve_in_tx",
    "svc_reserve_tickets",
    "reserve",
]
