# -*- coding: utf-8 -*-
# raffle_backend/app/services/winner_service.py
# =============================================================================
# Назначение кода:
#   Выбор победителя распроданного розыгрыша и его финализация.
#   • finalize_in_tx()    - внутри уже открытой транзакции розыгрыша;
#   • svc_select_winner() - отдельная транзакция (планировщик, админ).
#
# Канон/инварианты:
#   • Номер тянется равномерно из [1..total] криптостойким источником
#     (secrets.randbelow); в тестах источник подменяется параметром rng.
#   • В одном commit: билет → winner, winner_ticket_id, SOLD_OUT→FINISHED,
#     raffle_executed_at, RaffleDrawResult, запись аудита.
#   • Повторный вызов на FINISHED - no-op, возвращает тот же результат.
#
# ИИ-защита/самовосстановление:
#   • Планировщик добирает SOLD_OUT без победителя после рестарта; повтор
#     защищён статусом и уникальностью RaffleDrawResult.raffle_id.
#
# Запреты:
#   • Никакого random.random(): только secrets.
# =============================================================================

from __future__ import annotations

import secrets
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.core.errors_core import (
    InvalidStateTransitionError,
    RaffleNotFoundError,
)
from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.core.security_core import Actor, ActorRole, require_role
from raffle_backend.app.core.system_locks import (
    InvariantViolation,
    ensure_ticket_number_in_range,
)
from raffle_backend.app.crud.raffles_crud import RafflesCRUD
from raffle_backend.app.models import Raffle, RaffleDrawResult, RaffleStatus, TicketStatus
from raffle_backend.app.services.raffle_state_service import RaffleStateMachine
from raffle_backend.app.services.raffle_tx_service import with_raffle_transaction

logger = get_logger(__name__)

SELECT_ROLES = (ActorRole.SYSTEM, ActorRole.ADMIN)
ENTROPY_SOURCE = "secrets"


def _result_to_dict(result: RaffleDrawResult, *, already_finished: bool) -> Dict[str, Any]:
    return {
        "raffle_id": result.raffle_id,
        "winning_number": result.winning_number,
        "winning_ticket_id": result.winning_ticket_id,
        "winner_user_id": result.winner_user_id,
        "total_tickets": result.total_tickets,
        "entropy_source": result.entropy_source,
        "drawn_at": result.drawn_at,
        "already_finished": already_finished,
    }


async def finalize_in_tx(
    db: AsyncSession,
    raffle: Raffle,
    actor: Actor,
    *,
    rng: Optional[Callable[[int], int]] = None,
) -> Dict[str, Any]:
    """
    Выбрать победителя и перевести розыгрыш в FINISHED.

    raffle должен быть прочитан через lock_raffle() в текущей транзакции.
    rng(n) возвращает целое из [0, n); по умолчанию secrets.randbelow.
    """
    crud = RafflesCRUD(db)

    if raffle.status == RaffleStatus.FINISHED.value:
        existing = await crud.get_draw_result(raffle.id)
        if existing is None:
            raise InvariantViolation(f"raffle={raffle.id}: finished without draw result")
        return _result_to_dict(existing, already_finished=True)

    if raffle.status != RaffleStatus.SOLD_OUT.value:
        raise InvalidStateTransitionError(
            "Winner can only be selected for a sold-out raffle.",
            details={"raffle_id": raffle.id, "status": raffle.status},
        )

    draw = rng or secrets.randbelow
    number = int(draw(raffle.total_tickets)) + 1
    ensure_ticket_number_in_range(
        raffle_id=raffle.id,
        number=number,
        total_tickets=raffle.total_tickets,
    )

    ticket = await crud.get_ticket_by_number(raffle.id, number)
    if ticket is None:
        logger.critical(
            "Winning number has no ticket",
            extra={"raffle_id": raffle.id, "number": number},
        )
        raise InvariantViolation(f"raffle={raffle.id}: ticket #{number} does not exist")

    # Статус, победитель и билет уходят в БД одним flush внутри transition().
    ticket.status = TicketStatus.WINNER.value
    raffle.winner_ticket_id = ticket.id
    await RaffleStateMachine.transition(
        db,
        raffle,
        RaffleStatus.FINISHED,
        actor,
        details={
            "winning_number": number,
            "winning_ticket_id": ticket.id,
            "winner_user_id": ticket.owner_id,
            "entropy_source": ENTROPY_SOURCE,
        },
    )

    result = await crud.set_draw_result_if_absent(
        raffle_id=raffle.id,
        winning_number=number,
        winning_ticket_id=ticket.id,
        winner_user_id=ticket.owner_id,
        total_tickets=raffle.total_tickets,
        entropy_source=ENTROPY_SOURCE,
    )
    logger.info(
        "Raffle winner selected",
        extra={
            "raffle_id": raffle.id,
            "winning_number": number,
            "winning_ticket_id": ticket.id,
            "winner_user_id": ticket.owner_id,
        },
    )
    return _result_to_dict(result, already_finished=False)


async def svc_select_winner(
    raffle_id: int,
    actor: Actor,
    *,
    rng: Optional[Callable[[int], int]] = None,
) -> Dict[str, Any]:
    require_role(actor, SELECT_ROLES, action="select_winner")

    async def _tx(db: AsyncSession) -> Dict[str, Any]:
        raffle = await RafflesCRUD(db).lock_raffle(raffle_id)
        if raffle is None:
            raise RaffleNotFoundError(raffle_id)
        return await finalize_in_tx(db, raffle, actor, rng=rng)

    return await with_raffle_transaction(raffle_id, _tx)


__all__ = ["SELECT_ROLES", "ENTROPY_SOURCE", "finalize_in_tx", "svc_select_winner"]
