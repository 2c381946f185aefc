# -*- coding: utf-8 -*-
# raffle_backend/app/services/deposits_service.py
# =============================================================================
# Назначение кода:
#   Учёт гарантийных депозитов магазина под розыгрыши крупных товаров.
#   • open_for_raffle()    - pending-депозит при активации розыгрыша;
#   • release_for_raffle() - освобождение открытого депозита при отмене;
#   • svc_hold/svc_release/svc_execute - ручные действия администратора.
#
# Канон/инварианты:
#   • Граф статусов: pending → held → released | executed; pending → released.
#   • Каждая смена статуса депозита - одна запись аудита (DEPOSIT_*).
#   • Депозит живёт в транзакции своего розыгрыша: все изменения идут через
#     with_raffle_transaction(raffle_id, ...), как и переходы розыгрыша.
#
# Запреты:
#   • Реальных денежных движений нет - только статус и сумма.
# =============================================================================

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.core.errors_core import (
    InvalidStateTransitionError,
    NotFoundError,
)
from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.core.security_core import Actor, ActorRole, require_role
from raffle_backend.app.crud.deposits_crud import DepositsCRUD
from raffle_backend.app.models import Deposit, DepositStatus, Raffle
from raffle_backend.app.services.admin.admin_logging import AuditAction, AuditLogger
from raffle_backend.app.services.raffle_tx_service import with_raffle_transaction

logger = get_logger(__name__)

DEPOSIT_TRANSITIONS: Dict[DepositStatus, frozenset[DepositStatus]] = {
    DepositStatus.PENDING: frozenset({DepositStatus.HELD, DepositStatus.RELEASED}),
    DepositStatus.HELD: frozenset({DepositStatus.RELEASED, DepositStatus.EXECUTED}),
    DepositStatus.RELEASED: frozenset(),
    DepositStatus.EXECUTED: frozenset(),
}

_ACTION_BY_TARGET = {
    DepositStatus.HELD: AuditAction.DEPOSIT_HOLD,
    DepositStatus.RELEASED: AuditAction.DEPOSIT_RELEASE,
    DepositStatus.EXECUTED: AuditAction.DEPOSIT_EXECUTE,
}


def deposit_to_dict(deposit: Deposit) -> Dict[str, Any]:
    return {
        "id": deposit.id,
        "raffle_id": deposit.raffle_id,
        "shop_id": deposit.shop_id,
        "amount": str(deposit.amount),
        "status": deposit.status,
    }


async def _move(
    db: AsyncSession,
    deposit: Deposit,
    target: DepositStatus,
    actor: Actor,
    *,
    reason: Optional[str] = None,
) -> Deposit:
    current = DepositStatus(deposit.status)
    if target not in DEPOSIT_TRANSITIONS[current]:
        raise InvalidStateTransitionError(
            f"Deposit cannot move from {current.value} to {target.value}.",
            details={"deposit_id": deposit.id, "from": current.value, "to": target.value},
        )
    deposit.status = target.value
    await db.flush()
    await AuditLogger.write(
        db,
        actor=actor,
        action=_ACTION_BY_TARGET[target],
        entity_type="deposit",
        entity_id=deposit.id,
        previous_status=current.value,
        new_status=target.value,
        reason=reason,
        details={"raffle_id": deposit.raffle_id, "amount": str(deposit.amount)},
    )
    logger.info(
        "Deposit status changed",
        extra={
            "deposit_id": deposit.id,
            "raffle_id": deposit.raffle_id,
            "from": current.value,
            "to": target.value,
        },
    )
    return deposit


# -----------------------------------------------------------------------------
# Вызовы из машины состояний (внутри уже открытой транзакции розыгрыша)
# -----------------------------------------------------------------------------
async def open_for_raffle(db: AsyncSession, raffle: Raffle, actor: Actor) -> Deposit:
    deposit, created = await DepositsCRUD(db).create_if_absent(
        raffle_id=raffle.id,
        shop_id=raffle.shop_id,
        amount=raffle.product_value,
    )
    if created:
        await AuditLogger.write(
            db,
            actor=actor,
            action=AuditAction.DEPOSIT_CREATE,
            entity_type="deposit",
            entity_id=deposit.id,
            previous_status=None,
            new_status=deposit.status,
            details={"raffle_id": raffle.id, "amount": str(deposit.amount)},
        )
    return deposit


async def release_for_raffle(
    db: AsyncSession,
    raffle: Raffle,
    actor: Actor,
    *,
    reason: Optional[str] = None,
) -> Optional[Deposit]:
    """Освободить депозит розыгрыша, если он ещё открыт (pending/held)."""
    deposit = await DepositsCRUD(db).get_by_raffle(raffle.id, for_update=True)
    if deposit is None:
        return None
    if DepositStatus(deposit.status) in (DepositStatus.PENDING, DepositStatus.HELD):
        await _move(db, deposit, DepositStatus.RELEASED, actor, reason=reason)
    return deposit


# -----------------------------------------------------------------------------
# Ручные действия администратора
# -----------------------------------------------------------------------------
async def _svc_move(
    raffle_id: int,
    target: DepositStatus,
    actor: Actor,
    reason: Optional[str],
) -> Dict[str, Any]:
    require_role(actor, (ActorRole.ADMIN,), action=f"deposit_{target.value}")

    async def _tx(db: AsyncSession) -> Dict[str, Any]:
        deposit = await DepositsCRUD(db).get_by_raffle(raffle_id, for_update=True)
        if deposit is None:
            raise NotFoundError(
                f"Deposit for raffle {raffle_id} not found.",
                details={"raffle_id": raffle_id},
            )
        await _move(db, deposit, target, actor, reason=reason)
        return deposit_to_dict(deposit)

    return await with_raffle_transaction(raffle_id, _tx)


async def svc_hold_deposit(raffle_id: int, actor: Actor) -> Dict[str, Any]:
    return await _svc_move(raffle_id, DepositStatus.HELD, actor, None)


async def svc_release_deposit(
    raffle_id: int, actor: Actor, *, reason: Optional[str] = None
) -> Dict[str, Any]:
    return await _svc_move(raffle_id, DepositStatus.RELEASED, actor, reason)


async def svc_execute_deposit(
    raffle_id: int, actor: Actor, *, reason: Optional[str] = None
) -> Dict[str, Any]:
    return await _svc_move(raffle_id, DepositStatus.EXECUTED, actor, reason)


async def svc_get_deposit(db: AsyncSession, raffle_id: int) -> Dict[str, Any]:
    deposit = await DepositsCRUD(db).get_by_raffle(raffle_id)
    if deposit is None:
        raise NotFoundError(
            f"Deposit for raffle {raffle_id} not found.",
            details={"raffle_id": raffle_id},
        )
    return deposit_to_dict(deposit)


__all__ = [
    "DEPOSIT_TRANSITIONS",
    "deposit_to_dict",
    "open_for_raffle",
    "release_for_raffle",
    "svc_hold_deposit",
    "svc_release_deposit",
    "svc_execute_deposit",
    "svc_get_deposit",
]
