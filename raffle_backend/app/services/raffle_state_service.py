# -*- coding: utf-8 -*-
# raffle_backend/app/services/raffle_state_service.py
# =============================================================================
# Назначение кода:
#   Машина состояний розыгрыша: граф статусов, роли, guard-условия и побочные
#   эффекты каждого перехода. Единственное место, где меняется Raffle.status.
#
# Канон/инварианты:
#   • Начальный статус DRAFT; терминальные FINISHED, CANCELLED, REJECTED.
#   • Переход вне графа → InvalidStateTransitionError, розыгрыш не меняется.
#   • Чужая роль → UnauthorizedError; актёр SHOP действует только в своём магазине.
#   • Каждый переход - ровно одна запись аудита (RAFFLE_*), в той же транзакции.
#   • Вызывающий держит транзакцию розыгрыша (with_raffle_transaction) и
#     передаёт розыгрыш, прочитанный через lock_raffle().
#
# Побочные эффекты (в той же транзакции):
#   • PENDING_APPROVAL → ACTIVE: activated_at; pending-депозит, если requires_deposit.
#   • → CANCELLED: проданные билеты → refunded; открытый депозит → released.
#   • SOLD_OUT → FINISHED: raffle_executed_at (победитель уже выставлен).
#
# Запреты:
#   • Здесь не выбирается победитель и не продаются билеты.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.core.errors_core import (
    InvalidStateTransitionError,
    MissingReasonError,
    MissingRejectReasonError,
    ShopBlockedError,
)
from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.core.security_core import (
    Actor,
    ActorRole,
    require_role,
    require_shop_owner,
)
from raffle_backend.app.core.system_locks import ensure_finished_has_winner
from raffle_backend.app.core.utils_core import as_utc, utcnow
from raffle_backend.app.crud.raffles_crud import RafflesCRUD
from raffle_backend.app.models import Raffle, RaffleStatus, Shop
from raffle_backend.app.services import deposits_service
from raffle_backend.app.services.admin.admin_logging import AuditAction, AuditLogger

logger = get_logger(__name__)

TERMINAL_STATUSES: FrozenSet[RaffleStatus] = frozenset(
    {RaffleStatus.FINISHED, RaffleStatus.CANCELLED, RaffleStatus.REJECTED}
)


@dataclass(frozen=True)
class TransitionRule:
    roles: FrozenSet[ActorRole]
    action: AuditAction
    requires_reason: bool = False


_SHOP_ADMIN = frozenset({ActorRole.SHOP, ActorRole.ADMIN})

ALLOWED_TRANSITIONS: Dict[Tuple[RaffleStatus, RaffleStatus], TransitionRule] = {
    (RaffleStatus.DRAFT, RaffleStatus.PENDING_APPROVAL): TransitionRule(
        frozenset({ActorRole.SHOP}), AuditAction.RAFFLE_SUBMIT
    ),
    (RaffleStatus.PENDING_APPROVAL, RaffleStatus.ACTIVE): TransitionRule(
        frozenset({ActorRole.ADMIN}), AuditAction.RAFFLE_APPROVE
    ),
    (RaffleStatus.PENDING_APPROVAL, RaffleStatus.REJECTED): TransitionRule(
        frozenset({ActorRole.ADMIN}), AuditAction.RAFFLE_REJECT, requires_reason=True
    ),
    (RaffleStatus.ACTIVE, RaffleStatus.PAUSED): TransitionRule(
        _SHOP_ADMIN, AuditAction.RAFFLE_PAUSE
    ),
    (RaffleStatus.PAUSED, RaffleStatus.ACTIVE): TransitionRule(
        _SHOP_ADMIN, AuditAction.RAFFLE_RESUME
    ),
    (RaffleStatus.ACTIVE, RaffleStatus.SOLD_OUT): TransitionRule(
        frozenset({ActorRole.USER, ActorRole.SYSTEM}), AuditAction.RAFFLE_SOLD_OUT
    ),
    (RaffleStatus.SOLD_OUT, RaffleStatus.FINISHED): TransitionRule(
        frozenset({ActorRole.SYSTEM, ActorRole.ADMIN}), AuditAction.RAFFLE_FINISH
    ),
}
for _source in (
    RaffleStatus.DRAFT,
    RaffleStatus.PENDING_APPROVAL,
    RaffleStatus.ACTIVE,
    RaffleStatus.PAUSED,
):
    ALLOWED_TRANSITIONS[(_source, RaffleStatus.CANCELLED)] = TransitionRule(
        _SHOP_ADMIN, AuditAction.RAFFLE_CANCEL, requires_reason=True
    )


def can_transition(current: RaffleStatus, target: RaffleStatus) -> bool:
    return (current, target) in ALLOWED_TRANSITIONS


def raffle_to_dict(raffle: Raffle) -> Dict[str, Any]:
    """Плоский снимок розыгрыша для ответов сервисов/роутов."""
    return {
        "id": raffle.id,
        "shop_id": raffle.shop_id,
        "product_id": raffle.product_id,
        "product_value": str(raffle.product_value),
        "total_tickets": raffle.total_tickets,
        "sold_tickets": raffle.sold_tickets,
        "remaining_tickets": raffle.total_tickets - raffle.sold_tickets,
        "status": raffle.status,
        "requires_deposit": raffle.requires_deposit,
        "winner_ticket_id": raffle.winner_ticket_id,
        "special_conditions": raffle.special_conditions,
        "created_at": as_utc(raffle.created_at),
        "activated_at": as_utc(raffle.activated_at),
        "raffle_executed_at": as_utc(raffle.raffle_executed_at),
    }


class RaffleStateMachine:
    """Проверяет и применяет переходы статуса розыгрыша."""

    @staticmethod
    async def transition(
        db: AsyncSession,
        raffle: Raffle,
        target: RaffleStatus,
        actor: Actor,
        *,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Raffle:
        current = RaffleStatus(raffle.status)
        rule = ALLOWED_TRANSITIONS.get((current, target))
        if rule is None:
            logger.info(
                "Rejected raffle transition",
                extra={"raffle_id": raffle.id, "from": current.value, "to": target.value},
            )
            raise InvalidStateTransitionError(
                f"Raffle cannot move from {current.value} to {target.value}.",
                details={"raffle_id": raffle.id, "from": current.value, "to": target.value},
            )

        require_role(actor, rule.roles, action=rule.action.value)
        require_shop_owner(actor, raffle.shop_id, action=rule.action.value)

        clean_reason = (reason or "").strip() or None
        if rule.requires_reason and clean_reason is None:
            if target == RaffleStatus.REJECTED:
                raise MissingRejectReasonError()
            raise MissingReasonError(details={"raffle_id": raffle.id, "to": target.value})

        await RaffleStateMachine._check_guard(db, raffle, current, target)

        extra_details: Dict[str, Any] = dict(details or {})
        await RaffleStateMachine._apply_side_effects(
            db, raffle, current, target, actor, clean_reason, extra_details
        )

        raffle.status = target.value
        ensure_finished_has_winner(
            raffle_id=raffle.id,
            finished=target == RaffleStatus.FINISHED,
            winner_ticket_id=raffle.winner_ticket_id,
        )
        await db.flush()

        await AuditLogger.write(
            db,
            actor=actor,
            action=rule.action,
            entity_type="raffle",
            entity_id=raffle.id,
            previous_status=current.value,
            new_status=target.value,
            reason=clean_reason,
            details=extra_details or None,
        )
        logger.info(
            "Raffle status changed",
            extra={
                "raffle_id": raffle.id,
                "from": current.value,
                "to": target.value,
                "actor_id": actor.id,
                "actor_role": actor.role.value,
            },
        )
        return raffle

    @staticmethod
    async def _check_guard(
        db: AsyncSession,
        raffle: Raffle,
        current: RaffleStatus,
        target: RaffleStatus,
    ) -> None:
        if target == RaffleStatus.PENDING_APPROVAL:
            shop = await db.get(Shop, raffle.shop_id)
            if shop is None or shop.status == "blocked":
                raise ShopBlockedError(raffle.shop_id)
        elif target == RaffleStatus.SOLD_OUT:
            if raffle.sold_tickets != raffle.total_tickets:
                raise InvalidStateTransitionError(
                    "Raffle is not fully sold.",
                    details={
                        "raffle_id": raffle.id,
                        "sold_tickets": raffle.sold_tickets,
                        "total_tickets": raffle.total_tickets,
                    },
                )
        elif target == RaffleStatus.FINISHED:
            if raffle.winner_ticket_id is None:
                raise InvalidStateTransitionError(
                    "Winner must be set before finishing.",
                    details={"raffle_id": raffle.id},
                )

    @staticmethod
    async def _apply_side_effects(
        db: AsyncSession,
        raffle: Raffle,
        current: RaffleStatus,
        target: RaffleStatus,
        actor: Actor,
        reason: Optional[str],
        details: Dict[str, Any],
    ) -> None:
        now = utcnow()
        if current == RaffleStatus.PENDING_APPROVAL and target == RaffleStatus.ACTIVE:
            raffle.activated_at = now
            if raffle.requires_deposit:
                deposit = await deposits_service.open_for_raffle(db, raffle, actor)
                details["deposit_id"] = deposit.id
        elif target == RaffleStatus.CANCELLED:
            refunded = await RafflesCRUD(db).refund_sold_tickets(raffle.id)
            details["refunded_tickets"] = refunded
            deposit = await deposits_service.release_for_raffle(db, raffle, actor, reason=reason)
            if deposit is not None:
                details["deposit_id"] = deposit.id
        elif target == RaffleStatus.FINISHED:
            raffle.raffle_executed_at = now


__all__ = [
    "TERMINAL_STATUSES",
    "TransitionRule",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "raffle_to_dict",
    "RaffleStateMachine",
]
