# -*- coding: utf-8 -*-
# raffle_backend/app/services/payments_service.py
# =============================================================================
# Назначение кода:
#   Приём подтверждённых платежей за билеты. Платёжный шлюз вне системы:
#   сюда приходит только результат - сумма, количество и payment_ref.
#
# Канон/инварианты:
#   • Один payment_ref - одна покупка. Повтор подтверждения возвращает те же
#     номера билетов (replayed=True) и ничего не аллоцирует повторно.
#   • Билеты выдаются только через TicketAllocator (tickets_service).
#
# Запреты:
#   • Никаких списаний/возвратов денег и обращений к шлюзу.
# =============================================================================

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.core.security_core import Actor, ActorRole
from raffle_backend.app.services import tickets_service

logger = get_logger(__name__)


class ConfirmedPayment(BaseModel):
    """Результат платежа от платёжного коллаборатора."""

    model_config = ConfigDict(frozen=True)

    raffle_id: int = Field(..., ge=1)
    user_id: int = Field(..., ge=1)
    quantity: int = Field(..., ge=1)
    amount: Decimal = Field(..., gt=0)
    payment_ref: str = Field(..., min_length=1, max_length=128)


async def svc_confirm_payment(
    payment: ConfirmedPayment,
    *,
    actor: Optional[Actor] = None,
    rng: Optional[Callable[[int], int]] = None,
) -> Dict[str, Any]:
    """
    Выдать билеты по подтверждённому платежу.

    actor по умолчанию - сам покупатель (роль USER); интеграция шлюза может
    передать Actor.system() и покупать за user_id.
    """
    buyer = actor or Actor(id=payment.user_id, role=ActorRole.USER)
    result = await tickets_service.svc_reserve_tickets(
        payment.raffle_id,
        payment.quantity,
        buyer,
        payment_ref=payment.payment_ref,
        owner_id=payment.user_id,
        amount=payment.amount,
        rng=rng,
    )
    logger.info(
        "Payment confirmed",
        extra={
            "raffle_id": payment.raffle_id,
            "user_id": payment.user_id,
            "quantity": payment.quantity,
            "replayed": result["replayed"],
        },
    )
    return result


__all__ = ["ConfirmedPayment", "svc_confirm_payment"]
