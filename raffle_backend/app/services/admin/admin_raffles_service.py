# -*- coding: utf-8 -*-
# raffle_backend/app/services/admin/admin_raffles_service.py
# =============================================================================
# Raffles - модерация розыгрышей (админ-сервис)
# -----------------------------------------------------------------------------
# Назначение:
#   • ApprovalWorkflow - админский шлюз PENDING_APPROVAL → ACTIVE / REJECTED:
#       - approve(): активация (и депозит, если товар крупный);
#       - reject():  отклонение с обязательной причиной;
#       - cancel():  отмена розыгрыша администратором с причиной;
#       - execute(): ручной запуск выбора победителя для SOLD_OUT;
#       - list_pending(): очередь на модерацию.
#
# Жёсткие инварианты (ИИ-защита):
#   1) Только роль ADMIN, иначе UnauthorizedError - до любого чтения/записи.
#   2) Причина отклонения проверяется ДО мутации: пустая причина →
#      MissingRejectReasonError, розыгрыш остаётся PENDING_APPROVAL.
#   3) Каждое решение - запись аудита в той же транзакции (через машину
#      состояний).
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.core.errors_core import MissingRejectReasonError
from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.core.security_core import Actor, ActorRole, require_role
from raffle_backend.app.models import RaffleStatus
from raffle_backend.app.services import raffles_service, winner_service

logger = get_logger(__name__)

_ADMIN_ONLY = (ActorRole.ADMIN,)


class ApprovalWorkflow:
    """Админские решения по розыгрышам."""

    @staticmethod
    async def approve(actor: Actor, raffle_id: int) -> Dict[str, Any]:
        require_role(actor, _ADMIN_ONLY, action="raffle_approve")
        result = await raffles_service.svc_transition(
            raffle_id,
            RaffleStatus.ACTIVE,
            actor,
            expected_from=RaffleStatus.PENDING_APPROVAL,
        )
        logger.info(
            "Raffle approved",
            extra={"raffle_id": raffle_id, "admin_id": actor.id},
        )
        return result

    @staticmethod
    async def reject(actor: Actor, raffle_id: int, reason: Optional[str]) -> Dict[str, Any]:
        require_role(actor, _ADMIN_ONLY, action="raffle_reject")
        clean_reason = (reason or "").strip()
        if not clean_reason:
            raise MissingRejectReasonError()
        result = await raffles_service.svc_transition(
            raffle_id,
            RaffleStatus.REJECTED,
            actor,
            reason=clean_reason,
            expected_from=RaffleStatus.PENDING_APPROVAL,
        )
        logger.info(
            "Raffle rejected",
            extra={"raffle_id": raffle_id, "admin_id": actor.id},
        )
        return result

    @staticmethod
    async def cancel(actor: Actor, raffle_id: int, reason: Optional[str]) -> Dict[str, Any]:
        require_role(actor, _ADMIN_ONLY, action="raffle_cancel")
        return await raffles_service.svc_cancel_raffle(actor, raffle_id, reason)

    @staticmethod
    async def execute(
        actor: Actor,
        raffle_id: int,
        *,
        rng: Optional[Callable[[int], int]] = None,
    ) -> Dict[str, Any]:
        require_role(actor, _ADMIN_ONLY, action="raffle_execute")
        return await winner_service.svc_select_winner(raffle_id, actor, rng=rng)

    @staticmethod
    async def list_pending(
        db: AsyncSession,
        actor: Actor,
        *,
        limit: int = 50,
        cursor: Optional[Tuple[datetime, int]] = None,
    ) -> Dict[str, Any]:
        require_role(actor, _ADMIN_ONLY, action="raffle_list_pending")
        return await raffles_service.svc_list_raffles(
            db,
            limit=limit,
            statuses=(RaffleStatus.PENDING_APPROVAL,),
            cursor=cursor,
        )


__all__ = ["ApprovalWorkflow"]
