# -*- coding: utf-8 -*-
# raffle_backend/app/routes/admin/admin_raffles_routes.py
# =============================================================================
# Назначение кода:
# Админ-API розыгрышей: очередь модерации, approve/reject/cancel, ручной запуск
# выбора победителя, журнал аудита, депозиты магазинов.
#
# Канон/инварианты (важно):
# • Вход - только роль ADMIN (require_admin); сервисы повторно проверяют роль.
# • Отклонение и отмена требуют непустую причину (422 при пустой).
# • Журнал аудита только читается: записи никогда не меняются и не удаляются.
#
# Запреты:
# • Никаких прямых SQL из роутов; только сервисные функции.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.core.security_core import Actor
from raffle_backend.app.deps import get_db, pagination_params, require_admin
from raffle_backend.app.schemas.raffles_schemas import (
    DepositOut,
    DrawResultOut,
    RaffleOut,
    RafflePage,
    ReasonIn,
)
from raffle_backend.app.services import deposits_service
from raffle_backend.app.services.admin.admin_logging import AuditLog, AuditLogger
from raffle_backend.app.services.admin.admin_raffles_service import ApprovalWorkflow

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Модерация розыгрышей
# =============================================================================
@router.get("/raffles/pending", response_model=RafflePage, summary="Очередь модерации")
async def list_pending(
    page: dict = Depends(pagination_params),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> RafflePage:
    result = await ApprovalWorkflow.list_pending(
        db, actor, limit=page["limit"], cursor=page["position"]
    )
    return RafflePage(items=result["items"], next_cursor=result["next_cursor"])


@router.post("/raffles/{raffle_id}/approve", response_model=RaffleOut, summary="Одобрить")
async def approve_raffle(raffle_id: int, actor: Actor = Depends(require_admin)) -> RaffleOut:
    return RaffleOut(**await ApprovalWorkflow.approve(actor, raffle_id))


@router.post("/raffles/{raffle_id}/reject", response_model=RaffleOut, summary="Отклонить")
async def reject_raffle(
    raffle_id: int,
    payload: ReasonIn,
    actor: Actor = Depends(require_admin),
) -> RaffleOut:
    return RaffleOut(**await ApprovalWorkflow.reject(actor, raffle_id, payload.reason))


@router.post("/raffles/{raffle_id}/cancel", response_model=RaffleOut, summary="Отменить")
async def cancel_raffle(
    raffle_id: int,
    payload: ReasonIn,
    actor: Actor = Depends(require_admin),
) -> RaffleOut:
    return RaffleOut(**await ApprovalWorkflow.cancel(actor, raffle_id, payload.reason))


@router.post(
    "/raffles/{raffle_id}/execute", response_model=DrawResultOut, summary="Выбрать победителя"
)
async def execute_raffle(raffle_id: int, actor: Actor = Depends(require_admin)) -> DrawResultOut:
    return DrawResultOut(**await ApprovalWorkflow.execute(actor, raffle_id))


# =============================================================================
# Журнал аудита
# =============================================================================
@router.get("/audit-logs", response_model=List[AuditLog], summary="Журнал аудита")
async def list_audit_logs(
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    action: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[int] = Query(None),
    actor_id: Optional[int] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    _: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[AuditLog]:
    return await AuditLogger.list_logs(
        db,
        limit=limit,
        offset=offset,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        date_from=date_from,
        date_to=date_to,
    )


# =============================================================================
# Депозиты
# =============================================================================
@router.get("/raffles/{raffle_id}/deposit", response_model=DepositOut, summary="Депозит")
async def get_deposit(
    raffle_id: int,
    _: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> DepositOut:
    return DepositOut(**await deposits_service.svc_get_deposit(db, raffle_id))


@router.post("/raffles/{raffle_id}/deposit/hold", response_model=DepositOut, summary="Удержать")
async def hold_deposit(raffle_id: int, actor: Actor = Depends(require_admin)) -> DepositOut:
    return DepositOut(**await deposits_service.svc_hold_deposit(raffle_id, actor))


@router.post(
    "/raffles/{raffle_id}/deposit/release", response_model=DepositOut, summary="Вернуть"
)
async def release_deposit(
    raffle_id: int,
    payload: ReasonIn,
    actor: Actor = Depends(require_admin),
) -> DepositOut:
    result = await deposits_service.svc_release_deposit(raffle_id, actor, reason=payload.reason)
    return DepositOut(**result)


@router.post(
    "/raffles/{raffle_id}/deposit/execute", response_model=DepositOut, summary="Исполнить"
)
async def execute_deposit(
    raffle_id: int,
    payload: ReasonIn,
    actor: Actor = Depends(require_admin),
) -> DepositOut:
    result = await deposits_service.svc_execute_deposit(raffle_id, actor, reason=payload.reason)
    return DepositOut(**result)


__all__ = ["router"]
