# -*- coding: utf-8 -*-
# raffle_backend/app/services/admin/admin_logging.py
# =============================================================================
# Журнал аудита сервиса розыгрышей
# -----------------------------------------------------------------------------
# Назначение модуля:
#   • Централизованная запись аудита: каждый переход статуса розыгрыша или
#     депозита и каждое административное действие - ровно одна строка
#     в таблице audit_log.
#   • Выборка журнала для админ-панели с фильтрами.
#
# ИИ-защита / инварианты:
#   • Запись аудита - часть транзакции перехода: если запись не удалась,
#     откатывается и сам переход (ошибка пробрасывается, а не глотается).
#   • Журнал только дописывается: здесь нет update/delete.
#   • Параметры выборки (limit/offset) жёстко ограничиваются безопасными границами.
#
# Как использовать:
#   • Для записи (внутри транзакции розыгрыша):
#       await AuditLogger.write(db, actor=actor, action=AuditAction.RAFFLE_APPROVE,
#                               entity_type="raffle", entity_id=raffle.id,
#                               previous_status="pending_approval", new_status="active")
#
#   • Для выборки (в админке):
#       logs = await AuditLogger.list_logs(db, limit=100, action="RAFFLE_APPROVE")
# =============================================================================

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.core.config_core import get_settings
from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.core.security_core import Actor
from raffle_backend.app.core.utils_core import as_utc
from raffle_backend.app.models import AuditLogEntry

logger = get_logger(__name__)
S = get_settings()

_REASON_MAX = 2000


class AuditAction(str, enum.Enum):
    RAFFLE_CREATE = "RAFFLE_CREATE"
    RAFFLE_UPDATE = "RAFFLE_UPDATE"
    RAFFLE_SUBMIT = "RAFFLE_SUBMIT"
    RAFFLE_APPROVE = "RAFFLE_APPROVE"
    RAFFLE_REJECT = "RAFFLE_REJECT"
    RAFFLE_PAUSE = "RAFFLE_PAUSE"
    RAFFLE_RESUME = "RAFFLE_RESUME"
    RAFFLE_SOLD_OUT = "RAFFLE_SOLD_OUT"
    RAFFLE_FINISH = "RAFFLE_FINISH"
    RAFFLE_CANCEL = "RAFFLE_CANCEL"
    DEPOSIT_CREATE = "DEPOSIT_CREATE"
    DEPOSIT_HOLD = "DEPOSIT_HOLD"
    DEPOSIT_RELEASE = "DEPOSIT_RELEASE"
    DEPOSIT_EXECUTE = "DEPOSIT_EXECUTE"


# =============================================================================
# DTO для журнала
# =============================================================================

class AuditLog(BaseModel):
    """
    Одна запись журнала аудита в виде для админ-панели.

    Поля:
      • actor_id / actor_role - кто выполнил действие;
      • action                - код действия (AuditAction);
      • entity_type/entity_id - над чем выполнялось действие (raffle, deposit);
      • previous_status / new_status - переход статуса (если был);
      • reason                - причина (отклонение, отмена);
      • details               - произвольные детали (JSON).
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    actor_id: int
    actor_role: str
    action: str = Field(..., min_length=1, max_length=64)
    entity_type: str
    entity_id: int
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime


# =============================================================================
# Сервис журнала
# =============================================================================

class AuditLogger:
    """
    Писатель и читатель журнала аудита.

    Ключевые принципы:
      • write() не коммитит - запись попадает в БД вместе с переходом.
      • list_logs() - новые записи первыми, limit/offset нормализуются.
    """

    @staticmethod
    async def write(
        db: AsyncSession,
        *,
        actor: Actor,
        action: AuditAction,
        entity_type: str,
        entity_id: int,
        previous_status: Optional[str] = None,
        new_status: Optional[str] = None,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            actor_id=int(actor.id),
            actor_role=actor.role.value,
            action=action.value,
            entity_type=entity_type,
            entity_id=int(entity_id),
            previous_status=previous_status,
            new_status=new_status,
            reason=reason[:_REASON_MAX] if reason else None,
            details=details or None,
        )
        db.add(entry)
        await db.flush()
        logger.info(
            "Audit entry written",
            extra={
                "action": action.value,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "actor_id": actor.id,
                "actor_role": actor.role.value,
                "previous_status": previous_status,
                "new_status": new_status,
            },
        )
        return entry

    @staticmethod
    async def list_logs(
        db: AsyncSession,
        *,
        limit: int = 50,
        offset: int = 0,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        actor_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[AuditLog]:
        """
        Возвращает журнал с фильтрами, новые записи первыми.

        Параметры:
          • limit  - максимум записей (1..AUDIT_LIST_MAX_LIMIT);
          • offset - смещение (>=0);
          • action / entity_type / entity_id / actor_id - точные фильтры;
          • date_from / date_to - границы created_at (включительно).
        """
        max_limit = int(S.AUDIT_LIST_MAX_LIMIT)
        limit = max(1, min(int(limit), max_limit))
        offset = max(0, int(offset))

        stmt = select(AuditLogEntry)
        if action:
            stmt = stmt.where(AuditLogEntry.action == action)
        if entity_type:
            stmt = stmt.where(AuditLogEntry.entity_type == entity_type)
        if entity_id is not None:
            stmt = stmt.where(AuditLogEntry.entity_id == int(entity_id))
        if actor_id is not None:
            stmt = stmt.where(AuditLogEntry.actor_id == int(actor_id))
        if date_from is not None:
            stmt = stmt.where(AuditLogEntry.created_at >= as_utc(date_from))
        if date_to is not None:
            stmt = stmt.where(AuditLogEntry.created_at <= as_utc(date_to))
        stmt = (
            stmt.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
            .limit(limit)
            .offset(offset)
        )

        rows = await db.scalars(stmt)
        return [AuditLog.model_validate(row) for row in rows]


__all__ = ["AuditAction", "AuditLog", "AuditLogger"]
