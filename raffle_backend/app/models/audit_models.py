# -*- coding: utf-8 -*-
# raffle_backend/app/models/audit_models.py
# =============================================================================
# Назначение кода:
#   Журнал аудита: одна запись на каждый переход статуса розыгрыша/депозита
#   и на каждое административное действие.
#
# Канон/инварианты:
#   • Журнал только дописывается: записи не изменяются и не удаляются.
#   • Каждая запись хранит актёра (id + роль), действие, сущность,
#     предыдущий и новый статус, причину и произвольные детали (JSON).
#
# ИИ-защита:
#   • Индексы под фильтры админ-панели: действие, сущность, актёр, дата.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database_core import SCHEMA_RAFFLES as SCHEMA
from ..core.database_core import Base
from ..core.utils_core import utcnow

JSONType = JSON().with_variant(JSONB(), "postgresql")


class AuditLogEntry(Base):
    __tablename__ = "audit_log"
    __table_args__ = (
        Index("ix_audit_action", "action"),
        Index("ix_audit_entity", "entity_type", "entity_id"),
        Index("ix_audit_actor", "actor_id"),
        Index("ix_audit_created", "created_at", "id"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    actor_role: Mapped[str] = mapped_column(String(16), nullable=False)

    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)

    previous_status: Mapped[Optional[str]] = mapped_column(String(24), nullable=True)
    new_status: Mapped[Optional[str]] = mapped_column(String(24), nullable=True)

    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


__all__ = ["AuditLogEntry"]
