# -*- coding: utf-8 -*-
# raffle_backend/app/models/deposit_models.py
# =============================================================================
# Назначение кода:
#   Гарантийный депозит магазина под розыгрыш крупного товара.
#
# Канон/инварианты:
#   • Один депозит на розыгрыш (UNIQUE raffle_id).
#   • amount = стоимость товара на момент активации розыгрыша.
#   • Статусы: pending → held → released | executed; pending → released.
#
# Запреты:
#   • Реального движения денег здесь нет - только учёт статуса депозита.
# =============================================================================

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database_core import SCHEMA_RAFFLES as SCHEMA
from ..core.database_core import Base
from ..core.utils_core import utcnow


class DepositStatus(str, enum.Enum):
    PENDING = "pending"
    HELD = "held"
    RELEASED = "released"
    EXECUTED = "executed"


DEPOSIT_STATUS_ENUM = tuple(s.value for s in DepositStatus)


class Deposit(Base):
    __tablename__ = "deposits"
    __table_args__ = (
        UniqueConstraint("raffle_id", name="uq_deposit_raffle"),
        CheckConstraint(f"status IN {DEPOSIT_STATUS_ENUM}", name="deposit_status_check"),
        CheckConstraint("amount > 0", name="deposit_amount_positive"),
        Index("ix_deposit_shop_status", "shop_id", "status"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    raffle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(f"{SCHEMA}.raffles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    shop_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(f"{SCHEMA}.shops.id", ondelete="RESTRICT"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DepositStatus.PENDING.value
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


__all__ = ["DepositStatus", "DEPOSIT_STATUS_ENUM", "Deposit"]
