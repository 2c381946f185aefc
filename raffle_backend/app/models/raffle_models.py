# -*- coding: utf-8 -*-
# raffle_backend/app/models/raffle_models.py
# =============================================================================
# Назначение кода:
#   SQLAlchemy-модели подсистемы розыгрышей: розыгрыш, билеты, покупки
#   (подтверждённые платежи) и результат розыгрыша.
#
# Канон/инварианты:
#   • 0 ≤ sold_tickets ≤ total_tickets, total_tickets > 0 (CHECK в БД).
#   • status = finished ⇔ winner_ticket_id задан (CHECK в БД).
#   • Номер билета уникален в пределах розыгрыша (UNIQUE raffle_id+number).
#   • Один результат розыгрыша на розыгрыш; одна покупка на payment_ref.
#   • version - счётчик оптимистичной блокировки (version_id_col): UPDATE
#     конкурирующего писателя не находит строку и падает StaleDataError.
#
# ИИ-защита/самовосстановление:
#   • Статусы - закрытый Enum RaffleStatus + CHECK в БД, никаких «похожих строк».
#   • Индексы под типичные выборки: витрина по статусу, мои билеты,
#     распроданные без победителя (планировщик финализации).
#
# Запреты:
#   • Никакой логики переходов в моделях - только структура данных.
# =============================================================================

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database_core import SCHEMA_RAFFLES as SCHEMA
from ..core.database_core import Base
from ..core.utils_core import utcnow


class RaffleStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    PAUSED = "paused"
    SOLD_OUT = "sold_out"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class TicketStatus(str, enum.Enum):
    SOLD = "sold"
    WINNER = "winner"
    REFUNDED = "refunded"


RAFFLE_STATUS_ENUM = tuple(s.value for s in RaffleStatus)
TICKET_STATUS_ENUM = tuple(s.value for s in TicketStatus)


class Raffle(Base):
    """Карточка розыгрыша: снимок товара, счётчики билетов, статус и победитель."""

    __tablename__ = "raffles"
    __table_args__ = (
        CheckConstraint(f"status IN {RAFFLE_STATUS_ENUM}", name="raffle_status_check"),
        CheckConstraint("total_tickets > 0", name="raffle_total_tickets_positive"),
        CheckConstraint("sold_tickets >= 0", name="raffle_sold_tickets_nonneg"),
        CheckConstraint("sold_tickets <= total_tickets", name="raffle_sold_le_total"),
        CheckConstraint(
            "(status = 'finished' AND winner_ticket_id IS NOT NULL) "
            "OR (status <> 'finished' AND winner_ticket_id IS NULL)",
            name="raffle_finished_iff_winner",
        ),
        Index("ix_raffle_status", "status"),
        Index("ix_raffle_shop_status", "shop_id", "status"),
        Index("ix_raffle_created_cursor", "created_at", "id"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    shop_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(f"{SCHEMA}.shops.id", ondelete="RESTRICT"),
        nullable=False,
    )
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(f"{SCHEMA}.products.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Снимки товара на момент создания
    product_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    requires_deposit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    total_tickets: Mapped[int] = mapped_column(Integer, nullable=False)
    sold_tickets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(
        String(24), nullable=False, default=RaffleStatus.DRAFT.value
    )

    winner_ticket_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey(
            f"{SCHEMA}.raffle_tickets.id",
            use_alter=True,
            name="fk_raffle_winner_ticket",
            ondelete="RESTRICT",
        ),
        nullable=True,
    )

    special_conditions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
    activated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    raffle_executed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class RaffleTicket(Base):
    """
    Экземпляр билета. number нумеруется последовательно внутри розыгрыша
    (1..total_tickets) из счётчика sold_tickets; номер не переиспользуется,
    в том числе после возврата (status=refunded).
    """

    __tablename__ = "raffle_tickets"
    __table_args__ = (
        UniqueConstraint("raffle_id", "number", name="uq_raffle_ticket_number"),
        CheckConstraint(f"status IN {TICKET_STATUS_ENUM}", name="raffle_ticket_status_check"),
        CheckConstraint("number >= 1", name="raffle_ticket_number_positive"),
        Index("ix_raffle_ticket_owner", "owner_id", "raffle_id", "number"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    raffle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(f"{SCHEMA}.raffles.id", ondelete="CASCADE"),
        nullable=False,
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    owner_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=TicketStatus.SOLD.value
    )
    purchase_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey(f"{SCHEMA}.ticket_purchases.id", ondelete="SET NULL"),
        nullable=True,
    )
    purchased_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class TicketPurchase(Base):
    """
    Подтверждённый платёж за билеты: одна строка на payment_ref. Повторное
    подтверждение того же платежа возвращает уже выданные номера.
    """

    __tablename__ = "ticket_purchases"
    __table_args__ = (
        UniqueConstraint("payment_ref", name="uq_ticket_purchase_payment_ref"),
        CheckConstraint("quantity >= 1", name="ticket_purchase_quantity_positive"),
        CheckConstraint("last_number >= first_number", name="ticket_purchase_range_valid"),
        Index("ix_ticket_purchase_user", "user_id", "raffle_id"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    raffle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(f"{SCHEMA}.raffles.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_ref: Mapped[str] = mapped_column(String(128), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    first_number: Mapped[int] = mapped_column(Integer, nullable=False)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class RaffleDrawResult(Base):
    """Итог розыгрыша: один на розыгрыш (UNIQUE raffle_id)."""

    __tablename__ = "raffle_draw_results"
    __table_args__ = (
        UniqueConstraint("raffle_id", name="uq_raffle_draw_result"),
        Index("ix_raffle_draw_result_drawn", "drawn_at"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    raffle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(f"{SCHEMA}.raffles.id", ondelete="CASCADE"),
        nullable=False,
    )
    winning_number: Mapped[int] = mapped_column(Integer, nullable=False)
    winning_ticket_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(f"{SCHEMA}.raffle_tickets.id", ondelete="RESTRICT"),
        nullable=False,
    )
    winner_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_tickets: Mapped[int] = mapped_column(Integer, nullable=False)
    entropy_source: Mapped[str] = mapped_column(String(32), nullable=False, default="secrets")

    drawn_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


__all__ = [
    "RaffleStatus",
    "TicketStatus",
    "RAFFLE_STATUS_ENUM",
    "TICKET_STATUS_ENUM",
    "Raffle",
    "RaffleTicket",
    "TicketPurchase",
    "RaffleDrawResult",
]

# =============================================================================
# Пояснения (для чайника):
#   • Нумерация билетов: следующий номер = sold_tickets + 1. Поэтому sold_tickets
#     меняет только аллокатор билетов (services/tickets_service.py).
#   • winner_ticket_id ссылается на raffle_tickets с use_alter=True: таблицы
#     ссылаются друг на друга, и FK добавляется отдельным ALTER после создания.
#   • version увеличивается SQLAlchemy при каждом UPDATE строки розыгрыша.
# =============================================================================
