# -*- coding: utf-8 -*-
# raffle_backend/app/schemas/raffles_schemas.py
# =============================================================================
# Назначение кода:
# Pydantic-схемы API розыгрышей: товары магазина, розыгрыши, покупка билетов
# (требует Idempotency-Key), билеты, участия, результат розыгрыша, депозиты.
#
# Канон / инварианты:
# • Деньги наружу - строкой с 2 знаками; размеры - строкой в сантиметрах.
# • Статусы - значения RaffleStatus / TicketStatus / DepositStatus.
#
# Запреты:
# • В схемах нет бизнес-логики: число билетов и флаг депозита считают сервисы.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from raffle_backend.app.schemas.common_schemas import CursorPage, OkMeta, money_str


# =============================================================================
# Товары
# -----------------------------------------------------------------------------
class ProductIn(BaseModel):
    shop_id: int = Field(..., ge=1)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=4000)
    category: Optional[str] = Field(None, max_length=64)
    value: Decimal = Field(..., description="Стоимость товара (>0)")
    height_cm: Decimal
    width_cm: Decimal
    depth_cm: Decimal


class ProductUpdateIn(BaseModel):
    """Частичная правка: передаются только изменяемые поля."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=4000)
    category: Optional[str] = Field(None, max_length=64)
    value: Optional[Decimal] = None
    height_cm: Optional[Decimal] = None
    width_cm: Optional[Decimal] = None
    depth_cm: Optional[Decimal] = None


class ProductOut(BaseModel):
    id: int
    shop_id: int
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    value: str
    height_cm: str
    width_cm: str
    depth_cm: str
    requires_deposit: bool
    status: str

    @field_validator("value", mode="before")
    @classmethod
    def _money(cls, v: Any) -> str:
        return money_str(v)


class ProductStatusIn(BaseModel):
    status: str = Field(..., description="active | inactive | archived")


ProductPage = CursorPage[ProductOut]


# =============================================================================
# Розыгрыши
# -----------------------------------------------------------------------------
class RaffleCreateIn(BaseModel):
    product_id: int = Field(..., ge=1)
    special_conditions: Optional[str] = Field(None, max_length=4000)


class RaffleConditionsIn(BaseModel):
    special_conditions: Optional[str] = Field(None, max_length=4000)


class ReasonIn(BaseModel):
    """Причина отмены/отклонения; пустую строку отвергает сервис."""

    reason: Optional[str] = Field(None, max_length=2000)


class RaffleOut(BaseModel):
    id: int
    shop_id: int
    product_id: int
    product_value: str
    total_tickets: int
    sold_tickets: int
    remaining_tickets: int
    status: str
    requires_deposit: bool
    winner_ticket_id: Optional[int] = None
    special_conditions: Optional[str] = None
    created_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    raffle_executed_at: Optional[datetime] = None

    @field_validator("product_value", mode="before")
    @classmethod
    def _money(cls, v: Any) -> str:
        return money_str(v)


class RaffleCardOut(RaffleOut):
    """Карточка розыгрыша с результатом (если он уже разыгран)."""

    winning_number: Optional[int] = None
    winner_user_id: Optional[int] = None


RafflePage = CursorPage[RaffleOut]


# =============================================================================
# Покупка билетов (идемпотентна по Idempotency-Key) и билеты
# -----------------------------------------------------------------------------
class PurchaseIn(BaseModel):
    """
    Подтверждённая покупка. Idempotency-Key заголовка становится payment_ref:
    повтор с тем же ключом вернёт те же номера.
    """

    quantity: int = Field(..., ge=1, description="Сколько билетов купить")
    amount: Decimal = Field(..., gt=0, description="Подтверждённая сумма платежа")


class PurchaseOut(BaseModel):
    meta: OkMeta = Field(default_factory=OkMeta)
    raffle_id: int
    purchase_id: int
    payment_ref: str
    ticket_numbers: List[int]
    raffle_status: Optional[str] = None
    replayed: bool = False


class TicketOut(BaseModel):
    id: int
    raffle_id: int
    number: int
    owner_id: int
    status: str
    purchase_id: Optional[int] = None
    purchased_at: Optional[datetime] = None


TicketPage = CursorPage[TicketOut]


class ParticipationOut(RaffleOut):
    my_tickets: int
    is_winner: bool
    my_winning_number: Optional[int] = None


# =============================================================================
# Результат розыгрыша и депозиты
# -----------------------------------------------------------------------------
class DrawResultOut(BaseModel):
    meta: OkMeta = Field(default_factory=OkMeta)
    raffle_id: int
    winning_number: int
    winning_ticket_id: int
    winner_user_id: int
    total_tickets: int
    entropy_source: str
    drawn_at: Optional[datetime] = None
    already_finished: bool = False


class DepositOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    raffle_id: int
    shop_id: int
    amount: str
    status: str

    @field_validator("amount", mode="before")
    @classmethod
    def _money(cls, v: Any) -> str:
        return money_str(v)


__all__ = [
    "ProductIn",
    "ProductUpdateIn",
    "ProductOut",
    "ProductStatusIn",
    "ProductPage",
    "RaffleCreateIn",
    "RaffleConditionsIn",
    "ReasonIn",
    "RaffleOut",
    "RaffleCardOut",
    "RafflePage",
    "PurchaseIn",
    "PurchaseOut",
    "TicketOut",
    "TicketPage",
    "ParticipationOut",
    "DrawResultOut",
    "DepositOut",
]
