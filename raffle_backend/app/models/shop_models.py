# -*- coding: utf-8 -*-
# raffle_backend/app/models/shop_models.py
# =============================================================================
# Назначение кода:
#   SQLAlchemy-модели витрины: магазины и их товары, под которые создаются
#   розыгрыши.
#
# Канон/инварианты:
#   • Стоимость товара - Numeric(12, 2), строго > 0.
#   • Размеры (см) строго > 0; флаг requires_deposit вычисляется политикой
#     депозита и хранится рядом с размерами.
#   • Заблокированный магазин (status=blocked) не отправляет розыгрыши на модерацию.
#
# ИИ-защита/самовосстановление:
#   • CHECK-ограничения по статусам и положительности значений отсекают
#     «мусорные» строки даже при обходе сервисов.
#
# Запреты:
#   • Никакой логики депозита/билетов в моделях - только структура данных.
# =============================================================================

from __future__ import annotations

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
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database_core import SCHEMA_RAFFLES as SCHEMA
from ..core.database_core import Base
from ..core.utils_core import utcnow

SHOP_STATUS_ENUM = ("pending", "verified", "blocked")
PRODUCT_STATUS_ENUM = ("active", "inactive", "archived")


class Shop(Base):
    """Магазин-организатор розыгрышей."""

    __tablename__ = "shops"
    __table_args__ = (
        CheckConstraint(f"status IN {SHOP_STATUS_ENUM}", name="shop_status_check"),
        Index("ix_shop_owner", "owner_user_id"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    products: Mapped[list["Product"]] = relationship(back_populates="shop", lazy="raise_on_sql")


class Product(Base):
    """
    Товар магазина. value/height/width/depth замораживаются, как только товар
    участвует в розыгрыше вне статуса DRAFT.
    """

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint(f"status IN {PRODUCT_STATUS_ENUM}", name="product_status_check"),
        CheckConstraint("value > 0", name="product_value_positive"),
        CheckConstraint(
            "height_cm > 0 AND width_cm > 0 AND depth_cm > 0",
            name="product_dimensions_positive",
        ),
        Index("ix_product_shop_status", "shop_id", "status"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    shop_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey(f"{SCHEMA}.shops.id", ondelete="RESTRICT"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Размеры в сантиметрах
    height_cm: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    width_cm: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    depth_cm: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    requires_deposit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    shop: Mapped["Shop"] = relationship(back_populates="products", lazy="raise_on_sql")


__all__ = ["Shop", "Product", "SHOP_STATUS_ENUM", "PRODUCT_STATUS_ENUM"]
