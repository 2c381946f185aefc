# -*- coding: utf-8 -*-
# raffle_backend/app/crud/shop_crud.py
# =============================================================================
# Назначение:
#   • CRUD магазинов и их товаров.
#   • Флаг депозита и заморозку стоимости/размеров решают сервисы;
#     CRUD лишь читает и сохраняет строки.
#
# Канон/инварианты:
#   • Только cursor-based пагинация товаров (id DESC).
# =============================================================================
from __future__ import annotations

from typing import Iterable

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.models import Product, Shop


class ShopsCRUD:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_shop(self, shop_id: int) -> Shop | None:
        return await self.session.get(Shop, int(shop_id))

    async def add_shop(self, shop: Shop) -> Shop:
        self.session.add(shop)
        await self.session.flush()
        return shop


class ProductsCRUD:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_product(self, product_id: int) -> Product | None:
        return await self.session.get(Product, int(product_id))

    async def add_product(self, product: Product) -> Product:
        self.session.add(product)
        await self.session.flush()
        return product

    async def list_by_shop(
        self,
        shop_id: int,
        *,
        limit: int,
        before_id: int | None = None,
        status: str | None = None,
    ) -> list[Product]:
        """Товары магазина, новые первыми; курсор - id последнего товара."""

        stmt: Select[tuple[Product]] = (
            select(Product)
            .where(Product.shop_id == int(shop_id))
            .order_by(Product.id.desc())
            .limit(limit)
        )
        if before_id is not None:
            stmt = stmt.where(Product.id < int(before_id))
        if status is not None:
            stmt = stmt.where(Product.status == status)
        rows: Iterable[Product] = await self.session.scalars(stmt)
        return list(rows)


__all__ = ["ShopsCRUD", "ProductsCRUD"]
