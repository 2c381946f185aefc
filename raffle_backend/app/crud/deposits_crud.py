# -*- coding: utf-8 -*-
# raffle_backend/app/crud/deposits_crud.py
# =============================================================================
# Назначение:
#   • CRUD гарантийных депозитов: один депозит на розыгрыш.
#   • create_if_absent() идемпотентен: повторная активация не создаёт дубль.
# =============================================================================
from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.models import Deposit, DepositStatus


class DepositsCRUD:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_raffle(self, raffle_id: int, *, for_update: bool = False) -> Deposit | None:
        stmt: Select[tuple[Deposit]] = select(Deposit).where(Deposit.raffle_id == int(raffle_id))
        if for_update:
            stmt = stmt.with_for_update()
        return await self.session.scalar(stmt)

    async def create_if_absent(
        self,
        *,
        raffle_id: int,
        shop_id: int,
        amount: Decimal,
    ) -> tuple[Deposit, bool]:
        """Вернуть (депозит, создан_ли_сейчас)."""

        existing = await self.get_by_raffle(raffle_id)
        if existing:
            return existing, False
        deposit = Deposit(
            raffle_id=int(raffle_id),
            shop_id=int(shop_id),
            amount=amount,
            status=DepositStatus.PENDING.value,
        )
        self.session.add(deposit)
        await self.session.flush()
        return deposit, True

    async def list_by_shop(self, shop_id: int, *, limit: int) -> list[Deposit]:
        stmt = (
            select(Deposit)
            .where(Deposit.shop_id == int(shop_id))
            .order_by(Deposit.id.desc())
            .limit(limit)
        )
        rows: Iterable[Deposit] = await self.session.scalars(stmt)
        return list(rows)


__all__ = ["DepositsCRUD"]
