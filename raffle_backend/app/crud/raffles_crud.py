# -*- coding: utf-8 -*-
# raffle_backend/app/crud/raffles_crud.py
# =============================================================================
# Назначение:
#   • CRUD-операции контура розыгрышей: чтение/блокировка розыгрыша, вставка
#     и выборка билетов, покупки (подтверждённые платежи), результат розыгрыша.
#   • Переходы статусов и счётчик sold_tickets меняют сервисы; CRUD лишь
#     создаёт/читает записи таблиц raffles/raffle_tickets/... .
#
# Канон/инварианты:
#   • Билеты уникальны в рамках розыгрыша (raffle_id, number).
#   • lock_raffle() читает строку под SELECT ... FOR UPDATE: на PostgreSQL это
#     строковая блокировка, на SQLite - обычное чтение (сериализует сам SQLite).
#   • Только cursor-based пагинация (created_at DESC, id DESC для розыгрышей;
#     number ASC для билетов). OFFSET запрещён.
#
# ИИ-защита/самовосстановление:
#   • set_draw_result_if_absent() возвращает существующий результат при повторе -
#     повторная финализация не создаёт второй записи.
#   • get_purchase_by_ref() - якорь идемпотентности покупки по payment_ref.
#
# Запреты:
#   • CRUD не проводит розыгрыш и не меняет статусы.
# =============================================================================
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import Select, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.models import (
    Raffle,
    RaffleDrawResult,
    RaffleStatus,
    RaffleTicket,
    TicketPurchase,
    TicketStatus,
)


class RafflesCRUD:
    """CRUD-обёртка для розыгрышей/билетов без логики переходов."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------ raffles
    async def get_raffle(self, raffle_id: int) -> Raffle | None:
        return await self.session.get(Raffle, int(raffle_id))

    async def lock_raffle(self, raffle_id: int) -> Raffle | None:
        """Прочитать розыгрыш под FOR UPDATE (свежие значения из БД)."""

        stmt: Select[tuple[Raffle]] = (
            select(Raffle)
            .where(Raffle.id == int(raffle_id))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def add_raffle(self, raffle: Raffle) -> Raffle:
        self.session.add(raffle)
        await self.session.flush()
        return raffle

    async def list_raffles_cursor(
        self,
        *,
        limit: int,
        statuses: Sequence[RaffleStatus] | None = None,
        shop_id: int | None = None,
        cursor: tuple[datetime, int] | None = None,
    ) -> list[Raffle]:
        """Розыгрыши по статусам/магазину, курсорно (created_at DESC, id DESC)."""

        stmt: Select[tuple[Raffle]] = (
            select(Raffle)
            .order_by(Raffle.created_at.desc(), Raffle.id.desc())
            .limit(limit)
        )
        if statuses:
            stmt = stmt.where(Raffle.status.in_([s.value for s in statuses]))
        if shop_id is not None:
            stmt = stmt.where(Raffle.shop_id == int(shop_id))
        if cursor:
            ts, rid = cursor
            stmt = stmt.where(
                (Raffle.created_at < ts) | ((Raffle.created_at == ts) & (Raffle.id < rid))
            )
        rows: Iterable[Raffle] = await self.session.scalars(stmt)
        return list(rows)

    async def list_sold_out_without_winner(self, *, limit: int) -> list[int]:
        """id распроданных розыгрышей без победителя (для планировщика)."""

        stmt = (
            select(Raffle.id)
            .where(
                Raffle.status == RaffleStatus.SOLD_OUT.value,
                Raffle.winner_ticket_id.is_(None),
            )
            .order_by(Raffle.id.asc())
            .limit(limit)
        )
        rows = await self.session.scalars(stmt)
        return [int(r) for r in rows]

    async def count_non_draft_for_product(self, product_id: int) -> int:
        stmt = select(func.count(Raffle.id)).where(
            Raffle.product_id == int(product_id),
            Raffle.status != RaffleStatus.DRAFT.value,
        )
        return int(await self.session.scalar(stmt) or 0)

    # ------------------------------------------------------------------ tickets
    async def max_ticket_number(self, raffle_id: int) -> int:
        """Максимальный выданный номер билета (0, если билетов нет)."""

        stmt = select(func.max(RaffleTicket.number)).where(RaffleTicket.raffle_id == int(raffle_id))
        return int(await self.session.scalar(stmt) or 0)

    async def create_tickets(
        self,
        *,
        raffle_id: int,
        owner_id: int,
        numbers: Sequence[int],
        purchase_id: int | None,
    ) -> list[RaffleTicket]:
        """Вставить билеты с заранее выданными номерами. Дубли ловит UNIQUE."""

        tickets = [
            RaffleTicket(
                raffle_id=int(raffle_id),
                number=int(n),
                owner_id=int(owner_id),
                status=TicketStatus.SOLD.value,
                purchase_id=purchase_id,
            )
            for n in numbers
        ]
        self.session.add_all(tickets)
        await self.session.flush()
        return tickets

    async def get_ticket_by_number(self, raffle_id: int, number: int) -> RaffleTicket | None:
        stmt = select(RaffleTicket).where(
            RaffleTicket.raffle_id == int(raffle_id),
            RaffleTicket.number == int(number),
        )
        return await self.session.scalar(stmt)

    async def get_ticket(self, ticket_id: int) -> RaffleTicket | None:
        return await self.session.get(RaffleTicket, int(ticket_id))

    async def list_tickets_by_raffle(
        self,
        raffle_id: int,
        *,
        limit: int,
        after_number: int | None = None,
        owner_id: int | None = None,
    ) -> list[RaffleTicket]:
        """Билеты розыгрыша по возрастанию номера, курсор - последний номер."""

        stmt: Select[tuple[RaffleTicket]] = (
            select(RaffleTicket)
            .where(RaffleTicket.raffle_id == int(raffle_id))
            .order_by(RaffleTicket.number.asc())
            .limit(limit)
        )
        if after_number is not None:
            stmt = stmt.where(RaffleTicket.number > int(after_number))
        if owner_id is not None:
            stmt = stmt.where(RaffleTicket.owner_id == int(owner_id))
        rows: Iterable[RaffleTicket] = await self.session.scalars(stmt)
        return list(rows)

    async def refund_sold_tickets(self, raffle_id: int) -> int:
        """Перевести все проданные билеты розыгрыша в refunded; вернуть их число."""

        stmt = (
            update(RaffleTicket)
            .where(
                RaffleTicket.raffle_id == int(raffle_id),
                RaffleTicket.status == TicketStatus.SOLD.value,
            )
            .values(status=TicketStatus.REFUNDED.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def participation_rows(
        self,
        owner_id: int,
        *,
        statuses: Sequence[RaffleStatus],
    ) -> list[tuple[Raffle, int, int | None]]:
        """
        Участия пользователя: (розыгрыш, число его билетов, номер выигравшего
        билета пользователя или None). Только розыгрыши в статусах statuses.
        """

        winner_number = func.max(
            case((RaffleTicket.id == Raffle.winner_ticket_id, RaffleTicket.number), else_=None)
        )
        stmt = (
            select(Raffle, func.count(RaffleTicket.id), winner_number)
            .join(RaffleTicket, RaffleTicket.raffle_id == Raffle.id)
            .where(
                RaffleTicket.owner_id == int(owner_id),
                Raffle.status.in_([s.value for s in statuses]),
            )
            .group_by(Raffle.id)
            .order_by(Raffle.id.desc())
        )
        result = await self.session.execute(stmt)
        return [(row[0], int(row[1]), row[2]) for row in result.all()]

    # ---------------------------------------------------------------- purchases
    async def get_purchase_by_ref(self, payment_ref: str) -> TicketPurchase | None:
        stmt = select(TicketPurchase).where(TicketPurchase.payment_ref == payment_ref)
        return await self.session.scalar(stmt)

    async def add_purchase(self, purchase: TicketPurchase) -> TicketPurchase:
        self.session.add(purchase)
        await self.session.flush()
        return purchase

    # -------------------------------------------------------------- draw result
    async def get_draw_result(self, raffle_id: int) -> RaffleDrawResult | None:
        stmt = select(RaffleDrawResult).where(RaffleDrawResult.raffle_id == int(raffle_id))
        return await self.session.scalar(stmt)

    async def set_draw_result_if_absent(
        self,
        *,
        raffle_id: int,
        winning_number: int,
        winning_ticket_id: int,
        winner_user_id: int,
        total_tickets: int,
        entropy_source: str,
    ) -> RaffleDrawResult:
        """Идемпотентно зафиксировать результат розыгрыша."""

        existing = await self.get_draw_result(raffle_id)
        if existing:
            return existing
        result = RaffleDrawResult(
            raffle_id=int(raffle_id),
            winning_number=int(winning_number),
            winning_ticket_id=int(winning_ticket_id),
            winner_user_id=int(winner_user_id),
            total_tickets=int(total_tickets),
            entropy_source=entropy_source,
        )
        self.session.add(result)
        await self.session.flush()
        return result


__all__ = ["RafflesCRUD"]
