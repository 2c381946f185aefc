"""Raffle backend CRUD facade.

======================================================================
Назначение модуля:
    • Экспортировать CRUD-классы для таблиц сервиса розыгрышей (магазины,
      товары, розыгрыши, билеты, покупки, депозиты).
    • Не содержит бизнес-логики и не меняет статусы - только доступ к БД.

Канон/инварианты:
    • Счётчик sold_tickets и переходы статусов меняют только сервисы;
      CRUD лишь читает и сохраняет строки.
    • Курсоры вместо OFFSET, идемпотентность проверяется в сервисах.

Запреты:
    • Не добавлять здесь бизнес-логику.
======================================================================
"""

from raffle_backend.app.crud.deposits_crud import DepositsCRUD
from raffle_backend.app.crud.raffles_crud import RafflesCRUD
from raffle_backend.app.crud.shop_crud import ProductsCRUD, ShopsCRUD

__all__ = [
    "DepositsCRUD",
    "ProductsCRUD",
    "RafflesCRUD",
    "ShopsCRUD",
]
