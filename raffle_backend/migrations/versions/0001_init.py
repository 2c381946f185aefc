# -*- coding: utf-8 -*-
"""Initial migration for the raffles backend.

Назначение:
    • Создать схему розыгрышей и все таблицы согласно текущим моделям:
      shops, products, raffles, raffle_tickets, ticket_purchases,
      raffle_draw_results, deposits, audit_log.
    • Задать CHECK/UNIQUE/индексы из ORM-моделей (0 ≤ sold ≤ total,
      finished ⇔ winner, UNIQUE(raffle_id, number), UNIQUE(payment_ref)).

Канон/инварианты:
    • Таблицы создаются через Declarative Base, что исключает расхождение
      между миграцией и моделями.
    • checkfirst=True: повторный запуск не ломает БД.
"""

from __future__ import annotations

from alembic import op
from sqlalchemy import text

from raffle_backend.app.core.config_core import get_settings
from raffle_backend.app.core.database_core import Base
from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.models import MODEL_REGISTRY

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels = None
depends_on = None

logger = get_logger(__name__)
settings = get_settings()

SCHEMA: str = settings.DB_SCHEMA_RAFFLES


def upgrade() -> None:
    """Создать схему и все таблицы/индексы из моделей."""

    bind = op.get_bind()
    logger.info("Creating schema if missing", extra={"schema": SCHEMA})
    bind.execute(text(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}"))
    Base.metadata.create_all(bind=bind, checkfirst=True)
    logger.info("Tables created", extra={"models": sorted(MODEL_REGISTRY)})


def downgrade() -> None:
    """Удалить таблицы и схему розыгрышей."""

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind, checkfirst=True)
    bind.execute(text(f"DROP SCHEMA IF EXISTS {SCHEMA} CASCADE"))
