"""Pytest configuration and fixtures."""

from __future__ import annotations

import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("RAFFLE_TX_BACKOFF_BASE_MS", "1")
os.environ.setdefault("RAFFLE_TX_BACKOFF_MAX_MS", "5")
os.environ.setdefault("RAFFLE_LOCK_TIMEOUT_SEC", "5")

from typing import Any, Awaitable, Callable, Dict, List  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import func, select  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402

from raffle_backend.app.core import database_core  # noqa: E402
from raffle_backend.app.core.config_core import get_settings  # noqa: E402
from raffle_backend.app.core.database_core import SCHEMA_RAFFLES, Base  # noqa: E402
from raffle_backend.app.core.security_core import Actor, ActorRole  # noqa: E402
from raffle_backend.app.models import (  # noqa: E402
    AuditLogEntry,
    Raffle,
    RaffleTicket,
    Shop,
)
from raffle_backend.app.services import products_service, raffles_service  # noqa: E402
from raffle_backend.app.services.admin.admin_raffles_service import (  # noqa: E402
    ApprovalWorkflow,
)

ADMIN = Actor(id=1, role=ActorRole.ADMIN)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
async def engine(tmp_path):
    """Файловая SQLite на тест; схема raffles транслируется в «без схемы»."""
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'raffles.sqlite'}",
        execution_options={"schema_translate_map": {SCHEMA_RAFFLES: None}},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    database_core.use_engine(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
async def db(engine):
    async with database_core.lifespan_session() as session:
        yield session


async def _add_shop(status: str = "verified", owner_user_id: int = 100) -> int:
    async with database_core.lifespan_session() as session:
        async with session.begin():
            shop = Shop(owner_user_id=owner_user_id, name="Test shop", status=status)
            session.add(shop)
            await session.flush()
            return shop.id


@pytest.fixture
async def shop_id(engine) -> int:
    return await _add_shop()


@pytest.fixture
def shop_actor(shop_id) -> Actor:
    return Actor(id=100, role=ActorRole.SHOP, shop_id=shop_id)


@pytest.fixture
def admin_actor() -> Actor:
    return ADMIN


@pytest.fixture
def add_shop(engine) -> Callable[..., Awaitable[int]]:
    return _add_shop


@pytest.fixture
def make_product(shop_actor) -> Callable[..., Awaitable[Dict[str, Any]]]:
    async def _make(value: Any = "100.00", dims=(10, 10, 10)) -> Dict[str, Any]:
        return await products_service.svc_create_product(
            shop_actor,
            shop_id=shop_actor.shop_id,
            name="Prize",
            value=value,
            height_cm=dims[0],
            width_cm=dims[1],
            depth_cm=dims[2],
        )

    return _make


@pytest.fixture
def make_draft_raffle(shop_actor, make_product) -> Callable[..., Awaitable[int]]:
    async def _make(value: Any = "100.00", dims=(10, 10, 10)) -> int:
        product = await make_product(value=value, dims=dims)
        raffle = await raffles_service.svc_create_raffle(shop_actor, product_id=product["id"])
        return raffle["id"]

    return _make


@pytest.fixture
def make_pending_raffle(shop_actor, make_draft_raffle) -> Callable[..., Awaitable[int]]:
    async def _make(value: Any = "100.00", dims=(10, 10, 10)) -> int:
        raffle_id = await make_draft_raffle(value=value, dims=dims)
        await raffles_service.svc_submit_raffle(shop_actor, raffle_id)
        return raffle_id

    return _make


@pytest.fixture
def make_active_raffle(make_pending_raffle) -> Callable[..., Awaitable[int]]:
    """value="2.50" → 5 билетов."""

    async def _make(value: Any = "2.50", dims=(10, 10, 10)) -> int:
        raffle_id = await make_pending_raffle(value=value, dims=dims)
        await ApprovalWorkflow.approve(ADMIN, raffle_id)
        return raffle_id

    return _make


@pytest.fixture
def load_raffle(engine) -> Callable[[int], Awaitable[Raffle]]:
    async def _load(raffle_id: int) -> Raffle:
        async with database_core.lifespan_session() as session:
            raffle = await session.get(Raffle, raffle_id)
            assert raffle is not None
            return raffle

    return _load


@pytest.fixture
def load_tickets(engine) -> Callable[[int], Awaitable[List[RaffleTicket]]]:
    async def _load(raffle_id: int) -> List[RaffleTicket]:
        async with database_core.lifespan_session() as session:
            rows = await session.scalars(
                select(RaffleTicket)
                .where(RaffleTicket.raffle_id == raffle_id)
                .order_by(RaffleTicket.number)
            )
            return list(rows)

    return _load


@pytest.fixture
def count_audit(engine) -> Callable[..., Awaitable[int]]:
    async def _count(entity_type: str, entity_id: int, action: str | None = None) -> int:
        async with database_core.lifespan_session() as session:
            stmt = select(func.count(AuditLogEntry.id)).where(
                AuditLogEntry.entity_type == entity_type,
                AuditLogEntry.entity_id == entity_id,
            )
            if action is not None:
                stmt = stmt.where(AuditLogEntry.action == action)
            return int(await session.scalar(stmt) or 0)

    return _count


def user(user_id: int) -> Actor:
    return Actor(id=user_id, role=ActorRole.USER)
