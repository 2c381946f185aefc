# -*- coding: utf-8 -*-
# raffle_backend/app/core/database_core.py
# =============================================================================
# Назначение кода:
#   • Единая точка работы с БД сервиса розыгрышей (PostgreSQL + asyncpg + SQLAlchemy 2.0).
#   • Декларативная база моделей (Base) и схема таблиц (SCHEMA_RAFFLES).
#   • Создание и конфигурация AsyncEngine и async_sessionmaker.
#   • Безопасная выдача сессий для FastAPI-роутов, сервисов и планировщика.
#   • Базовые health-утилиты (ping, мягкий реинициализатор).
#
# Канон / инварианты:
#   • Только async-движок (create_async_engine), никаких sync-engine.
#   • DSN берём из Settings.database_url_async() - там единый источник истины.
#   • Сессии expire_on_commit=False, autoflush=False (flush - явно, в сервисах).
#   • Тесты и скрипты могут подменить движок через use_engine(engine).
#
# ИИ-защита:
#   • При проблемах с созданием движка/сессии - подробный лог и понятные
#     исключения, без скрытого «молчаливого» падения.
#   • db_ping() для healthcheck и самопроверки перед стартом планировщика.
#
# Запреты:
#   • Никакой бизнес-логики (билеты, статусы, депозиты) в этом модуле.
#   • Никаких Alembic-миграций/DDL здесь - только подключения и сессии.
# =============================================================================

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from raffle_backend.app.core.config_core import get_settings
from raffle_backend.app.core.logging_core import get_logger

logger = get_logger(__name__)
settings = get_settings()

SCHEMA_RAFFLES = settings.DB_SCHEMA_RAFFLES


class Base(DeclarativeBase):
    """Общая декларативная база всех ORM-моделей сервиса."""


# -----------------------------------------------------------------------------
# Глобальные объекты: движок и фабрика сессий
# -----------------------------------------------------------------------------
_engine: Optional[AsyncEngine] = None
_SessionFactory: Optional[async_sessionmaker[AsyncSession]] = None
_engine_lock = asyncio.Lock()


def _create_engine() -> AsyncEngine:
    """
    Создаёт новый AsyncEngine на базе актуальных настроек.

    Особенности:
    • DSN приводится к async-формату через Settings.database_url_async().
    • Включён pool_pre_ping для раннего обнаружения "умерших" соединений.
    • Параметры пула передаются только для серверных СУБД (не SQLite).
    """
    dsn = settings.database_url_async()
    logger.info("Creating async DB engine", extra={"dsn_set": bool(dsn)})
    kwargs = {"pool_pre_ping": True, "echo": settings.DEBUG}
    if not dsn.startswith("sqlite"):
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW
    return create_async_engine(dsn, **kwargs)


def _create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Строит async_sessionmaker поверх переданного движка.

    Канон:
    • expire_on_commit=False - объекты остаются валидными после commit().
    • autoflush=False - явный контроль flush при необходимости.
    """
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
        class_=AsyncSession,
    )


def use_engine(engine: AsyncEngine) -> None:
    """
    Подменяет глобальный движок готовым (тесты, одноразовые скрипты).
    Старый движок не закрывается - это ответственность вызывающего.
    """
    global _engine, _SessionFactory
    _engine = engine
    _SessionFactory = _create_session_factory(engine)
    logger.info("DB engine replaced explicitly")


async def reset_engine() -> None:
    """
    Мягко пересоздаёт движок и фабрику сессий.

    ИИ-защита:
    • Закрывает старый engine через dispose(), чтобы не оставлять
      "висящие" соединения.
    """
    global _engine, _SessionFactory

    async with _engine_lock:
        old_engine = _engine
        try:
            new_engine = _create_engine()
            _SessionFactory = _create_session_factory(new_engine)
            _engine = new_engine
            logger.info("DB engine has been reset successfully")
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to reset DB engine", extra={"error": str(exc)})
            if old_engine is not None:
                _engine = old_engine
            raise
        else:
            if old_engine is not None:
                try:
                    await old_engine.dispose()
                except Exception:  # noqa: BLE001
                    logger.warning("Error during old engine dispose", exc_info=True)


def get_engine() -> AsyncEngine:
    """
    Возвращает текущий AsyncEngine, создавая его лениво при первом вызове.
    """
    global _engine, _SessionFactory

    if _engine is None:
        engine = _create_engine()
        _engine = engine
        _SessionFactory = _create_session_factory(engine)
        logger.info("DB engine lazily initialized")
    assert _engine is not None  # для mypy
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Возвращает фабрику сессий (движок создаётся при необходимости)."""
    global _SessionFactory

    if _SessionFactory is None:
        engine = get_engine()
        _SessionFactory = _create_session_factory(engine)
        logger.info("Session factory initialized")
    assert _SessionFactory is not None  # для mypy
    return _SessionFactory


# -----------------------------------------------------------------------------
# FastAPI-совместимая зависимость: выдача сессии
# -----------------------------------------------------------------------------
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Зависимость для FastAPI-роутов.

    Пример использования:
        SessionDep = Annotated[AsyncSession, Depends(get_db)]

    ИИ-защита:
    • При ошибке логируем контекст и пробрасываем исключение наверх.
    """
    session_factory = get_session_factory()
    session = session_factory()
    try:
        yield session
        # commit управляется вызывающим кодом; здесь не коммитим
    except Exception as exc:  # noqa: BLE001
        logger.debug("DB session closed with error", extra={"error": str(exc)})
        raise
    finally:
        await session.close()


@asynccontextmanager
async def lifespan_session() -> AsyncIterator[AsyncSession]:
    """
    Сессия для фоновых задач (планировщик) вне FastAPI-зависимостей.

        async with lifespan_session() as db:
            ...
    """
    session = get_session_factory()()
    try:
        yield session
    finally:
        await session.close()


# -----------------------------------------------------------------------------
# Health-check / ping
# -----------------------------------------------------------------------------
async def db_ping() -> bool:
    """
    Простейший health-check БД.

    Возвращает:
    • True - если SELECT 1 успешно прошёл;
    • False - если БД не отвечает.
    """
    engine = get_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (OperationalError, DBAPIError) as exc:
        logger.error(
            "DB ping failed: DB is not reachable",
            extra={"error": str(exc)},
        )
        return False


__all__ = [
    "AsyncSession",
    "AsyncEngine",
    "Base",
    "SCHEMA_RAFFLES",
    "get_engine",
    "get_session_factory",
    "get_db",
    "lifespan_session",
    "use_engine",
    "db_ping",
    "reset_engine",
]
