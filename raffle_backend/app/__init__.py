# ==============================================================================
# Raffles Backend - FastAPI application factory
# ------------------------------------------------------------------------------
# Назначение: создаёт и конфигурирует FastAPI-приложение сервиса розыгрышей,
# подключает обязательные middleware, обработчики ошибок и роутеры.
#
# Канон/инварианты:
#   • Согласованность порогов (депозит/предел размеров) проверяется
#     init_system_locks() до приёма запросов.
#   • Покупка билетов требует Idempotency-Key (MonetaryIdempotencyMiddleware
#     + зависимость на маршруте).
#   • Все ошибки наружу - в форме {"error", "message", "details"?}.
#
# ИИ-защиты/самовосстановление:
#   • create_app() можно вызывать несколько раз: логирование перенастраивается
#     без дублей обработчиков.
#   • /health не падает при недоступной БД, а отдаёт db=false.
#
# Запреты:
#   • Не запускает планировщик - финализатор стартует отдельным процессом.
# ==============================================================================
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from fastapi import FastAPI

from .core import boot_core
from .core.config_core import get_settings
from .core.database_core import db_ping, get_engine
from .core.errors_core import setup_exception_handlers
from .core.logging_core import CorrelationIdMiddleware, get_logger, setup_logging
from .core.system_locks import init_system_locks
from .routes import register

logger = get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await get_engine().dispose()
    logger.info("DB engine disposed on shutdown")


def create_app() -> FastAPI:
    """Создать FastAPI-приложение с каноническими middleware и роутерами."""

    settings = get_settings()
    setup_logging()
    boot = boot_core()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=_lifespan,
    )
    init_system_locks(app)
    app.add_middleware(CorrelationIdMiddleware)
    setup_exception_handlers(app)
    register(app, prefix=settings.API_PREFIX)

    @app.get("/health", tags=["health"])
    async def health() -> Dict[str, Any]:
        """Живость сервиса и доступность БД."""

        db_ok = await db_ping()
        return {"status": "ok" if db_ok else "degraded", "db": db_ok}

    logger.info(
        "FastAPI app initialised",
        extra={"core_ok": boot["health"].get("ok"), "api_prefix": settings.API_PREFIX},
    )
    return app


# ==============================================================================
# Пояснения «для чайника»:
#   • Этот модуль ничего не пишет в БД - только конфигурирует API.
#   • CorrelationIdMiddleware добавлен последним, поэтому выполняется первым и
#     кладёт X-Request-ID в контекст логов ещё до проверки Idempotency-Key.
#   • Финализатор распроданных розыгрышей: python -m raffle_backend.app.scheduler.raffles_finalizer
# ==============================================================================
