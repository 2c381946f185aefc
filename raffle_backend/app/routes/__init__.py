# -*- coding: utf-8 -*-
# raffle_backend/app/routes/__init__.py
# =============================================================================
# Назначение кода:
#   Единая точка подключения HTTP-роутов розыгрышей:
#     • общий APIRouter (api_router), в который «вмонтированы» все роуты;
#     • функция register(app, prefix="") для подключения в FastAPI;
#     • list_registered_routes() для диагностики.
#
# Канон/инварианты:
#   • Модуль НЕ выполняет бизнес-логику - только проводка маршрутов.
#   • Каждый модуль роутов сам содержит свой prefix ("/raffles", "/shop", "/admin").
# =============================================================================

from __future__ import annotations

from typing import List, Tuple

from fastapi import APIRouter, FastAPI

from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.routes import raffles_routes, shop_routes
from raffle_backend.app.routes.admin import admin_raffles_routes

logger = get_logger(__name__)

ROUTERS: Tuple[Tuple[str, APIRouter], ...] = (
    ("raffles_routes", raffles_routes.router),
    ("shop_routes", shop_routes.router),
    ("admin_raffles_routes", admin_raffles_routes.router),
)

api_router = APIRouter()
for _name, _router in ROUTERS:
    api_router.include_router(_router)


def register(app: FastAPI, prefix: str = "") -> None:
    """Регистрирует агрегированный роутер в приложении (prefix обычно "/api")."""
    app.include_router(api_router, prefix=prefix)
    logger.info(
        "routes: aggregator registered (prefix=%r): %s",
        prefix,
        ",".join(name for name, _ in ROUTERS),
    )


def list_registered_routes() -> List[str]:
    return [name for name, _ in ROUTERS]


__all__ = ["api_router", "register", "list_registered_routes", "ROUTERS"]
