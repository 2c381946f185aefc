# -*- coding: utf-8 -*-
# raffle_backend/app/core/security_core.py
# =============================================================================
# Назначение кода:
#   Слой «кто ты и можно ли тебе» сервиса розыгрышей:
#   • роли актёров (user / shop / admin / system);
#   • неизменяемый контекст актёра Actor(id, role, shop_id);
#   • ролевые проверки и проверка владения магазином.
#
# Канон / инварианты:
#   • Аутентификация внешняя: сервис получает уже проверенного актёра
#     (заголовки X-Actor-Id / X-Actor-Role / X-Shop-Id, см. app/deps.py).
#   • Каждая core-операция получает Actor явно - никакого глобального
#     «текущего пользователя».
#   • Роль SYSTEM не приходит из HTTP: её используют только планировщик и
#     внутренние вызовы (распродажа последнего билета, финализация).
#
# ИИ-защита:
#   • Ошибка роли → UnauthorizedError (403), а не падение процесса.
#
# Запреты:
#   • Никакой бизнес-логики розыгрышей - только авторизация.
# =============================================================================

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Optional

from raffle_backend.app.core.errors_core import UnauthorizedError
from raffle_backend.app.core.logging_core import get_logger

logger = get_logger(__name__)


class ActorRole(str, enum.Enum):
    USER = "user"
    SHOP = "shop"
    ADMIN = "admin"
    SYSTEM = "system"


HTTP_ROLES = (ActorRole.USER, ActorRole.SHOP, ActorRole.ADMIN)


@dataclass(frozen=True)
class Actor:
    """
    Контекст актёра.

    id       - идентификатор пользователя/оператора (для SYSTEM - 0);
    role     - роль из ActorRole;
    shop_id  - магазин, от имени которого действует актёр с ролью SHOP.
    """

    id: int
    role: ActorRole
    shop_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @classmethod
    def system(cls) -> "Actor":
        return cls(id=0, role=ActorRole.SYSTEM)


def require_role(actor: Actor, allowed: Iterable[ActorRole], *, action: str) -> None:
    """Бросает UnauthorizedError, если роль актёра не входит в allowed."""
    allowed_set = frozenset(allowed)
    if actor.role not in allowed_set:
        logger.warning(
            "Role check failed",
            extra={
                "action": action,
                "actor_id": actor.id,
                "actor_role": actor.role.value,
                "allowed": sorted(r.value for r in allowed_set),
            },
        )
        raise UnauthorizedError(
            f"Role '{actor.role.value}' may not perform '{action}'.",
            details={"action": action, "role": actor.role.value},
        )


def require_shop_owner(actor: Actor, shop_id: int, *, action: str) -> None:
    """Актёр с ролью SHOP может действовать только от имени своего магазина."""
    if actor.role != ActorRole.SHOP:
        return
    if actor.shop_id is None or actor.shop_id != shop_id:
        logger.warning(
            "Shop ownership check failed",
            extra={"action": action, "actor_id": actor.id, "shop_id": shop_id},
        )
        raise UnauthorizedError(
            "Shop actor does not own this resource.",
            details={"action": action, "shop_id": shop_id},
        )


__all__ = [
    "ActorRole",
    "HTTP_ROLES",
    "Actor",
    "require_role",
    "require_shop_owner",
]
