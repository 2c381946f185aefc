# -*- coding: utf-8 -*-
# raffle_backend/app/models/__init__.py
# =============================================================================
# Назначение кода:
# Единая точка входа слоя моделей сервиса розыгрышей. Централизует:
#  • загрузку ORM-базиса (Base, схема БД),
#  • регистрацию всех моделей в Base.metadata (нужно Alembic и тестам),
#  • реестр MODEL_REGISTRY для удобного доступа к классам моделей,
#  • лёгкую диагностику полноты набора таблиц (models_health).
#
# Канон/инварианты (важно):
#  • Модели описывают структуру данных, НЕ содержат бизнес-логики.
#  • Переходы статусов и счётчики билетов меняют только сервисы.
#
# Запреты:
#  • Не размещать в __init__ бизнес-операции, миграции и «create_all()».
# =============================================================================

from __future__ import annotations

import inspect
from types import ModuleType
from typing import Dict, List, Optional, Tuple, Type

from ..core.database_core import SCHEMA_RAFFLES as SCHEMA
from ..core.database_core import Base
from ..core.logging_core import get_logger
from . import audit_models, deposit_models, raffle_models, shop_models
from .audit_models import AuditLogEntry
from .deposit_models import Deposit, DepositStatus
from .raffle_models import (
    Raffle,
    RaffleDrawResult,
    RaffleStatus,
    RaffleTicket,
    TicketPurchase,
    TicketStatus,
)
from .shop_models import PRODUCT_STATUS_ENUM, SHOP_STATUS_ENUM, Product, Shop

logger = get_logger(__name__)

_MODEL_MODULES: List[ModuleType] = [shop_models, raffle_models, deposit_models, audit_models]


def _collect_model_classes(module: ModuleType) -> Dict[str, Type[Base]]:
    """{ClassName: Class} для всех ORM-моделей модуля с объявленным __tablename__."""
    registry: Dict[str, Type[Base]] = {}
    for name, obj in vars(module).items():
        if (
            inspect.isclass(obj)
            and issubclass(obj, Base)
            and obj is not Base
            and obj.__module__ == module.__name__
        ):
            registry[name] = obj
    return registry


MODEL_REGISTRY: Dict[str, Type[Base]] = {}
for _module in _MODEL_MODULES:
    MODEL_REGISTRY.update(_collect_model_classes(_module))


def get_model(name: str) -> Optional[Type[Base]]:
    """Класс модели по имени (как объявлен в Python, а не __tablename__)."""
    return MODEL_REGISTRY.get(name)


def list_models() -> List[Tuple[str, str]]:
    """Список пар (ClassName, __tablename__) всех моделей."""
    return [
        (cls_name, cls.__tablename__)
        for cls_name, cls in sorted(MODEL_REGISTRY.items(), key=lambda kv: kv[0].lower())
    ]


def models_health() -> Dict[str, object]:
    """
    Проверяет наличие критически важных сущностей.
    Возвращает {"ok", "missing_classes", "present", "schema"}.
    """
    required = [
        "Shop",
        "Product",
        "Raffle",
        "RaffleTicket",
        "TicketPurchase",
        "RaffleDrawResult",
        "Deposit",
        "AuditLogEntry",
    ]
    missing = [name for name in required if name not in MODEL_REGISTRY]
    if missing:
        logger.warning("models_health: missing=%s", missing)
    return {
        "ok": not missing,
        "missing_classes": missing,
        "present": list_models(),
        "schema": SCHEMA,
    }


__all__ = [
    "Base",
    "SCHEMA",
    "MODEL_REGISTRY",
    "get_model",
    "list_models",
    "models_health",
    "AuditLogEntry",
    "Deposit",
    "DepositStatus",
    "Product",
    "PRODUCT_STATUS_ENUM",
    "Raffle",
    "RaffleDrawResult",
    "RaffleStatus",
    "RaffleTicket",
    "Shop",
    "SHOP_STATUS_ENUM",
    "TicketPurchase",
    "TicketStatus",
]
