# -*- coding: utf-8 -*-
# raffle_backend/app/core/__init__.py
# =============================================================================
# Назначение кода:
# Единая точка входа ядра сервиса розыгрышей: загрузка настроек, запуск
# проверок «канона» (system_locks) и экспорт ключевых утилит ядра во внешние
# модули (сервисы, роуты, планировщик).
#
# Канон/инварианты (важно):
# • Источником истины служит config_core.get_settings() - никаких локальных
#   дублей порогов здесь не создаём.
# • Проверки согласованности порогов выполняются при старте через
#   system_locks.assert_config_canon().
#
# ИИ-защита/самовосстановление:
# • boot_core() запускает стартовые проверки и всегда возвращает
#   диагностический словарь; core_health() - отчёт без падения процесса.
#
# Запреты:
# • Не определяем здесь бизнес-логики и не импортируем тяжёлые слои (CRUD/Services).
# =============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from .config_core import get_settings
from .logging_core import get_logger
from . import system_locks

CORE_VERSION = "1.0.0"

logger = get_logger(__name__)

__all__ = [
    "CORE_VERSION",
    "get_settings",
    "boot_core",
    "core_health",
]


def _run_system_locks() -> Dict[str, Any]:
    """Стартовая проверка канона конфигурации; результат - словарь для логов."""
    try:
        system_locks.assert_config_canon()
    except system_locks.InvariantViolation as exc:
        logger.error("System locks failed: %s", exc)
        return {"ok": False, "error": str(exc)}
    return {"ok": True, "error": None}


def boot_core() -> Dict[str, Any]:
    """
    Инициализация ядра: настройки, проверки канона, сводка для логов.

    Возвращает dict c ключами timestamp_utc, core_version, health, locks.
    """
    ts = datetime.now(timezone.utc).isoformat()
    settings = get_settings()
    logger.info(
        "Raffle core boot: version=%s env=%s schema=%s draw_mode=%s",
        CORE_VERSION,
        settings.env_normalized,
        settings.DB_SCHEMA_RAFFLES,
        settings.RAFFLE_DRAW_MODE,
    )

    health = core_health()
    locks = _run_system_locks()

    if not health.get("ok"):
        logger.warning("Core health warnings: %s", health.get("errors"))

    return {
        "timestamp_utc": ts,
        "core_version": CORE_VERSION,
        "health": health,
        "locks": locks,
    }


def core_health() -> Dict[str, Any]:
    """
    Быстрые sanity-checks по ключевым настройкам. Никаких падений -
    только отчёт { ok, errors, snapshot }.
    """
    settings = get_settings()
    errors: List[str] = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL must be set.")
    if not settings.DB_SCHEMA_RAFFLES:
        errors.append("DB_SCHEMA_RAFFLES must be set.")
    if settings.RAFFLE_TX_BACKOFF_BASE_MS > settings.RAFFLE_TX_BACKOFF_MAX_MS:
        errors.append("RAFFLE_TX_BACKOFF_BASE_MS must not exceed RAFFLE_TX_BACKOFF_MAX_MS.")

    return {"ok": not errors, "errors": errors, "snapshot": settings.debug_dump()}
