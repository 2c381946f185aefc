# -*- coding: utf-8 -*-
# raffle_backend/app/core/config_core.py
# =============================================================================
# Назначение:
#   • Единый конфигурационный модуль сервиса розыгрышей (FastAPI + SQLAlchemy async).
#   • Канонический источник всех настроек: БД, политика депозита, выпуск билетов,
#     транзакции розыгрыша, планировщик, логирование.
#
# Канон / инварианты:
#   1) Количество билетов = floor(стоимость товара × TICKETS_PER_CURRENCY_UNIT),
#      по умолчанию ×2. Значение ≤ 0 из ENV отклоняется валидатором.
#   2) Депозит нужен, если любое измерение товара > DEPOSIT_MAX_DIMENSION_CM (15 см).
#   3) Повторы транзакций розыгрыша всегда ограничены (RAFFLE_TX_MAX_ATTEMPTS ≥ 1),
#      ожидание блокировки всегда ограничено (RAFFLE_LOCK_TIMEOUT_SEC > 0).
#   4) RAFFLE_DRAW_MODE: inline (розыгрыш в транзакции продажи последнего билета)
#      или deferred (розыгрыш выполняет планировщик).
#
# ИИ-защита / самодиагностика:
#   • Валидаторы pydantic отсекают нулевые/отрицательные лимиты.
#   • database_url_async() приводит DSN к async-драйверу (asyncpg/aiosqlite).
#   • initialize_runtime() печатает предупреждения о пропущенных секретах.
#
# Запреты:
#   • Никаких секретов в коде - только ENV/.env.
#   • Никакой бизнес-логики: только значения и их проверка.
# =============================================================================

from __future__ import annotations

from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# Док-описания полей (используются в Swagger и как подсказки «для чайника»)
# =============================================================================


class _Doc:
    # Приложение
    PROJECT_NAME = "Имя проекта (отображается в Swagger/health)."
    ENV = "Окружение: production/dev/local (нормализуется в prod/dev/local)."
    DEBUG = "Расширенные логи и трассировки (только для dev/local)."
    APP_VERSION = "Версия приложения (попадает в /health)."
    APP_HOST = "Адрес для uvicorn (обычно 0.0.0.0)."
    APP_PORT = "Порт для uvicorn (например, 8000)."
    API_PREFIX = "Префикс REST API, например /api."

    # БД
    DATABASE_URL = (
        "DSN PostgreSQL или SQLite. "
        "Будет автоматически приведён к async (postgresql+asyncpg:// / sqlite+aiosqlite://)."
    )
    DB_POOL_SIZE = "Размер пула соединений SQLAlchemy."
    DB_MAX_OVERFLOW = "Дополнительные соединения в пике."
    DB_SCHEMA_RAFFLES = "Схема с таблицами магазинов, товаров, розыгрышей и аудита."

    # Товары и депозит
    DEPOSIT_MAX_DIMENSION_CM = "Порог измерения (см): больше - нужен гарантийный депозит."
    PRODUCT_MAX_DIMENSION_CM = "Жёсткий предел измерения товара (см); пусто - без предела."

    # Билеты
    TICKETS_PER_CURRENCY_UNIT = "Сколько билетов выпускается на единицу стоимости товара."
    MAX_TICKETS_PER_PURCHASE = "Максимум билетов в одной покупке."

    # Транзакции розыгрыша
    RAFFLE_TX_MAX_ATTEMPTS = "Сколько раз повторять транзакцию при конфликте."
    RAFFLE_TX_BACKOFF_BASE_MS = "Базовая пауза экспоненциального отката (мс)."
    RAFFLE_TX_BACKOFF_MAX_MS = "Верхняя граница паузы отката (мс)."
    RAFFLE_LOCK_TIMEOUT_SEC = "Таймаут ожидания блокировки розыгрыша (сек)."
    RAFFLE_DRAW_MODE = "inline - розыгрыш сразу при распродаже; deferred - в планировщике."

    # Идемпотентность
    REQUIRE_IDEMPOTENCY_HEADER = "Требовать Idempotency-Key для покупки билетов."

    # Планировщик
    SCHEDULER_TICK_SECONDS = "Тик планировщика финализации (сек)."
    SCHEDULER_BATCH_SIZE = "Сколько розыгрышей финализировать за один тик."

    # Аудит
    AUDIT_LIST_MAX_LIMIT = "Верхняя граница limit при выборке журнала аудита."

    # Logging
    LOG_JSON = "Лог в JSON (true/false); по умолчанию - JSON только в prod."


# =============================================================================
# Настройки приложения (единственный источник истины)
# =============================================================================


class Settings(BaseSettings):
    """
    Контейнер переменных окружения сервиса розыгрышей.

    Важное:
      • Секреты берём только из ENV - в код не шьём.
      • Все пороги политики (депозит, билеты) живут здесь, сервисы их не дублируют.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # --------------------------- БАЗОВЫЕ НАСТРОЙКИ ---------------------------
    PROJECT_NAME: str = Field("Raffles Backend", description=_Doc.PROJECT_NAME)
    ENV: str = Field("production", description=_Doc.ENV)
    DEBUG: bool = Field(False, description=_Doc.DEBUG)
    APP_VERSION: str = Field("1.0.0", description=_Doc.APP_VERSION)
    APP_HOST: str = Field("0.0.0.0", description=_Doc.APP_HOST)
    APP_PORT: int = Field(8000, description=_Doc.APP_PORT)
    API_PREFIX: str = Field("/api", description=_Doc.API_PREFIX)

    # --------------------------------- БАЗА ----------------------------------
    DATABASE_URL: Optional[str] = Field(None, description=_Doc.DATABASE_URL)
    DB_POOL_SIZE: int = Field(10, description=_Doc.DB_POOL_SIZE)
    DB_MAX_OVERFLOW: int = Field(10, description=_Doc.DB_MAX_OVERFLOW)
    DB_SCHEMA_RAFFLES: str = Field("raffles", description=_Doc.DB_SCHEMA_RAFFLES)

    # ---------------------------- ТОВАРЫ/ДЕПОЗИТ -----------------------------
    DEPOSIT_MAX_DIMENSION_CM: float = Field(
        15.0,
        description=_Doc.DEPOSIT_MAX_DIMENSION_CM,
    )
    PRODUCT_MAX_DIMENSION_CM: Optional[float] = Field(
        None,
        description=_Doc.PRODUCT_MAX_DIMENSION_CM,
    )

    # --------------------------------- БИЛЕТЫ --------------------------------
    TICKETS_PER_CURRENCY_UNIT: int = Field(
        2,
        description=_Doc.TICKETS_PER_CURRENCY_UNIT,
    )
    MAX_TICKETS_PER_PURCHASE: int = Field(
        100,
        description=_Doc.MAX_TICKETS_PER_PURCHASE,
    )

    # ------------------------- ТРАНЗАКЦИИ РОЗЫГРЫША --------------------------
    RAFFLE_TX_MAX_ATTEMPTS: int = Field(
        5,
        description=_Doc.RAFFLE_TX_MAX_ATTEMPTS,
    )
    RAFFLE_TX_BACKOFF_BASE_MS: int = Field(
        20,
        description=_Doc.RAFFLE_TX_BACKOFF_BASE_MS,
    )
    RAFFLE_TX_BACKOFF_MAX_MS: int = Field(
        500,
        description=_Doc.RAFFLE_TX_BACKOFF_MAX_MS,
    )
    RAFFLE_LOCK_TIMEOUT_SEC: float = Field(
        5.0,
        description=_Doc.RAFFLE_LOCK_TIMEOUT_SEC,
    )
    RAFFLE_DRAW_MODE: str = Field(
        "inline",
        description=_Doc.RAFFLE_DRAW_MODE,
    )

    # ---------------------------- ИДЕМПОТЕНТНОСТЬ ----------------------------
    REQUIRE_IDEMPOTENCY_HEADER: bool = Field(
        True,
        description=_Doc.REQUIRE_IDEMPOTENCY_HEADER,
    )

    # ------------------------------- ПЛАНИРОВЩИК -----------------------------
    SCHEDULER_TICK_SECONDS: int = Field(
        60,
        description=_Doc.SCHEDULER_TICK_SECONDS,
    )
    SCHEDULER_BATCH_SIZE: int = Field(
        50,
        description=_Doc.SCHEDULER_BATCH_SIZE,
    )

    # ---------------------------------- АУДИТ --------------------------------
    AUDIT_LIST_MAX_LIMIT: int = Field(
        500,
        description=_Doc.AUDIT_LIST_MAX_LIMIT,
    )

    # --------------------------------- LOGGING -------------------------------
    LOG_JSON: Optional[bool] = Field(None, description=_Doc.LOG_JSON)

    # =========================== ВАЛИДАТОРЫ (ИИ-защита) ======================

    @field_validator(
        "DEPOSIT_MAX_DIMENSION_CM",
        "RAFFLE_LOCK_TIMEOUT_SEC",
    )
    @classmethod
    def _v_positive_float(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("value must be > 0")
        return value

    @field_validator("PRODUCT_MAX_DIMENSION_CM")
    @classmethod
    def _v_product_cap(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            raise ValueError("PRODUCT_MAX_DIMENSION_CM must be > 0 when set")
        return value

    @field_validator(
        "TICKETS_PER_CURRENCY_UNIT",
        "MAX_TICKETS_PER_PURCHASE",
        "RAFFLE_TX_MAX_ATTEMPTS",
        "SCHEDULER_TICK_SECONDS",
        "SCHEDULER_BATCH_SIZE",
        "AUDIT_LIST_MAX_LIMIT",
    )
    @classmethod
    def _v_positive_int(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be >= 1")
        return value

    @field_validator("RAFFLE_TX_BACKOFF_BASE_MS", "RAFFLE_TX_BACKOFF_MAX_MS")
    @classmethod
    def _v_backoff(cls, value: int) -> int:
        if value < 0:
            raise ValueError("backoff must be >= 0")
        return value

    @field_validator("RAFFLE_DRAW_MODE")
    @classmethod
    def _v_draw_mode(cls, value: str) -> str:
        mode = (value or "").strip().lower()
        if mode not in ("inline", "deferred"):
            raise ValueError("RAFFLE_DRAW_MODE must be 'inline' or 'deferred'")
        return mode

    # =========================== Удобные свойства/методы =====================

    @property
    def env_normalized(self) -> str:
        """Нормализует ENV к одному из: prod/dev/local."""
        value = (self.ENV or "").strip().lower()
        if value.startswith("prod"):
            return "prod"
        if value.startswith("dev"):
            return "dev"
        if value.startswith("loc") or value.startswith("test"):
            return "local"
        return "prod"

    @property
    def is_prod(self) -> bool:
        return self.env_normalized == "prod"

    @property
    def log_json(self) -> bool:
        """JSON-логи: явный флаг LOG_JSON, иначе только в prod."""
        if self.LOG_JSON is not None:
            return bool(self.LOG_JSON)
        return self.is_prod

    @property
    def draw_inline(self) -> bool:
        return self.RAFFLE_DRAW_MODE == "inline"

    def database_url_async(self) -> str:
        """
        Приводит DATABASE_URL к async-драйверу:
          • postgres:// / postgresql:// → postgresql+asyncpg://
          • sqlite:///                → sqlite+aiosqlite:///
        Остальные DSN возвращаются как есть.
        """
        url = (self.DATABASE_URL or "").strip()
        if not url:
            raise RuntimeError("DATABASE_URL is not configured")
        if url.startswith("postgres://"):
            return "postgresql+asyncpg://" + url[len("postgres://"):]
        if url.startswith("postgresql://"):
            return "postgresql+asyncpg://" + url[len("postgresql://"):]
        if url.startswith("sqlite:///"):
            return "sqlite+aiosqlite:///" + url[len("sqlite:///"):]
        return url

    def assert_required_secrets(self) -> None:
        """Мягкая самодиагностика: печатает WARN, но не падает."""
        if not self.DATABASE_URL:
            print("[WARN] DATABASE_URL не задан - БД будет недоступна.")

    def debug_dump(self) -> Dict[str, str]:
        """Безопасный дамп ключевых настроек (без секретов) для /health и логов."""
        return {
            "env": self.env_normalized,
            "projectName": self.PROJECT_NAME,
            "version": self.APP_VERSION,
            "apiPrefix": self.API_PREFIX,
            "dbUrlSet": "yes" if bool(self.DATABASE_URL) else "no",
            "drawMode": self.RAFFLE_DRAW_MODE,
            "depositMaxDimensionCm": str(self.DEPOSIT_MAX_DIMENSION_CM),
            "ticketsPerCurrencyUnit": str(self.TICKETS_PER_CURRENCY_UNIT),
        }

    def initialize_runtime(self) -> None:
        """Единая точка инициализации конфигурации при старте приложения."""
        self.assert_required_secrets()


# =============================================================================
# Синглтон настроек для всего приложения
# =============================================================================


@lru_cache()
def get_settings() -> Settings:
    """Создаёт и кэширует объект Settings, выполняя initialize_runtime()."""
    settings_obj = Settings()
    settings_obj.initialize_runtime()
    return settings_obj


__all__ = ["Settings", "get_settings"]
