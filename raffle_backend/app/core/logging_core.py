# -*- coding: utf-8 -*-
# raffle_backend/app/core/logging_core.py
# =============================================================================
# Назначение кода:
#   Централизованная настройка логирования сервиса розыгрышей:
#   • формат и хэндлеры;
#   • контекст корреляции (request_id, idempotency_key, actor_id);
#   • защита от утечек секретов (DSN БД);
#   • удобные утилиты для модулей.
#
# Канон / инварианты:
#   • Единый стиль логов во всём приложении:
#       - prod - JSON (python-json-logger, для агрегаторов),
#       - dev/local - человекочитаемый формат.
#   • Переходы статусов розыгрышей пишутся на INFO, конфликты транзакций -
#     на WARNING, нарушения инвариантов - на CRITICAL.
#   • Поля корреляции: env, svc, rid, idk, uid.
#
# ИИ-защита:
#   • Фильтр редактирует чувствительные значения (DATABASE_URL) в логах.
#   • Корреляция контекста через contextvars - запросы не смешиваются.
#
# Запреты:
#   • Никаких сетевых/блокирующих операций в форматерах/фильтрах.
# =============================================================================

from __future__ import annotations

import contextvars
import logging
import sys
import uuid
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

from pythonjsonlogger.json import JsonFormatter

from raffle_backend.app.core.config_core import get_settings

ASGIApp = Callable[
    [Mapping[str, Any], Callable[..., Awaitable[Any]], Callable[..., Awaitable[Any]]],
    Awaitable[Any],
]


# -----------------------------------------------------------------------------
# Контекст корреляции (contextvars) - безопасно для асинхронного кода
# -----------------------------------------------------------------------------
_rid_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "rid",
    default=None,
)  # request_id
_idk_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "idk",
    default=None,
)  # idempotency_key
_uid_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "uid",
    default=None,
)  # actor id


def set_request_context(
    *,
    request_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    user_id: Optional[int | str] = None,
) -> None:
    """
    Присвоить контекст корреляции текущему асинхронному потоку.

    Используется middleware и зависимостями, чтобы все логи запроса
    автоматически включали request_id / idempotency_key / actor id.
    """
    if request_id is not None:
        _rid_var.set(str(request_id))
    if idempotency_key is not None:
        _idk_var.set(str(idempotency_key))
    if user_id is not None:
        _uid_var.set(str(user_id))


def clear_request_context() -> None:
    """Очистить контекст корреляции (после завершения запроса/таски)."""
    _rid_var.set(None)
    _idk_var.set(None)
    _uid_var.set(None)


# -----------------------------------------------------------------------------
# Фильтры логирования
# -----------------------------------------------------------------------------
class ContextFilter(logging.Filter):
    """
    Впрыскивает в запись логера поля корреляции из contextvars и настроек.

    Поля:
      • env  - нормализованная среда (local/dev/prod);
      • svc  - имя сервиса (PROJECT_NAME);
      • rid  - request_id;
      • idk  - idempotency_key (ссылка платежа при покупке билетов);
      • uid  - id актёра (если установлен).
    """

    def __init__(self, env: str, service: str) -> None:
        super().__init__()
        self._env = env
        self._svc = service

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "env"):
            record.env = self._env
        if not hasattr(record, "svc"):
            record.svc = self._svc
        if not hasattr(record, "rid"):
            record.rid = _rid_var.get() or "-"
        if not hasattr(record, "idk"):
            record.idk = _idk_var.get() or "-"
        if not hasattr(record, "uid"):
            record.uid = _uid_var.get() or "-"
        return True


class RedactingFilter(logging.Filter):
    """
    Маскирует значения секретов, извлечённых из настроек, в тексте сообщения.
    Ошибки фильтра никогда не блокируют логирование.
    """

    MASK = "****"
    SECRET_KEYS: Tuple[str, ...] = ("DATABASE_URL",)

    def __init__(self, settings_obj: object) -> None:
        super().__init__()
        self._secrets: list[str] = []
        for key in self.SECRET_KEYS:
            val = getattr(settings_obj, key, None)
            if val and isinstance(val, str):
                self._secrets.append(val)

    def _redact_text(self, text: str) -> str:
        redacted = text
        for secret in self._secrets:
            if secret in redacted:
                redacted = redacted.replace(secret, self.MASK)
        return redacted

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not self._secrets:
            return True
        if isinstance(record.msg, str):
            record.msg = self._redact_text(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(
                self._redact_text(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


# -----------------------------------------------------------------------------
# Форматеры
# -----------------------------------------------------------------------------
class DevFormatter(logging.Formatter):
    """
    Человекочитаемый формат для local/dev-окружений.

    Пример строки:
    2026-10-19 12:00:00 | INFO     | Raffles Backend | raffle_backend... | rid=... idk=... uid=... | msg
    """

    def __init__(self) -> None:
        super().__init__(
            fmt=(
                "%(asctime)s | %(levelname)-8s | %(svc)s | %(name)s | "
                "rid=%(rid)s idk=%(idk)s uid=%(uid)s | %(message)s"
            ),
            datefmt="%Y-%m-%d %H:%M:%S",
        )


class ServiceJsonFormatter(JsonFormatter):
    """JSON-форматер: фиксированный набор ключей + extra-поля записи."""

    _RENAMES: Dict[str, str] = {
        "asctime": "time",
        "levelname": "level",
        "svc": "service",
        "name": "logger",
        "message": "msg",
    }

    def process_log_record(self, log_record: Dict[str, Any]) -> Dict[str, Any]:
        base = super().process_log_record(log_record)
        return {self._RENAMES.get(key, key): value for key, value in base.items()}


def _make_json_formatter() -> logging.Formatter:
    """
    Создаёт JSON-форматер для продакшн-окружения.

    Структура JSON:
        {"time", "level", "service", "logger", "env", "rid", "idk", "uid", "msg", ...extra}
    """
    fmt = (
        "%(asctime)s "
        "%(levelname)s "
        "%(svc)s "
        "%(name)s "
        "%(env)s "
        "%(rid)s "
        "%(idk)s "
        "%(uid)s "
        "%(message)s"
    )
    return ServiceJsonFormatter(fmt=fmt)


# -----------------------------------------------------------------------------
# Инициализация логирования
# -----------------------------------------------------------------------------
def setup_logging() -> None:
    """
    Полностью настраивает логирование:

      • root-логгер, формат, уровни;
      • консоль (stdout);
      • фильтры контекста и редактирования;
      • uvicorn/fastapi-логгеры → в root (единый формат);
      • SQLAlchemy-логгер в режиме DEBUG.
    """
    settings = get_settings()
    env = settings.env_normalized
    debug = bool(settings.DEBUG)
    service = settings.PROJECT_NAME

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_raffle_console", False):
            root.removeHandler(handler)
    level = logging.DEBUG if debug else logging.INFO
    root.setLevel(level)

    ctx_filter = ContextFilter(env=env, service=service)
    redact_filter = RedactingFilter(settings_obj=settings)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler._raffle_console = True  # type: ignore[attr-defined]
    formatter: logging.Formatter = (
        _make_json_formatter() if settings.log_json else DevFormatter()
    )
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ctx_filter)
    console_handler.addFilter(redact_filter)
    root.addHandler(console_handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.setLevel(level)
        logger.propagate = True

    if debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "details": {
                "env": env,
                "debug": debug,
                "json": settings.log_json,
                "level": logging.getLevelName(level),
            },
        },
    )


def get_logger(name: Optional[str] = None, **extra: Any) -> logging.Logger:
    """
    Получить логгер по имени и (опционально) привязать дополнительные поля
    через LoggerAdapter.

    Пример:
        log = get_logger(__name__, component="finalizer")
        log.info("tick started", extra={"batch": 50})
    """
    base = logging.getLogger(name)
    if not extra:
        return base
    return logging.LoggerAdapter(base, extra)  # type: ignore[return-value]


def logger_with(logger: logging.Logger, **extra: Any) -> logging.Logger:
    """
    Обернуть существующий логгер адаптером с дополнительными полями:
        log = logger_with(log, raffle_id=raffle.id)
    """
    return logging.LoggerAdapter(logger, extra)  # type: ignore[return-value]


# -----------------------------------------------------------------------------
# ASGI-middleware для корреляции (подключается в create_app)
# -----------------------------------------------------------------------------
class CorrelationIdMiddleware:
    """
    Впрыскивает X-Request-ID и Idempotency-Key из HTTP-заголовков в contextvars,
    чтобы все логи запроса автоматически содержали rid/idk.

    Правила:
      • Если X-Request-ID отсутствует - генерируется UUID4 (hex).
      • Ответ всегда содержит заголовок x-request-id.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[..., Awaitable[Any]],
        send: Callable[..., Awaitable[Any]],
    ) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        headers: Dict[str, str] = {
            key.decode().lower(): value.decode()
            for key, value in (scope.get("headers") or [])
        }

        rid = headers.get("x-request-id") or uuid.uuid4().hex
        idk = headers.get("idempotency-key")
        set_request_context(request_id=rid, idempotency_key=idk)

        async def send_wrapper(message: Mapping[str, Any]) -> None:
            if message.get("type") == "http.response.start":
                headers_list: list[Tuple[bytes, bytes]] = list(
                    message.get("headers") or [],
                )
                headers_list.append((b"x-request-id", rid.encode("utf-8")))
                new_message: Dict[str, Any] = dict(message)
                new_message["headers"] = headers_list
                await send(new_message)
                return
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            clear_request_context()


__all__ = [
    "setup_logging",
    "get_logger",
    "logger_with",
    "set_request_context",
    "clear_request_context",
    "CorrelationIdMiddleware",
    "ContextFilter",
    "RedactingFilter",
    "DevFormatter",
    "ServiceJsonFormatter",
]
# =============================================================================
# Пояснения «для чайника»:
#   • setup_logging() вызывается фабрикой приложения и точкой входа планировщика;
#     при импорте модуль ничего не настраивает.
#   • В dev/local вы увидите читаемые строки; в prod - структурированный JSON.
#   • Подключите CorrelationIdMiddleware в create_app(), чтобы каждая HTTP-ручка
#     получала и возвращала уникальный X-Request-ID.
# =============================================================================
