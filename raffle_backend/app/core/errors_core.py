# -*- coding: utf-8 -*-
# raffle_backend/app/core/errors_core.py
# =============================================================================
# Назначение кода:
#   • Единый слой ошибок/исключений сервиса розыгрышей.
#   • Канонические коды ошибок для фронтенда/логов.
#   • Унифицированные JSON-ответы для FastAPI.
#
# Канон / инварианты:
#   • Сервисы бросают ТОЛЬКО доменные исключения из этого модуля
#     (или InvariantViolation из system_locks).
#   • Клиенту никогда не утекают технические детали (stack trace, DSN).
#   • Для всех известных исключений есть стабильные error_code и http_status.
#
# ИИ-защита:
#   • Любая неизвестная ошибка логируется как INTERNAL, но наружу выдаётся
#     безопасное сообщение "internal_error" без деталей.
#   • InvariantViolation (нарушение канона) пишется в лог как CRITICAL и
#     отдаётся как 500 с кодом "invariant_violation".
#
# Запреты:
#   • Не включать сюда бизнес-логику (расчёт билетов, переходы статусов).
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, cast

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from raffle_backend.app.core.logging_core import get_logger
from raffle_backend.app.core.system_locks import InvariantViolation

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Базовая доменная ошибка
# -----------------------------------------------------------------------------
@dataclass
class RaffleError(Exception):
    """
    Базовое доменное исключение сервиса розыгрышей.

    Поля:
      • code         - стабильный машинный код ошибки (snake_case).
      • message      - короткое безопасное сообщение для клиента.
      • http_status  - HTTP код по умолчанию.
      • details      - безопасные детали (без секретов), опционально.
    """

    code: str
    message: str
    http_status: int = status.HTTP_400_BAD_REQUEST
    details: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """Готовит JSON-ответ для клиента."""
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


# -----------------------------------------------------------------------------
# Доменные ошибки
# -----------------------------------------------------------------------------
class NotFoundError(RaffleError):
    """Ресурс не найден (товар, магазин, депозит и т.п.)."""

    def __init__(
        self,
        message: str = "Resource not found.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="not_found",
            message=message,
            http_status=status.HTTP_404_NOT_FOUND,
            details=details or {},
        )


class RaffleNotFoundError(NotFoundError):
    """Розыгрыш с таким id не существует."""

    def __init__(self, raffle_id: int) -> None:
        super().__init__(
            f"Raffle {raffle_id} not found.",
            details={"raffle_id": raffle_id},
        )
        self.code = "raffle_not_found"


class ValidationError(RaffleError):
    """Некорректные входные данные."""

    def __init__(
        self,
        message: str = "Invalid data.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="validation_error",
            message=message,
            http_status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details or {},
        )


class InvalidDimensionError(RaffleError):
    """Измерение товара не положительное, не число или выше жёсткого предела."""

    def __init__(
        self,
        message: str = "Product dimensions must be positive numbers.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="invalid_dimension",
            message=message,
            http_status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details or {},
        )


class InvalidProductValueError(RaffleError):
    """Стоимость товара не даёт ни одного билета."""

    def __init__(
        self,
        message: str = "Product value must produce at least one ticket.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="invalid_product_value",
            message=message,
            http_status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details or {},
        )


class InsufficientTicketsError(RaffleError):
    """Запрошено больше билетов, чем осталось (частичной продажи нет)."""

    def __init__(
        self,
        *,
        requested: int,
        remaining: int,
    ) -> None:
        super().__init__(
            code="insufficient_tickets",
            message="Not enough tickets left.",
            http_status=status.HTTP_409_CONFLICT,
            details={"requested": requested, "remaining": remaining},
        )


class InvalidStateTransitionError(RaffleError):
    """Переход статуса не разрешён графом (или розыгрыш не в нужном статусе)."""

    def __init__(
        self,
        message: str = "Transition is not allowed.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="invalid_state_transition",
            message=message,
            http_status=status.HTTP_409_CONFLICT,
            details=details or {},
        )


class ShopBlockedError(InvalidStateTransitionError):
    """Заблокированный магазин не может отправлять розыгрыши на модерацию."""

    def __init__(self, shop_id: int) -> None:
        super().__init__(
            "Shop is blocked.",
            details={"shop_id": shop_id},
        )
        self.code = "shop_blocked"


class MissingReasonError(RaffleError):
    """Для отмены/отклонения обязательна непустая причина."""

    def __init__(
        self,
        message: str = "A non-empty reason is required.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="missing_reason",
            message=message,
            http_status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details or {},
        )


class MissingRejectReasonError(MissingReasonError):
    """Отклонение розыгрыша без причины."""

    def __init__(self) -> None:
        super().__init__("A non-empty rejection reason is required.")
        self.code = "missing_reject_reason"


class UnauthorizedError(RaffleError):
    """Роль/владелец актёра не подходит для операции."""

    def __init__(
        self,
        message: str = "Actor is not allowed to perform this operation.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            code="unauthorized",
            message=message,
            http_status=status.HTTP_403_FORBIDDEN,
            details=details or {},
        )


class BusyError(RaffleError):
    """Розыгрыш занят конкурентной транзакцией; клиент может повторить."""

    def __init__(
        self,
        raffle_id: int,
        *,
        attempts: int = 0,
    ) -> None:
        super().__init__(
            code="busy",
            message="Raffle is busy, retry later.",
            http_status=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"raffle_id": raffle_id, "attempts": attempts},
        )


class ProductLockedError(RaffleError):
    """Стоимость/размеры товара заморожены активным розыгрышем."""

    def __init__(self, product_id: int) -> None:
        super().__init__(
            code="product_locked",
            message="Product value and dimensions are locked by a raffle.",
            http_status=status.HTTP_409_CONFLICT,
            details={"product_id": product_id},
        )


# -----------------------------------------------------------------------------
# Нормализация исключений → (status_code, payload)
# -----------------------------------------------------------------------------
def normalize_exception(
    exc: BaseException,
) -> Tuple[int, Dict[str, Any]]:
    """
    Приводит произвольное исключение к каноническому HTTP-ответу.

    Правила:
      • RaffleError          → свой http_status + to_payload().
      • InvariantViolation   → 500 + {"error": "invariant_violation"}.
      • HTTPException        → status_code + {"error": "http_error", ...}.
      • Любая другая         → 500 + {"error": "internal_error"} (без деталей).
    """
    if isinstance(exc, RaffleError):
        return exc.http_status, exc.to_payload()

    if isinstance(exc, InvariantViolation):
        logger.critical("InvariantViolation reached API boundary: %s", str(exc))
        return (
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {
                "error": "invariant_violation",
                "message": "Storage invariant violated; operation rolled back.",
            },
        )

    if isinstance(exc, HTTPException):
        msg: str
        if isinstance(exc.detail, str):
            msg = exc.detail
            details: Dict[str, Any] = {}
        elif isinstance(exc.detail, dict):
            details = cast(Dict[str, Any], exc.detail)
            msg = details.get("message") or details.get("detail") or "HTTP error."
        else:
            msg = "HTTP error."
            details = {}

        payload = {
            "error": "http_error",
            "message": msg,
        }
        if details:
            payload["details"] = details
        return exc.status_code, payload

    logger.exception("Unhandled exception", extra={"error_type": type(exc).__name__})
    return (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {
            "error": "internal_error",
            "message": "Internal server error.",
        },
    )


# -----------------------------------------------------------------------------
# FastAPI-хендлеры исключений
# -----------------------------------------------------------------------------
async def raffle_error_handler(
    request: Request, exc: RaffleError
) -> JSONResponse:
    """Обработчик RaffleError: структурированный JSON с кодом ошибки."""
    status_code, payload = normalize_exception(exc)
    logger.warning(
        "RaffleError handled",
        extra={
            "path": request.url.path,
            "error": exc.code,
            "status": status_code,
        },
    )
    return JSONResponse(status_code=status_code, content=payload)


async def invariant_violation_handler(
    request: Request, exc: InvariantViolation
) -> JSONResponse:
    status_code, payload = normalize_exception(exc)
    logger.critical(
        "InvariantViolation handled",
        extra={
            "path": request.url.path,
            "status": status_code,
            "exc_type": type(exc).__name__,
        },
    )
    return JSONResponse(status_code=status_code, content=payload)


async def http_exception_handler(
    request: Request, exc: HTTPException
) -> JSONResponse:
    status_code, payload = normalize_exception(exc)
    return JSONResponse(status_code=status_code, content=payload, headers=exc.headers)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Ошибки валидации тела/параметров запроса → 422 validation_error."""
    payload = {
        "error": "validation_error",
        "message": "Request validation failed.",
        "details": {"errors": exc.errors()},
    }
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder(payload),
    )


async def generic_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Обработчик "на всё остальное".

    ИИ-защита:
      • Логируем stack trace и тип исключения.
      • Клиенту отдаём только безопасный internal_error.
    """
    status_code, payload = normalize_exception(exc)
    logger.error(
        "Unhandled exception handled by generic handler",
        extra={
            "path": request.url.path,
            "status": status_code,
            "exc_type": type(exc).__name__,
        },
    )
    return JSONResponse(status_code=status_code, content=payload)


# -----------------------------------------------------------------------------
# Регистрация хендлеров в приложении FastAPI
# -----------------------------------------------------------------------------
def setup_exception_handlers(app: FastAPI) -> None:
    """
    Подключает все необходимые обработчики исключений.

    Вызывать один раз при создании приложения:
        app = FastAPI(...)
        setup_exception_handlers(app)
    """
    app.add_exception_handler(RaffleError, raffle_error_handler)
    app.add_exception_handler(InvariantViolation, invariant_violation_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers registered for RaffleError/InvariantViolation/Exception")


# =============================================================================
# Пояснения «для чайника»:
#   • Если в сервисе что-то пошло не так по бизнес-логике, бросайте RaffleError
#     (или его наследника), а не голый HTTPException - тогда фронт увидит
#     стабильный error_code и message.
#   • InvariantViolation - это сигнал «хранилище могло бы испортиться»;
#     его бросают проверки system_locks.ensure_*(), а не пользовательский ввод.
#   • Не забудьте вызвать setup_exception_handlers(app) в create_app().
# =============================================================================

__all__ = [
    "RaffleError",
    "NotFoundError",
    "RaffleNotFoundError",
    "ValidationError",
    "InvalidDimensionError",
    "InvalidProductValueError",
    "InsufficientTicketsError",
    "InvalidStateTransitionError",
    "ShopBlockedError",
    "MissingReasonError",
    "MissingRejectReasonError",
    "UnauthorizedError",
    "BusyError",
    "ProductLockedError",
    "normalize_exception",
    "setup_exception_handlers",
]
