# -*- coding: utf-8 -*-
# raffle_backend/app/core/system_locks.py
# =============================================================================
# Назначение кода:
#   Единый «канон-замок» сервиса розыгрышей. Гарантирует инварианты проекта
#   до старта приложения и во время работы:
#   • проданных билетов не больше выпущенных (0 ≤ sold ≤ total);
#   • номера билетов уникальны в пределах розыгрыша и лежат в [1, total];
#   • FINISHED ⇔ победитель назначен;
#   • обязательный Idempotency-Key для покупки билетов.
#
# Канон / инварианты (фиксируем жёстко):
#   • Нарушение любого из этих правил - ошибка проекта, а не пользователя.
#     Поднимается InvariantViolation, транзакция откатывается, в лог - CRITICAL.
#   • Покупка билетов (POST .../purchases) - строго с заголовком Idempotency-Key,
#     ключ служит payment_ref подтверждённого платежа.
#
# ИИ-защита / самовосстановление:
#   • Проверки вызываются сервисами внутри транзакции розыгрыша ДО commit.
#   • Middleware «прикрывает» покупки по префиксу/суффиксу пути или по метке
#     @monetary_op, даже если разработчик забыл зависимость в роуте.
#   • init_system_locks() проверяет согласованность конфигурации на старте.
#
# Запреты:
#   • Здесь нет бизнес-логики розыгрышей. Только проверки и middleware.
# =============================================================================

from __future__ import annotations

import uuid
from typing import Any, Callable, Iterable, Optional, Tuple

from fastapi import Header, HTTPException, Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Match
from starlette.types import ASGIApp

from raffle_backend.app.core.config_core import get_settings
from raffle_backend.app.core.logging_core import get_logger

logger = get_logger(__name__)
settings = get_settings()


# -----------------------------------------------------------------------------
# Исключения нарушений канона
# -----------------------------------------------------------------------------
class InvariantViolation(RuntimeError):
    """
    Нарушение канона / инвариантов хранилища розыгрышей.

    Важно:
    • Это ОШИБКА ПРОЕКТА, а не «ошибка пользователя».
    • Верхний слой отдаёт 500 invariant_violation и пишет CRITICAL.
    """


class DuplicateTicketNumberError(InvariantViolation):
    """Номер билета уже занят в этом розыгрыше (уникальность нарушена)."""


# -----------------------------------------------------------------------------
# Публичные проверки - импортируются сервисами
# -----------------------------------------------------------------------------
def ensure_sold_within_total(
    *,
    raffle_id: int,
    sold_tickets: int,
    total_tickets: int,
) -> None:
    """
    Проверка «не продать больше, чем выпущено».

    Вызывать ПОСЛЕ расчёта нового sold_tickets, но ДО flush/commit.
    """
    if sold_tickets < 0 or sold_tickets > total_tickets:
        logger.critical(
            "Ticket counter out of bounds",
            extra={
                "raffle_id": raffle_id,
                "sold_tickets": sold_tickets,
                "total_tickets": total_tickets,
            },
        )
        raise InvariantViolation(
            f"Raffle {raffle_id}: sold_tickets={sold_tickets} "
            f"outside [0, {total_tickets}]",
        )


def ensure_counter_matches_tickets(
    *,
    raffle_id: int,
    sold_tickets: int,
    max_ticket_number: int,
) -> None:
    """
    Счётчик sold_tickets - источник нумерации: следующий номер = sold + 1.
    Если в таблице билетов уже есть номер больше счётчика, нумерация сломана.
    """
    if max_ticket_number != sold_tickets:
        logger.critical(
            "Ticket counter diverged from issued numbers",
            extra={
                "raffle_id": raffle_id,
                "sold_tickets": sold_tickets,
                "max_ticket_number": max_ticket_number,
            },
        )
        raise InvariantViolation(
            f"Raffle {raffle_id}: counter={sold_tickets}, "
            f"max issued number={max_ticket_number}",
        )


def ensure_ticket_number_in_range(
    *,
    raffle_id: int,
    number: int,
    total_tickets: int,
) -> None:
    """Номер билета (в т.ч. выигрышный) обязан лежать в [1, total]."""
    if number < 1 or number > total_tickets:
        logger.critical(
            "Ticket number out of range",
            extra={
                "raffle_id": raffle_id,
                "number": number,
                "total_tickets": total_tickets,
            },
        )
        raise InvariantViolation(
            f"Raffle {raffle_id}: ticket number {number} outside [1, {total_tickets}]",
        )


def ensure_finished_has_winner(
    *,
    raffle_id: int,
    finished: bool,
    winner_ticket_id: Optional[int],
) -> None:
    """FINISHED ⇔ winner_ticket_id задан."""
    if finished != (winner_ticket_id is not None):
        logger.critical(
            "Winner/status mismatch",
            extra={
                "raffle_id": raffle_id,
                "finished": finished,
                "winner_ticket_id": winner_ticket_id,
            },
        )
        raise InvariantViolation(
            f"Raffle {raffle_id}: finished={finished} but winner_ticket_id={winner_ticket_id}",
        )


# -----------------------------------------------------------------------------
# Обязательный Idempotency-Key для покупок
# -----------------------------------------------------------------------------
async def require_idempotency_key(
    idempotency_key: Optional[str] = Header(
        default=None,
        convert_underscores=False,
        alias="Idempotency-Key",
    ),
) -> str:
    """
    FastAPI-зависимость для покупки билетов.

    Возвращает строку ключа, либо 400, если заголовок пустой или отсутствует.
    При REQUIRE_IDEMPOTENCY_HEADER=false вместо 400 выдаётся сгенерированный ключ.
    """
    if not idempotency_key or not idempotency_key.strip():
        if not settings.REQUIRE_IDEMPOTENCY_HEADER:
            return f"gen-{uuid.uuid4().hex}"
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Idempotency-Key header is strictly required for ticket purchases.",
        )
    return idempotency_key.strip()


def monetary_op(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Декоратор-метка для эндпоинтов, чтобы middleware знал, что это денежная
    операция (покупка билетов).
    """
    setattr(func, "_monetary_op", True)
    return func


class MonetaryIdempotencyMiddleware(BaseHTTPMiddleware):
    """
    Middleware-страховка: если разработчик забыл зависимость
    require_idempotency_key на ручке покупки, этот слой проверит заголовок
    по суффиксам пути ИЛИ по явной метке @monetary_op и вернёт 400 при
    отсутствии ключа.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        path_suffixes: Optional[Iterable[str]] = None,
        methods: Tuple[str, ...] = ("POST",),
    ) -> None:
        super().__init__(app)
        self.methods = methods
        self.suffixes = tuple(path_suffixes) if path_suffixes is not None else ("/purchases",)

    async def dispatch(  # type: ignore[override]
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Any:
        if request.method not in self.methods:
            return await call_next(request)

        path = (request.url.path or "/").rstrip("/")
        path_matches = any(path.endswith(s) for s in self.suffixes)

        marked = False
        router = getattr(request.app, "router", None)
        if router is not None:
            for route in router.routes:
                match, _ = route.matches(request.scope)
                if match != Match.FULL:
                    continue
                endpoint = getattr(route, "endpoint", None)
                if endpoint and getattr(endpoint, "_monetary_op", False):
                    marked = True
                    break

        if path_matches or marked:
            idk = (request.headers.get("Idempotency-Key") or "").strip()
            if not idk:
                return JSONResponse(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    content={
                        "error": "idempotency_key_required",
                        "message": "Idempotency-Key header is required for ticket purchases.",
                    },
                )

        return await call_next(request)


# -----------------------------------------------------------------------------
# Инициализация «замков» на старте приложения
# -----------------------------------------------------------------------------
def assert_config_canon() -> None:
    """
    Проверяет согласованность порогов: жёсткий предел размеров товара (если
    задан) не может быть меньше порога депозита - иначе депозит никогда
    не понадобится, а крупные товары будут отвергнуты.
    """
    cap = settings.PRODUCT_MAX_DIMENSION_CM
    if cap is not None and cap < settings.DEPOSIT_MAX_DIMENSION_CM:
        raise InvariantViolation(
            f"PRODUCT_MAX_DIMENSION_CM={cap} is below "
            f"DEPOSIT_MAX_DIMENSION_CM={settings.DEPOSIT_MAX_DIMENSION_CM}",
        )


def init_system_locks(app: Any) -> None:
    """
    Инициализация канон-проверок и middleware.

    Вызывать один раз при сборке FastAPI:
        app = FastAPI(...)
        init_system_locks(app)
    """
    assert_config_canon()
    logger.info("SystemLocks: configuration canon validated.")

    if settings.REQUIRE_IDEMPOTENCY_HEADER:
        app.add_middleware(MonetaryIdempotencyMiddleware)
        logger.info("SystemLocks: MonetaryIdempotencyMiddleware installed.")
    else:
        logger.warning(
            "REQUIRE_IDEMPOTENCY_HEADER=false. Purchases without Idempotency-Key "
            "get a generated payment reference and lose retry safety.",
        )


__all__ = [
    "InvariantViolation",
    "DuplicateTicketNumberError",
    "ensure_sold_within_total",
    "ensure_counter_matches_tickets",
    "ensure_ticket_number_in_range",
    "ensure_finished_has_winner",
    "require_idempotency_key",
    "monetary_op",
    "MonetaryIdempotencyMiddleware",
    "assert_config_canon",
    "init_system_locks",
]

# =============================================================================
# Пояснения «для чайника»:
#   • Сервисы вызывают ensure_*(...) внутри транзакции розыгрыша. Если проверка
#     падает - поднимается InvariantViolation, транзакция откатывается целиком.
#   • Ручка покупки:
#       а) dependencies=[Depends(require_idempotency_key)];
#       б) декоратор-метка @monetary_op.
#     Даже если забыли - middleware проверит по суффиксу пути.
# =============================================================================
