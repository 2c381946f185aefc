# -*- coding: utf-8 -*-
# raffle_backend/app/core/utils_core.py
# =============================================================================
# Назначение:
#   • Базовые утилиты уровня "core" без зависимостей от FastAPI/SQLAlchemy.
#   • Работа с Decimal (денежная точность 2 знака, фиксированное округление).
#   • Проверка «конечное положительное число» для размеров и стоимости.
#   • Время/таймстемпы.
#
# Канон:
#   • Стоимость товара хранится и сравнивается как Decimal, никаких float.
#   • Все функции чистые: без сетевых вызовов и без побочных эффектов.
#
# ИИ-защита:
#   • NaN/inf и мусорные строки распознаются явно (is_finite_number),
#     а не «проглатываются» в 0 - ошибку бросает вызывающий сервис.
# =============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from decimal import (
    Decimal,
    InvalidOperation,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_UP,
    getcontext,
)
from typing import Dict, Optional, Union

getcontext().prec = 28

NumberLike = Union[str, int, float, Decimal]

_ROUNDING_MAP: Dict[str, str] = {
    "DOWN": ROUND_DOWN,
    "HALF_UP": ROUND_HALF_UP,
    "FLOOR": ROUND_FLOOR,
}

MONEY_DECIMALS = 2


# -----------------------------------------------------------------------------
# Decimal helpers
# -----------------------------------------------------------------------------
def decimal_from(value: NumberLike) -> Decimal:
    """
    Приводит значение к Decimal.

    Особенности:
    • float приводим через str(), чтобы минимизировать бинарные артефакты.
    • bool отвергается (True не стоимость и не размер).
    • Некорректная строка → ValueError.
    """
    if isinstance(value, bool):
        raise ValueError("bool is not a number")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"not a number: {value!r}") from exc


def is_finite_number(value: object) -> bool:
    """True, если значение приводится к конечному Decimal (не NaN/inf)."""
    try:
        d = decimal_from(value)  # type: ignore[arg-type]
    except ValueError:
        return False
    return d.is_finite()


def quantize_decimal(
    value: NumberLike,
    decimals: int = MONEY_DECIMALS,
    rounding: str = "HALF_UP",
) -> Decimal:
    """
    Округляет число до fixed-point с заданной точностью.

    По умолчанию - денежная точность (2 знака) и HALF_UP.
    """
    d = decimal_from(value)
    q = Decimal(1).scaleb(-decimals)
    rounding_mode = _ROUNDING_MAP.get(rounding.upper(), ROUND_HALF_UP)
    return d.quantize(q, rounding=rounding_mode)


def floor_int(value: Decimal) -> int:
    """Целая часть вниз (floor) для неотрицательных и отрицательных Decimal."""
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def format_money(value: NumberLike) -> str:
    """Строка с 2 знаками после запятой: Decimal('49.9') → '49.90'."""
    return f"{quantize_decimal(value):.{MONEY_DECIMALS}f}"


# -----------------------------------------------------------------------------
# Время / таймстемпы
# -----------------------------------------------------------------------------
def utcnow() -> datetime:
    """Текущее время в UTC с tzinfo=UTC."""
    return datetime.now(tz=timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite возвращает naive datetime - считаем его UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_iso_datetime(raw: Optional[str]) -> Optional[datetime]:
    """
    Ненавязчивый парсер ISO-даты/времени.

    Возвращает datetime (UTC, если зона не указана) или None для пустой/
    некорректной строки. Примеры: "2026-08-27", "2026-08-27T12:30:00Z".
    """
    if not raw:
        return None
    candidate = raw.strip()
    if "T" not in candidate and ":" not in candidate and " " not in candidate:
        candidate = f"{candidate}T00:00:00"
    try:
        parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
    except ValueError:
        return None
    return as_utc(parsed)


__all__ = [
    "NumberLike",
    "MONEY_DECIMALS",
    "decimal_from",
    "is_finite_number",
    "quantize_decimal",
    "floor_int",
    "format_money",
    "utcnow",
    "as_utc",
    "parse_iso_datetime",
]
