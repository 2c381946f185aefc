# -*- coding: utf-8 -*-
# raffle_backend/app/services/deposit_policy_service.py
# =============================================================================
# Назначение кода:
#   Политика гарантийного депозита: по размерам товара решает, нужен ли
#   магазину депозит под розыгрыш.
#
# Канон/инварианты:
#   • requires = h > MAX или w > MAX или d > MAX, MAX = DEPOSIT_MAX_DIMENSION_CM
#     (15 см). Ровно 15 см - депозит не нужен.
#   • Каждое измерение - конечное число > 0, иначе InvalidDimensionError.
#   • Чистая функция: без БД, без логов, без побочных эффектов. Вызывается при
#     каждом изменении размеров товара.
#   • Жёсткий предел размеров (PRODUCT_MAX_DIMENSION_CM) по умолчанию не задан:
#     товары крупнее 15 см допустимы, но требуют депозит.
# =============================================================================

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from raffle_backend.app.core.config_core import get_settings
from raffle_backend.app.core.errors_core import InvalidDimensionError
from raffle_backend.app.core.utils_core import NumberLike, decimal_from

settings = get_settings()


def _dimension(name: str, raw: NumberLike) -> Decimal:
    try:
        value = decimal_from(raw)
    except ValueError as exc:
        raise InvalidDimensionError(
            f"{name} must be a number.",
            details={"field": name},
        ) from exc
    if not value.is_finite() or value <= 0:
        raise InvalidDimensionError(
            f"{name} must be a positive number.",
            details={"field": name, "value": str(raw)},
        )
    return value


def evaluate_deposit_requirement(
    height: NumberLike,
    width: NumberLike,
    depth: NumberLike,
    *,
    max_dimension: Optional[NumberLike] = None,
    hard_cap: Optional[NumberLike] = None,
) -> bool:
    """
    True, если хотя бы одно измерение строго больше порога депозита.

    max_dimension - порог (по умолчанию DEPOSIT_MAX_DIMENSION_CM);
    hard_cap      - жёсткий предел размеров (по умолчанию PRODUCT_MAX_DIMENSION_CM,
                    None - без предела); превышение → InvalidDimensionError.
    """
    dims = {
        "height": _dimension("height", height),
        "width": _dimension("width", width),
        "depth": _dimension("depth", depth),
    }

    cap_raw = hard_cap if hard_cap is not None else settings.PRODUCT_MAX_DIMENSION_CM
    if cap_raw is not None:
        cap = decimal_from(cap_raw)
        too_big = [name for name, value in dims.items() if value > cap]
        if too_big:
            raise InvalidDimensionError(
                f"Dimensions exceed the maximum of {cap} cm.",
                details={"fields": too_big, "max_cm": str(cap)},
            )

    threshold = decimal_from(
        max_dimension if max_dimension is not None else settings.DEPOSIT_MAX_DIMENSION_CM
    )
    return any(value > threshold for value in dims.values())


__all__ = ["evaluate_deposit_requirement"]
