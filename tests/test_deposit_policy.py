"""Политика депозита по габаритам товара."""

from decimal import Decimal

import pytest

from raffle_backend.app.core.errors_core import InvalidDimensionError
from raffle_backend.app.services.deposit_policy_service import evaluate_deposit_requirement


def test_small_product_needs_no_deposit():
    """Все измерения ≤ 15 см - депозит не нужен."""
    assert evaluate_deposit_requirement(10, 10, 10) is False


def test_exactly_threshold_is_not_oversized():
    """Ровно 15 см - ещё не «больше порога»."""
    assert evaluate_deposit_requirement(15, 15, Decimal("15.00")) is False


@pytest.mark.parametrize("dims", [(16, 10, 10), (10, 15.01, 10), (10, 10, "40")])
def test_any_oversized_dimension_requires_deposit(dims):
    """Хотя бы одно измерение > 15 см - депозит обязателен."""
    assert evaluate_deposit_requirement(*dims) is True


@pytest.mark.parametrize(
    "dims",
    [(0, 10, 10), (10, -1, 10), (10, 10, float("nan")), (10, float("inf"), 10), ("abc", 1, 1)],
)
def test_invalid_dimensions_rejected(dims):
    """Ноль, отрицательные, NaN/inf и нечисла - InvalidDimensionError."""
    with pytest.raises(InvalidDimensionError) as info:
        evaluate_deposit_requirement(*dims)
    assert info.value.code == "invalid_dimension"
    assert info.value.http_status == 422


def test_custom_threshold():
    """Порог можно передать явно."""
    assert evaluate_deposit_requirement(20, 20, 20, max_dimension=25) is False
    assert evaluate_deposit_requirement(26, 20, 20, max_dimension=25) is True


def test_hard_cap_rejects_huge_products():
    """Жёсткий предел размеров: превышение - ошибка, а не депозит."""
    assert evaluate_deposit_requirement(50, 10, 10, hard_cap=100) is True
    with pytest.raises(InvalidDimensionError) as info:
        evaluate_deposit_requirement(150, 10, 10, hard_cap=100)
    assert info.value.details["fields"] == ["height"]


def test_no_hard_cap_by_default(settings):
    """Без PRODUCT_MAX_DIMENSION_CM крупные товары разрешены (с депозитом)."""
    assert settings.PRODUCT_MAX_DIMENSION_CM is None
    assert evaluate_deposit_requirement(500, 300, 200) is True
