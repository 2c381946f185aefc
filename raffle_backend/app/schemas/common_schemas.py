# -*- coding: utf-8 -*-
# raffle_backend/app/schemas/common_schemas.py
# =============================================================================
# Назначение кода:
# Общие Pydantic-схемы API розыгрышей: форма ошибки, мини-мета, курсорная
# страница, денежная строка с 2 знаками.
#
# Канон / инварианты:
# • Денежные значения наружу - СТРОКОЙ с 2 знаками (Decimal, HALF_UP).
# • Списки отдаются только страницами CursorPage[T].
#
# Запреты:
# • В схемах нет бизнес-логики, только форма данных.
# =============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

MONEY_DECIMALS: int = 2
_Q2 = Decimal(1).scaleb(-MONEY_DECIMALS)


def money_str(x: Any) -> str:
    """Приводит вход к Decimal с 2 знаками (HALF_UP) и возвращает строку."""

    try:
        d = Decimal(str(x))
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError("Invalid numeric value")
    return str(d.quantize(_Q2, rounding=ROUND_HALF_UP))


class ErrorResponse(BaseModel):
    """Стандартная форма ошибки (совпадает с errors_core.to_payload)."""

    error: str = Field(..., description="Короткий код ошибки (snake-case)")
    message: str = Field(..., description="Человеко-читаемое описание проблемы")
    details: Optional[Dict[str, Any]] = Field(None, description="Структурированные детали")


class OkMeta(BaseModel):
    """Мини-мета об успешной обработке."""

    ok: bool = Field(True, description="Флаг успешной операции")
    server_time: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="UTC-время формирования ответа (ISO-8601)",
    )


T = TypeVar("T")


class CursorPage(BaseModel, Generic[T]):
    """
    Контейнер страницы списка:
      • items - элементы текущей выборки;
      • next_cursor - курсор следующей страницы (или None);
      • etag - опциональный хэш содержимого страницы.
    """

    items: List[T] = Field(..., description="Элементы текущей страницы")
    next_cursor: Optional[str] = Field(None, description="Курсор следующей страницы или None")
    etag: Optional[str] = Field(None, description="Опциональный ETag ответа")
    server_time: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="UTC-время формирования ответа (ISO-8601)",
    )


__all__ = ["MONEY_DECIMALS", "money_str", "ErrorResponse", "OkMeta", "CursorPage"]
