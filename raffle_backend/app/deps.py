# -*- coding: utf-8 -*-
# raffle_backend/app/deps.py
# =============================================================================
# Raffles - общие зависимости FastAPI: БД-сессия, контекст актёра,
#           keyset-пагинация и ETag.
# -----------------------------------------------------------------------------
# Канон/требования:
#   • Покупка билетов - строго с Idempotency-Key (он же payment_ref).
#   • Списки - только cursor-based (keyset) пагинация.
#   • Актёр приходит от коллаборатора идентичности заголовками
#     X-Actor-Id / X-Actor-Role / X-Shop-Id; роль SYSTEM по HTTP недоступна.
#
# Этот модуль НЕ делает бизнес-логику, только инфраструктуру/валидацию.
# =============================================================================
from __future__ import annotations

import base64
import hashlib
import json
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from raffle_backend.app.core.database_core import lifespan_session
from raffle_backend.app.core.errors_core import ValidationError
from raffle_backend.app.core.logging_core import get_logger, set_request_context
from raffle_backend.app.core.security_core import HTTP_ROLES, Actor, ActorRole, require_role
from raffle_backend.app.core.utils_core import as_utc

logger = get_logger(__name__)


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Выдаёт AsyncSession для чтений в роутах.
    Записи идут через with_raffle_transaction со своей сессией.
    """
    async with lifespan_session() as session:
        yield session


def make_etag(payload: Dict[str, Any]) -> str:
    """Детерминированный ETag из JSON-представления payload."""
    raw = json.dumps(
        payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str
    ).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


# -----------------------------------------------------------------------------
# Keyset-курсоры
# -----------------------------------------------------------------------------
def encode_cursor(ts: datetime, row_id: int) -> str:
    """Keyset-cursor b64(iso_ts|id); ts хранится с микросекундами в UTC."""
    ts_utc = as_utc(ts)
    assert ts_utc is not None
    blob = f"{ts_utc.isoformat()}|{int(row_id)}".encode("utf-8")
    return base64.urlsafe_b64encode(blob).decode("ascii")


def decode_cursor(cursor: str) -> Tuple[datetime, int]:
    """Инверсия encode_cursor. Некорректная строка → ValidationError (422)."""
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        ts_str, id_str = raw.split("|", 1)
        return datetime.fromisoformat(ts_str), int(id_str)
    except (ValueError, UnicodeError) as exc:
        raise ValidationError("Malformed cursor.", details={"cursor": cursor}) from exc


async def pagination_params(
    cursor: Optional[str] = Query(None, description="Keyset cursor b64(ts|id)"),
    limit: int = Query(50, ge=1, le=500, description="Page size (1..500)"),
) -> Dict[str, Any]:
    """{"cursor": raw, "limit": limit, "position": (ts, id) | None}."""
    position = decode_cursor(cursor) if cursor else None
    return {"cursor": cursor, "limit": limit, "position": position}


# -----------------------------------------------------------------------------
# Контекст актёра
# -----------------------------------------------------------------------------
async def get_actor(
    x_actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    x_actor_role: Optional[str] = Header(default=None, alias="X-Actor-Role"),
    x_shop_id: Optional[str] = Header(default=None, alias="X-Shop-Id"),
) -> Actor:
    """Собирает Actor из заголовков идентичности; без них - 401."""
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id and X-Actor-Role headers are required.",
        )
    try:
        actor_id = int(x_actor_id)
        role = ActorRole(x_actor_role.strip().lower())
        shop_id = int(x_shop_id) if x_shop_id else None
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed actor headers.",
        ) from None
    if role not in HTTP_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role '{role.value}' is not available over HTTP.",
        )
    set_request_context(user_id=actor_id)
    return Actor(id=actor_id, role=role, shop_id=shop_id)


async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    require_role(actor, (ActorRole.ADMIN,), action="admin_api")
    return actor


__all__ = [
    "get_db",
    "make_etag",
    "encode_cursor",
    "decode_cursor",
    "pagination_params",
    "get_actor",
    "require_admin",
]
