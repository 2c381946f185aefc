# -*- coding: utf-8 -*-
# raffle_backend/app/services/raffle_tx_service.py
# =============================================================================
# Назначение кода:
#   Транзакция «один писатель на розыгрыш»: with_raffle_transaction(raffle_id, fn)
#   выполняет fn(session) атомарно относительно всех остальных писателей того же
#   розыгрыша. Через неё идут покупка билетов, переходы статусов и финализация.
#
# Канон/инварианты:
#   • Внутри процесса - asyncio.Lock на id розыгрыша, ожидание ограничено
#     RAFFLE_LOCK_TIMEOUT_SEC; не дождались → BusyError (503, можно повторить).
#   • Между процессами - SELECT ... FOR UPDATE (PostgreSQL, с SET LOCAL
#     lock_timeout) плюс оптимистичный CAS по Raffle.version.
#   • Конфликт (StaleDataError, 40001/40P01/55P03, «database is locked»)
#     откатывает попытку целиком; повтор - с ограниченным экспоненциальным
#     откатом и джиттером. Попытки кончились → BusyError.
#   • Разные розыгрыши не блокируют друг друга.
#
# ИИ-защита/самовосстановление:
#   • Записи реестра блокировок удаляются, когда розыгрыш никто не ждёт -
#     реестр не растёт бесконечно.
#   • Доменные ошибки (RaffleError) и нарушения канона не повторяются:
#     они пробрасываются сразу после отката.
#
# Запреты:
#   • Никакой бизнес-логики здесь: только границы транзакции и повторы.
# =============================================================================

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from raffle_backend.app.core.config_core import get_settings
from raffle_backend.app.core.database_core import get_session_factory
from raffle_backend.app.core.errors_core import BusyError
from raffle_backend.app.core.logging_core import get_logger

logger = get_logger(__name__)
settings = get_settings()

T = TypeVar("T")

_CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


# -----------------------------------------------------------------------------
# Реестр внутрипроцессных блокировок по id розыгрыша
# -----------------------------------------------------------------------------
@dataclass
class _LockEntry:
    lock: asyncio.Lock
    users: int = 0


_locks: Dict[int, _LockEntry] = {}


class _RaffleLock:
    """async with _RaffleLock(raffle_id, timeout): ... - с подсчётом ожидающих."""

    def __init__(self, raffle_id: int, timeout: float) -> None:
        self.raffle_id = raffle_id
        self.timeout = timeout
        self._entry: Optional[_LockEntry] = None

    async def __aenter__(self) -> "_RaffleLock":
        entry = _locks.get(self.raffle_id)
        if entry is None:
            entry = _LockEntry(lock=asyncio.Lock())
            _locks[self.raffle_id] = entry
        entry.users += 1
        self._entry = entry
        try:
            await asyncio.wait_for(entry.lock.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self._release_entry()
            logger.warning(
                "Raffle lock wait timed out",
                extra={"raffle_id": self.raffle_id, "timeout_sec": self.timeout},
            )
            raise BusyError(self.raffle_id) from None
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        assert self._entry is not None
        self._entry.lock.release()
        self._release_entry()

    def _release_entry(self) -> None:
        entry = self._entry
        if entry is None:
            return
        entry.users -= 1
        if entry.users <= 0 and _locks.get(self.raffle_id) is entry:
            del _locks[self.raffle_id]
        self._entry = None


# -----------------------------------------------------------------------------
# Классификация конфликтов
# -----------------------------------------------------------------------------
def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return None


def _is_conflict(exc: BaseException) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        if _sqlstate(exc) in _CONFLICT_SQLSTATES:
            return True
        return "database is locked" in str(exc.orig or exc).lower()
    return False


def _backoff_seconds(attempt: int) -> float:
    base_ms = settings.RAFFLE_TX_BACKOFF_BASE_MS
    cap_ms = settings.RAFFLE_TX_BACKOFF_MAX_MS
    delay_ms = min(cap_ms, base_ms * (2 ** (attempt - 1)))
    return random.uniform(delay_ms / 2, delay_ms) / 1000.0 if delay_ms > 0 else 0.0


async def _set_local_lock_timeout(session: AsyncSession) -> None:
    if session.bind.dialect.name != "postgresql":
        return
    timeout_ms = int(settings.RAFFLE_LOCK_TIMEOUT_SEC * 1000)
    await session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))


# -----------------------------------------------------------------------------
# Публичный примитив
# -----------------------------------------------------------------------------
async def with_raffle_transaction(
    raffle_id: int,
    fn: Callable[[AsyncSession], Awaitable[T]],
    *,
    max_attempts: Optional[int] = None,
) -> T:
    """
    Выполнить fn(session) в отдельной транзакции под блокировкой розыгрыша.

    fn вызывается заново на каждой попытке с новой сессией, поэтому она
    должна перечитывать всё нужное состояние внутри себя (lock_raffle()).
    Результат fn возвращается после успешного commit.
    """
    attempts = int(max_attempts or settings.RAFFLE_TX_MAX_ATTEMPTS)
    session_factory = get_session_factory()

    async with _RaffleLock(int(raffle_id), settings.RAFFLE_LOCK_TIMEOUT_SEC):
        for attempt in range(1, attempts + 1):
            try:
                async with session_factory() as session:
                    async with session.begin():
                        await _set_local_lock_timeout(session)
                        return await fn(session)
            except (StaleDataError, DBAPIError) as exc:
                if not _is_conflict(exc):
                    raise
                if attempt >= attempts:
                    logger.warning(
                        "Raffle transaction gave up after conflicts",
                        extra={"raffle_id": raffle_id, "attempts": attempt},
                    )
                    raise BusyError(int(raffle_id), attempts=attempt) from exc
                delay = _backoff_seconds(attempt)
                logger.warning(
                    "Raffle transaction conflict, retrying",
                    extra={
                        "raffle_id": raffle_id,
                        "attempt": attempt,
                        "delay_sec": round(delay, 4),
                        "error_type": type(exc).__name__,
                    },
                )
                await asyncio.sleep(delay)

    raise BusyError(int(raffle_id), attempts=attempts)


__all__ = ["with_raffle_transaction"]
