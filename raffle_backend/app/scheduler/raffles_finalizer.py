# ============================================================================
# Raffles - scheduler.raffles_finalizer
# -----------------------------------------------------------------------------
# Назначение: тик финализации. Находит распроданные розыгрыши (SOLD_OUT) без
#             победителя и запускает для каждого выбор победителя.
#             Это штатный путь в режиме RAFFLE_DRAW_MODE=deferred и догон
#             после рестарта в режиме inline.
#
# Канон/инварианты:
#   • Каждый розыгрыш финализируется ровно один раз: повтор защищён статусом
#     FINISHED и уникальностью RaffleDrawResult.raffle_id.
#   • Тик каждые SCHEDULER_TICK_SECONDS с джиттером, пачка SCHEDULER_BATCH_SIZE.
#
# ИИ-защита/самовосстановление:
#   • Ошибка одного розыгрыша не валит тик: логируем и идём дальше.
#   • Ошибка всего тика не валит цикл - только логируется.
#   • Нарушение инварианта хранения логируется как critical.
# ============================================================================
from __future__ import annotations

import asyncio
from random import randint
from typing import Any, Awaitable, Callable, Dict, Optional

from ..core.config_core import get_settings
from ..core.database_core import lifespan_session
from ..core.errors_core import RaffleError
from ..core.logging_core import get_logger
from ..core.security_core import Actor
from ..core.system_locks import InvariantViolation
from ..core.utils_core import utcnow
from ..crud.raffles_crud import RafflesCRUD
from ..services import winner_service

logger = get_logger(__name__)
settings = get_settings()


async def _finalize_batch(rng: Optional[Callable[[int], int]] = None) -> Dict[str, Any]:
    async with lifespan_session() as db:
        raffle_ids = await RafflesCRUD(db).list_sold_out_without_winner(
            limit=settings.SCHEDULER_BATCH_SIZE
        )

    stats: Dict[str, Any] = {"found": len(raffle_ids), "finalized": 0, "failed": 0}
    system = Actor.system()
    for raffle_id in raffle_ids:
        try:
            result = await winner_service.svc_select_winner(raffle_id, system, rng=rng)
        except InvariantViolation as exc:
            stats["failed"] += 1
            logger.critical(
                "Raffle finalization hit an invariant violation",
                extra={"raffle_id": raffle_id, "error": str(exc)},
            )
        except RaffleError as exc:
            stats["failed"] += 1
            logger.warning(
                "Raffle finalization skipped",
                extra={"raffle_id": raffle_id, "error": exc.code},
            )
        else:
            if not result["already_finished"]:
                stats["finalized"] += 1
    return stats


async def run_once(rng: Optional[Callable[[int], int]] = None) -> Dict[str, Any]:
    """Публичная точка для CLI/тестов: один проход без перехвата ошибок тика."""

    stats = await _finalize_batch(rng)
    if stats["found"]:
        logger.info("raffles finalizer tick", extra={**stats, "at": utcnow().isoformat()})
    return stats


async def _run_once_guarded() -> None:
    try:
        await run_once()
    except Exception as exc:  # noqa: BLE001 - фиксируем и продолжаем
        logger.exception(
            "raffles finalizer tick failed",
            extra={"error": str(exc), "at": utcnow().isoformat()},
        )


async def _run_forever(sleeper: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
    """Бесконечный цикл с джиттером ±10% от SCHEDULER_TICK_SECONDS."""

    base_sleep = int(settings.SCHEDULER_TICK_SECONDS)
    spread = max(1, base_sleep // 10)
    while True:
        await _run_once_guarded()
        await sleeper(max(1, base_sleep + randint(-spread, spread)))


def run_forever() -> None:
    """Запустить вечный цикл (CLI/entrypoint)."""

    asyncio.run(_run_forever())


if __name__ == "__main__":
    run_forever()

# ============================================================================
# Пояснения «для чайника»:
#   • В режиме inline победитель выбирается сразу при продаже последнего билета,
#     и тик обычно ничего не находит. Он нужен, если процесс упал между
#     SOLD_OUT и FINISHED.
#   • В режиме deferred покупка только фиксирует SOLD_OUT, а победителя
#     выбирает этот тик.
# ============================================================================
