"""Планировщик финализации распроданных розыгрышей."""

import pytest

from raffle_backend.app.models import RaffleStatus
from raffle_backend.app.scheduler import raffles_finalizer
from raffle_backend.app.services import tickets_service


@pytest.fixture
def deferred(monkeypatch, settings):
    monkeypatch.setattr(settings, "RAFFLE_DRAW_MODE", "deferred")
    return settings


async def test_tick_finalizes_sold_out_raffles(deferred, make_active_raffle, load_raffle):
    """Тик добирает все SOLD_OUT без победителя и переводит их в FINISHED."""
    first = await make_active_raffle(value="1.00")
    second = await make_active_raffle(value="1.50")
    untouched = await make_active_raffle(value="10.00")
    await tickets_service.reserve(first, 2, 501, payment_ref="f-1")
    await tickets_service.reserve(second, 3, 502, payment_ref="f-2")
    await tickets_service.reserve(untouched, 1, 503, payment_ref="f-3")

    assert (await load_raffle(first)).status == RaffleStatus.SOLD_OUT.value

    stats = await raffles_finalizer.run_once(rng=lambda n: 0)

    assert stats == {"found": 2, "finalized": 2, "failed": 0}
    for raffle_id in (first, second):
        raffle = await load_raffle(raffle_id)
        assert raffle.status == RaffleStatus.FINISHED.value
        assert raffle.winner_ticket_id is not None
    assert (await load_raffle(untouched)).status == RaffleStatus.ACTIVE.value


async def test_tick_is_idempotent(deferred, make_active_raffle):
    """Повторный тик ничего не находит."""
    raffle_id = await make_active_raffle(value="1.00")
    await tickets_service.reserve(raffle_id, 2, 501, payment_ref="f-4")

    assert (await raffles_finalizer.run_once())["finalized"] == 1
    assert await raffles_finalizer.run_once() == {"found": 0, "finalized": 0, "failed": 0}


async def test_tick_with_nothing_to_do(engine):
    assert await raffles_finalizer.run_once() == {"found": 0, "finalized": 0, "failed": 0}


async def test_run_forever_survives_failed_tick(monkeypatch, engine):
    """Упавший тик логируется, цикл продолжает работать."""
    calls = {"ticks": 0, "sleeps": 0}

    async def boom(rng=None):
        calls["ticks"] += 1
        raise RuntimeError("db down")

    class _Stop(Exception):
        pass

    async def sleeper(seconds):
        calls["sleeps"] += 1
        assert seconds >= 1
        if calls["sleeps"] >= 2:
            raise _Stop()

    monkeypatch.setattr(raffles_finalizer, "run_once", boom)

    with pytest.raises(_Stop):
        await raffles_finalizer._run_forever(sleeper=sleeper)
    assert calls["ticks"] == 2
