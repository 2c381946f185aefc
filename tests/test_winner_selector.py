"""Выбор победителя: FINISHED ⇔ победитель, диапазон номера, повторные вызовы."""

import pytest

from raffle_backend.app.core import database_core
from raffle_backend.app.core.errors_core import InvalidStateTransitionError, UnauthorizedError
from raffle_backend.app.core.security_core import Actor
from raffle_backend.app.crud.raffles_crud import RafflesCRUD
from raffle_backend.app.models import RaffleStatus, TicketStatus
from raffle_backend.app.services import tickets_service, winner_service
from raffle_backend.app.services.admin.admin_logging import AuditAction
from raffle_backend.app.services.admin.admin_raffles_service import ApprovalWorkflow

from .conftest import user


@pytest.fixture
def deferred(monkeypatch, settings):
    monkeypatch.setattr(settings, "RAFFLE_DRAW_MODE", "deferred")
    return settings


async def _sold_out(make_active_raffle) -> int:
    raffle_id = await make_active_raffle(value="2.50")
    await tickets_service.reserve(raffle_id, 2, 501, payment_ref="w-1")
    await tickets_service.reserve(raffle_id, 3, 502, payment_ref="w-2")
    return raffle_id


async def test_deferred_mode_leaves_raffle_sold_out(deferred, make_active_raffle, load_raffle):
    """В режиме deferred последний билет только переводит в SOLD_OUT."""
    raffle_id = await _sold_out(make_active_raffle)
    raffle = await load_raffle(raffle_id)
    assert raffle.status == RaffleStatus.SOLD_OUT.value
    assert raffle.winner_ticket_id is None


async def test_select_winner_finishes_raffle(deferred, make_active_raffle, load_raffle, load_tickets, count_audit):
    """Победитель выбран: билет winner, FINISHED, результат и аудит в одном commit."""
    raffle_id = await _sold_out(make_active_raffle)

    result = await winner_service.svc_select_winner(raffle_id, Actor.system(), rng=lambda n: 1)

    assert result["winning_number"] == 2
    assert result["winner_user_id"] == 501
    assert result["total_tickets"] == 5
    assert result["entropy_source"] == "secrets"
    assert result["already_finished"] is False

    raffle = await load_raffle(raffle_id)
    assert raffle.status == RaffleStatus.FINISHED.value
    assert raffle.raffle_executed_at is not None
    tickets = await load_tickets(raffle_id)
    winners = [t for t in tickets if t.status == TicketStatus.WINNER.value]
    assert [t.number for t in winners] == [2]
    assert raffle.winner_ticket_id == winners[0].id
    assert await count_audit("raffle", raffle_id, AuditAction.RAFFLE_FINISH.value) == 1


async def test_default_entropy_draws_in_range(deferred, make_active_raffle, load_raffle):
    """Без подмены источника номер лежит в [1..total]."""
    raffle_id = await _sold_out(make_active_raffle)

    result = await winner_service.svc_select_winner(raffle_id, Actor.system())

    assert 1 <= result["winning_number"] <= 5
    assert result["winner_user_id"] in (501, 502)


async def test_second_call_returns_same_winner(deferred, make_active_raffle, count_audit):
    """Повторный вызов на FINISHED - тот же результат без новых записей."""
    raffle_id = await _sold_out(make_active_raffle)

    first = await winner_service.svc_select_winner(raffle_id, Actor.system(), rng=lambda n: 4)
    second = await winner_service.svc_select_winner(raffle_id, Actor.system(), rng=lambda n: 0)

    assert second["already_finished"] is True
    assert second["winning_number"] == first["winning_number"] == 5
    assert second["winning_ticket_id"] == first["winning_ticket_id"]
    assert await count_audit("raffle", raffle_id, AuditAction.RAFFLE_FINISH.value) == 1


async def test_active_raffle_has_no_winner(make_active_raffle, load_raffle):
    """Пока розыгрыш не распродан, победителя выбрать нельзя."""
    raffle_id = await make_active_raffle(value="10.00")
    await tickets_service.reserve(raffle_id, 1, 501, payment_ref="w-a")

    with pytest.raises(InvalidStateTransitionError):
        await winner_service.svc_select_winner(raffle_id, Actor.system())
    raffle = await load_raffle(raffle_id)
    assert raffle.status == RaffleStatus.ACTIVE.value
    assert raffle.winner_ticket_id is None


async def test_users_cannot_draw(deferred, make_active_raffle):
    """Победителя выбирают только система и админ."""
    raffle_id = await _sold_out(make_active_raffle)
    with pytest.raises(UnauthorizedError):
        await winner_service.svc_select_winner(raffle_id, user(501))


async def test_admin_execute(deferred, make_active_raffle, admin_actor, engine):
    """Ручной запуск админом пишет результат розыгрыша."""
    raffle_id = await _sold_out(make_active_raffle)

    result = await ApprovalWorkflow.execute(admin_actor, raffle_id, rng=lambda n: 0)

    assert result["winning_number"] == 1
    async with database_core.lifespan_session() as session:
        draw = await RafflesCRUD(session).get_draw_result(raffle_id)
    assert draw is not None
    assert draw.winning_number == 1
    assert draw.winner_user_id == 501
