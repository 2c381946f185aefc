"""Машина состояний розыгрыша: граф переходов, роли, побочные эффекты, аудит."""

import pytest

from raffle_backend.app.core.errors_core import (
    InvalidStateTransitionError,
    MissingReasonError,
    NotFoundError,
    ShopBlockedError,
    UnauthorizedError,
)
from raffle_backend.app.core.security_core import Actor, ActorRole
from raffle_backend.app.models import RaffleStatus, TicketStatus
from raffle_backend.app.services import (
    deposits_service,
    products_service,
    raffles_service,
    tickets_service,
)
from raffle_backend.app.services.admin.admin_logging import AuditAction
from raffle_backend.app.services.raffle_state_service import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    can_transition,
)

from .conftest import user


def test_terminal_statuses_have_no_outgoing_edges():
    """Из FINISHED/CANCELLED/REJECTED переходов нет."""
    for source, _target in ALLOWED_TRANSITIONS:
        assert source not in TERMINAL_STATUSES


def test_graph_edges():
    """Ключевые разрешённые и запрещённые рёбра графа."""
    assert can_transition(RaffleStatus.DRAFT, RaffleStatus.PENDING_APPROVAL)
    assert can_transition(RaffleStatus.PENDING_APPROVAL, RaffleStatus.ACTIVE)
    assert can_transition(RaffleStatus.ACTIVE, RaffleStatus.SOLD_OUT)
    assert can_transition(RaffleStatus.SOLD_OUT, RaffleStatus.FINISHED)
    assert can_transition(RaffleStatus.PAUSED, RaffleStatus.CANCELLED)
    assert not can_transition(RaffleStatus.DRAFT, RaffleStatus.ACTIVE)
    assert not can_transition(RaffleStatus.SOLD_OUT, RaffleStatus.CANCELLED)
    assert not can_transition(RaffleStatus.PAUSED, RaffleStatus.SOLD_OUT)
    assert not can_transition(RaffleStatus.REJECTED, RaffleStatus.PENDING_APPROVAL)


async def test_edge_outside_graph_is_rejected(make_draft_raffle, admin_actor, load_raffle):
    """DRAFT → ACTIVE в обход модерации запрещён, статус не меняется."""
    raffle_id = await make_draft_raffle()
    with pytest.raises(InvalidStateTransitionError) as info:
        await raffles_service.svc_transition(raffle_id, RaffleStatus.ACTIVE, admin_actor)
    assert info.value.details["from"] == "draft"
    assert info.value.details["to"] == "active"
    assert (await load_raffle(raffle_id)).status == RaffleStatus.DRAFT.value


async def test_wrong_role_is_unauthorized(make_draft_raffle, load_raffle):
    """Пользователь не может отправить розыгрыш на модерацию."""
    raffle_id = await make_draft_raffle()
    with pytest.raises(UnauthorizedError):
        await raffles_service.svc_submit_raffle(user(501), raffle_id)
    assert (await load_raffle(raffle_id)).status == RaffleStatus.DRAFT.value


async def test_foreign_shop_is_unauthorized(make_draft_raffle, add_shop, load_raffle):
    """Магазин управляет только своими розыгрышами."""
    raffle_id = await make_draft_raffle()
    other_shop_id = await add_shop(owner_user_id=200)
    stranger = Actor(id=200, role=ActorRole.SHOP, shop_id=other_shop_id)

    with pytest.raises(UnauthorizedError):
        await raffles_service.svc_submit_raffle(stranger, raffle_id)
    assert (await load_raffle(raffle_id)).status == RaffleStatus.DRAFT.value


async def test_blocked_shop_cannot_submit(add_shop, load_raffle):
    """Заблокированный магазин не отправляет розыгрыши на модерацию."""
    shop_id = await add_shop(status="blocked", owner_user_id=300)
    actor = Actor(id=300, role=ActorRole.SHOP, shop_id=shop_id)
    product = await products_service.svc_create_product(
        actor,
        shop_id=shop_id,
        name="Lamp",
        value="20.00",
        height_cm=10,
        width_cm=10,
        depth_cm=10,
    )
    raffle = await raffles_service.svc_create_raffle(actor, product_id=product["id"])

    with pytest.raises(ShopBlockedError) as info:
        await raffles_service.svc_submit_raffle(actor, raffle["id"])
    assert info.value.code == "shop_blocked"
    assert (await load_raffle(raffle["id"])).status == RaffleStatus.DRAFT.value


async def test_pause_and_resume(make_active_raffle, shop_actor, load_raffle):
    """ACTIVE ⇄ PAUSED для владельца магазина."""
    raffle_id = await make_active_raffle(value="10.00")

    paused = await raffles_service.svc_pause_raffle(shop_actor, raffle_id)
    assert paused["status"] == RaffleStatus.PAUSED.value
    resumed = await raffles_service.svc_resume_raffle(shop_actor, raffle_id)
    assert resumed["status"] == RaffleStatus.ACTIVE.value
    assert (await load_raffle(raffle_id)).status == RaffleStatus.ACTIVE.value


async def test_resume_only_from_paused(
    make_pending_raffle, admin_actor, db, load_raffle, count_audit
):
    """Админский resume не активирует розыгрыш на модерации в обход approve."""
    raffle_id = await make_pending_raffle(value="40.00", dims=(30, 10, 10))

    with pytest.raises(InvalidStateTransitionError) as info:
        await raffles_service.svc_resume_raffle(admin_actor, raffle_id)

    assert info.value.details["expected"] == RaffleStatus.PAUSED.value
    raffle = await load_raffle(raffle_id)
    assert raffle.status == RaffleStatus.PENDING_APPROVAL.value
    assert raffle.activated_at is None
    with pytest.raises(NotFoundError):
        await deposits_service.svc_get_deposit(db, raffle_id)
    assert await count_audit("raffle", raffle_id, AuditAction.RAFFLE_APPROVE.value) == 0


async def test_pause_only_from_active(make_draft_raffle, shop_actor, load_raffle):
    """Пауза возможна только для активного розыгрыша."""
    raffle_id = await make_draft_raffle()
    with pytest.raises(InvalidStateTransitionError):
        await raffles_service.svc_pause_raffle(shop_actor, raffle_id)
    assert (await load_raffle(raffle_id)).status == RaffleStatus.DRAFT.value


async def test_cancel_requires_reason(make_active_raffle, shop_actor, load_raffle):
    """Отмена без причины - MissingReasonError, статус не меняется."""
    raffle_id = await make_active_raffle(value="10.00")
    for reason in (None, "", "   "):
        with pytest.raises(MissingReasonError):
            await raffles_service.svc_cancel_raffle(shop_actor, raffle_id, reason)
    assert (await load_raffle(raffle_id)).status == RaffleStatus.ACTIVE.value


async def test_cancel_refunds_sold_tickets(make_active_raffle, shop_actor, load_raffle, load_tickets):
    """Отмена активного розыгрыша переводит проданные билеты в refunded."""
    raffle_id = await make_active_raffle(value="10.00")
    await tickets_service.reserve(raffle_id, 3, 501, payment_ref="c-1")

    result = await raffles_service.svc_cancel_raffle(shop_actor, raffle_id, "supplier failed")

    assert result["status"] == RaffleStatus.CANCELLED.value
    tickets = await load_tickets(raffle_id)
    assert [t.status for t in tickets] == [TicketStatus.REFUNDED.value] * 3
    raffle = await load_raffle(raffle_id)
    assert raffle.sold_tickets == 3
    assert raffle.winner_ticket_id is None


async def test_cancelled_is_terminal(make_draft_raffle, shop_actor):
    """После отмены розыгрыш нельзя вернуть в работу."""
    raffle_id = await make_draft_raffle()
    await raffles_service.svc_cancel_raffle(shop_actor, raffle_id, "changed my mind")
    with pytest.raises(InvalidStateTransitionError):
        await raffles_service.svc_submit_raffle(shop_actor, raffle_id)


async def test_sold_out_guard(make_active_raffle, load_raffle):
    """ACTIVE → SOLD_OUT только при sold == total."""
    raffle_id = await make_active_raffle(value="10.00")
    with pytest.raises(InvalidStateTransitionError):
        await raffles_service.svc_transition(raffle_id, RaffleStatus.SOLD_OUT, Actor.system())
    assert (await load_raffle(raffle_id)).status == RaffleStatus.ACTIVE.value


async def test_each_transition_writes_one_audit_entry(make_active_raffle, shop_actor, count_audit):
    """Каждый успешный переход пишет ровно одну запись аудита."""
    raffle_id = await make_active_raffle(value="10.00")
    await raffles_service.svc_pause_raffle(shop_actor, raffle_id)

    assert await count_audit("raffle", raffle_id, AuditAction.RAFFLE_CREATE.value) == 1
    assert await count_audit("raffle", raffle_id, AuditAction.RAFFLE_SUBMIT.value) == 1
    assert await count_audit("raffle", raffle_id, AuditAction.RAFFLE_APPROVE.value) == 1
    assert await count_audit("raffle", raffle_id, AuditAction.RAFFLE_PAUSE.value) == 1
    assert await count_audit("raffle", raffle_id) == 4


async def test_failed_transition_writes_no_audit(make_draft_raffle, count_audit):
    """Отклонённый переход не оставляет следов в журнале."""
    raffle_id = await make_draft_raffle()
    with pytest.raises(UnauthorizedError):
        await raffles_service.svc_submit_raffle(user(501), raffle_id)
    assert await count_audit("raffle", raffle_id) == 1
