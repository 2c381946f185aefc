"""Модерация: approve/reject, депозиты при одобрении, журнал аудита."""

import pytest

from raffle_backend.app.core.errors_core import (
    InvalidStateTransitionError,
    MissingRejectReasonError,
    NotFoundError,
    UnauthorizedError,
)
from raffle_backend.app.models import RaffleStatus
from raffle_backend.app.services import deposits_service, raffles_service
from raffle_backend.app.services.admin.admin_logging import AuditAction, AuditLogger
from raffle_backend.app.services.admin.admin_raffles_service import ApprovalWorkflow

from .conftest import user


async def test_approve_activates_pending_raffle(make_pending_raffle, admin_actor, load_raffle):
    """PENDING_APPROVAL → ACTIVE, фиксируется activated_at."""
    raffle_id = await make_pending_raffle()

    result = await ApprovalWorkflow.approve(admin_actor, raffle_id)

    assert result["status"] == RaffleStatus.ACTIVE.value
    raffle = await load_raffle(raffle_id)
    assert raffle.status == RaffleStatus.ACTIVE.value
    assert raffle.activated_at is not None


async def test_approve_twice_is_invalid(make_active_raffle, admin_actor, load_raffle, count_audit):
    """Повторное одобрение активного розыгрыша - ошибка, состояние не меняется."""
    raffle_id = await make_active_raffle(value="10.00")

    with pytest.raises(InvalidStateTransitionError):
        await ApprovalWorkflow.approve(admin_actor, raffle_id)

    assert (await load_raffle(raffle_id)).status == RaffleStatus.ACTIVE.value
    assert await count_audit("raffle", raffle_id, AuditAction.RAFFLE_APPROVE.value) == 1


async def test_approve_paused_raffle_is_invalid(
    make_active_raffle, shop_actor, admin_actor, load_raffle, count_audit
):
    """Одобрение работает только из PENDING_APPROVAL: PAUSED не возобновляется через модерацию."""
    raffle_id = await make_active_raffle(value="10.00")
    await raffles_service.svc_pause_raffle(shop_actor, raffle_id)

    with pytest.raises(InvalidStateTransitionError) as info:
        await ApprovalWorkflow.approve(admin_actor, raffle_id)

    assert info.value.details["from"] == RaffleStatus.PAUSED.value
    assert info.value.details["expected"] == RaffleStatus.PENDING_APPROVAL.value
    assert (await load_raffle(raffle_id)).status == RaffleStatus.PAUSED.value
    assert await count_audit("raffle", raffle_id, AuditAction.RAFFLE_RESUME.value) == 0
    assert await count_audit("raffle", raffle_id, AuditAction.RAFFLE_APPROVE.value) == 1


async def test_reject_active_raffle_is_invalid(make_active_raffle, admin_actor, load_raffle):
    """Отклонить можно только розыгрыш на модерации."""
    raffle_id = await make_active_raffle(value="10.00")

    with pytest.raises(InvalidStateTransitionError):
        await ApprovalWorkflow.reject(admin_actor, raffle_id, "too late")

    assert (await load_raffle(raffle_id)).status == RaffleStatus.ACTIVE.value


async def test_reject_requires_reason(make_pending_raffle, admin_actor, load_raffle):
    """Отклонение без причины - MissingRejectReasonError, розыгрыш остаётся на модерации."""
    raffle_id = await make_pending_raffle()

    for reason in (None, "", "  \n "):
        with pytest.raises(MissingRejectReasonError) as info:
            await ApprovalWorkflow.reject(admin_actor, raffle_id, reason)
        assert info.value.code == "missing_reject_reason"

    assert (await load_raffle(raffle_id)).status == RaffleStatus.PENDING_APPROVAL.value


async def test_reject_stores_reason_in_audit(make_pending_raffle, admin_actor, db):
    """Причина отклонения попадает в журнал вместе с переходом."""
    raffle_id = await make_pending_raffle()

    result = await ApprovalWorkflow.reject(admin_actor, raffle_id, "  blurry photos ")

    assert result["status"] == RaffleStatus.REJECTED.value
    logs = await AuditLogger.list_logs(
        db, entity_type="raffle", entity_id=raffle_id, action=AuditAction.RAFFLE_REJECT.value
    )
    assert len(logs) == 1
    assert logs[0].reason == "blurry photos"
    assert logs[0].previous_status == RaffleStatus.PENDING_APPROVAL.value
    assert logs[0].new_status == RaffleStatus.REJECTED.value
    assert logs[0].actor_id == admin_actor.id
    assert logs[0].actor_role == "admin"


async def test_only_admin_moderates(make_pending_raffle, shop_actor, load_raffle):
    """Магазин и пользователь не могут одобрять или отклонять."""
    raffle_id = await make_pending_raffle()

    with pytest.raises(UnauthorizedError):
        await ApprovalWorkflow.approve(shop_actor, raffle_id)
    with pytest.raises(UnauthorizedError):
        await ApprovalWorkflow.reject(user(501), raffle_id, "nope")
    assert (await load_raffle(raffle_id)).status == RaffleStatus.PENDING_APPROVAL.value


async def test_approval_opens_deposit_for_oversized_product(make_pending_raffle, admin_actor, db):
    """Крупный товар: при одобрении создаётся депозит в статусе pending."""
    raffle_id = await make_pending_raffle(value="30.00", dims=(16, 10, 10))

    result = await ApprovalWorkflow.approve(admin_actor, raffle_id)

    assert result["requires_deposit"] is True
    deposit = await deposits_service.svc_get_deposit(db, raffle_id)
    assert deposit["status"] == "pending"
    assert deposit["amount"] == "30.00"


async def test_small_product_gets_no_deposit(make_pending_raffle, admin_actor, db):
    """Товар в пределах 15 см депозита не требует."""
    raffle_id = await make_pending_raffle(value="30.00", dims=(15, 15, 15))
    await ApprovalWorkflow.approve(admin_actor, raffle_id)

    with pytest.raises(NotFoundError):
        await deposits_service.svc_get_deposit(db, raffle_id)


async def test_cancel_releases_deposit(make_active_raffle, admin_actor, db):
    """Отмена розыгрыша освобождает открытый депозит."""
    raffle_id = await make_active_raffle(value="30.00", dims=(40, 10, 10))

    await ApprovalWorkflow.cancel(admin_actor, raffle_id, "policy violation")

    deposit = await deposits_service.svc_get_deposit(db, raffle_id)
    assert deposit["status"] == "released"


async def test_deposit_hold_then_execute(make_active_raffle, admin_actor, db):
    """Админ удерживает депозит и исполняет его; повтор - недопустимый переход."""
    raffle_id = await make_active_raffle(value="30.00", dims=(40, 10, 10))

    held = await deposits_service.svc_hold_deposit(raffle_id, admin_actor)
    assert held["status"] == "held"
    executed = await deposits_service.svc_execute_deposit(
        raffle_id, admin_actor, reason="prize not shipped"
    )
    assert executed["status"] == "executed"

    with pytest.raises(InvalidStateTransitionError):
        await deposits_service.svc_release_deposit(raffle_id, admin_actor)


async def test_list_pending(make_pending_raffle, make_active_raffle, admin_actor, db):
    """Очередь модерации содержит только PENDING_APPROVAL."""
    pending_id = await make_pending_raffle()
    active_id = await make_active_raffle(value="10.00")

    page = await ApprovalWorkflow.list_pending(db, admin_actor)

    ids = [item["id"] for item in page["items"]]
    assert pending_id in ids
    assert active_id not in ids
