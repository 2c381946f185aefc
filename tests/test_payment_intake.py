"""Приём подтверждённых платежей."""

from decimal import Decimal

import pytest
from pydantic import ValidationError as SchemaValidationError

from raffle_backend.app.core.security_core import Actor
from raffle_backend.app.services.payments_service import ConfirmedPayment, svc_confirm_payment


async def test_confirmed_payment_allocates_tickets(make_active_raffle, load_tickets):
    raffle_id = await make_active_raffle(value="10.00")
    payment = ConfirmedPayment(
        raffle_id=raffle_id, user_id=501, quantity=3, amount=Decimal("1.50"), payment_ref="gw-77"
    )

    result = await svc_confirm_payment(payment)

    assert result["ticket_numbers"] == [1, 2, 3]
    assert {t.owner_id for t in await load_tickets(raffle_id)} == {501}


async def test_retried_confirmation_never_allocates_twice(make_active_raffle, load_raffle):
    """Повторное подтверждение того же платежа возвращает исходные номера."""
    raffle_id = await make_active_raffle(value="10.00")
    payment = ConfirmedPayment(
        raffle_id=raffle_id, user_id=501, quantity=2, amount=Decimal("1.00"), payment_ref="gw-78"
    )

    first = await svc_confirm_payment(payment)
    second = await svc_confirm_payment(payment, actor=Actor.system())

    assert second["replayed"] is True
    assert second["ticket_numbers"] == first["ticket_numbers"]
    assert (await load_raffle(raffle_id)).sold_tickets == 2


def test_payment_contract_is_validated():
    with pytest.raises(SchemaValidationError):
        ConfirmedPayment(raffle_id=1, user_id=1, quantity=0, amount=Decimal("1"), payment_ref="x")
    with pytest.raises(SchemaValidationError):
        ConfirmedPayment(raffle_id=1, user_id=1, quantity=1, amount=Decimal("0"), payment_ref="x")
