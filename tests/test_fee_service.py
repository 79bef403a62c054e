"""Tests for gateway fee and platform net computation."""

from decimal import Decimal

import pytest

from stayledger.domain.payment_state import PaymentStatus
from stayledger.gateways.stripe_gateway import StripeGateway
from stayledger.services.fee_service import (
    FeeService,
    compute_platform_net,
    major_to_minor,
    minor_to_major,
)

from tests.conftest import payment_for


@pytest.mark.parametrize(
    "minor,divisor,expected",
    [
        (150, 100, Decimal("1.50")),
        (1, 100, Decimal("0.01")),
        (0, 100, Decimal("0.00")),
        (150, 1, Decimal("150.00")),
    ],
)
def test_minor_to_major(minor, divisor, expected):
    assert minor_to_major(minor, divisor) == expected


def test_major_to_minor_rounds_half_up():
    assert major_to_minor(Decimal("170.00")) == 17000
    assert major_to_minor(Decimal("0.005")) == 1
    assert major_to_minor(Decimal("5000"), 1) == 5000


def test_platform_net_is_quantized():
    assert compute_platform_net(Decimal("20.00"), Decimal("10.00"), Decimal("1.50")) == Decimal(
        "28.50"
    )
    assert compute_platform_net(Decimal("0.005"), Decimal("0"), Decimal("0")) == Decimal("0.01")
    assert compute_platform_net(None, None, Decimal("1.50")) == Decimal("-1.50")


def test_stripe_zero_decimal_currencies():
    gateway = StripeGateway(secret_key=None, webhook_secret=None)
    assert gateway.divisor_for("JPY") == 1
    assert gateway.divisor_for("usd") == 100


async def test_fee_of_150_minor_units_is_1_50(db, session_factory, make_booking, stripe_gateway):
    booking, payment = await make_booking(payment_status=PaymentStatus.COMPLETED)

    updated = await FeeService().compute_gateway_fee(
        db, booking.id, payment.stripe_payment_intent_id, stripe_gateway
    )
    await db.commit()

    assert updated is not None
    stored = await payment_for(session_factory, booking.id)
    assert stored.gateway_fee == Decimal("1.50")
    # 20.00 service fee + 10.00 commission - 1.50
    assert stored.platform_net == Decimal("28.50")
    assert stripe_gateway.fee_calls == [payment.stripe_payment_intent_id]


async def test_fee_not_computed_before_settlement(db, session_factory, make_booking, stripe_gateway):
    booking, payment = await make_booking(payment_status=PaymentStatus.PENDING)

    result = await FeeService().compute_gateway_fee(
        db, booking.id, payment.stripe_payment_intent_id, stripe_gateway
    )
    await db.commit()

    assert result is None
    assert stripe_gateway.fee_calls == []
    stored = await payment_for(session_factory, booking.id)
    assert stored.gateway_fee is None
    assert stored.platform_net is None
