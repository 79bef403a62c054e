"""Tests for the refund request workflow."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from stayledger.core.exceptions import (
    AuthorizationError,
    ExternalServiceError,
    InvalidStatusTransition,
    NotFoundError,
    RefundAmountExceeded,
    RefundRequestConflict,
    ValidationError,
)
from stayledger.domain.payment_state import PaymentStatus
from stayledger.domain.refund_state import RefundRequestStatus
from stayledger.models.refund import RefundRequest
from stayledger.models.user import Realtor, User
from stayledger.services.refund_service import RefundService, refunds_for_payment

from tests.conftest import payment_for, reload


@pytest.fixture
def refunds(gateways, notifier, session_factory) -> RefundService:
    return RefundService(gateways, notifier=notifier, session_factory=session_factory)


@pytest.fixture
async def paid_booking(make_booking):
    return await make_booking(payment_status=PaymentStatus.COMPLETED)


async def approved_request(db, refunds, guest, realtor_user, booking, amount):
    request = await refunds.request_refund(db, guest, booking.id, Decimal(amount), "cancellation")
    await refunds.realtor_decision(db, realtor_user, request.id, approved=True)
    await db.commit()
    return request


async def count_requests(db) -> int:
    return await db.scalar(select(func.count()).select_from(RefundRequest))


# === Guest request ===


async def test_request_opens_pending_realtor_approval(db, refunds, guest, realtor, paid_booking):
    booking, payment = paid_booking

    request = await refunds.request_refund(
        db, guest, booking.id, Decimal("50"), "early_checkout", notes="Left a day early"
    )

    assert request.status == RefundRequestStatus.PENDING_REALTOR_APPROVAL.value
    assert request.requested_amount == Decimal("50.00")
    assert request.payment_id == payment.id
    assert request.realtor_id == realtor.id
    assert request.currency == "USD"


async def test_request_above_ceiling_is_rejected_without_mutation(
    db, refunds, guest, paid_booking
):
    booking, _ = paid_booking

    with pytest.raises(RefundAmountExceeded) as exc_info:
        await refunds.request_refund(db, guest, booking.id, Decimal("200.01"), "cancellation")

    assert "USD 200.00" in exc_info.value.detail
    assert await count_requests(db) == 0


async def test_ceiling_accounts_for_previous_refunds(db, refunds, guest, paid_booking):
    booking, payment = paid_booking
    payment.refund_amount = Decimal("150.00")
    await db.commit()

    with pytest.raises(RefundAmountExceeded):
        await refunds.request_refund(db, guest, booking.id, Decimal("60"), "cancellation")

    request = await refunds.request_refund(db, guest, booking.id, Decimal("50"), "cancellation")
    assert request.requested_amount == Decimal("50.00")


async def test_second_open_request_conflicts(db, refunds, guest, paid_booking):
    booking, _ = paid_booking
    await refunds.request_refund(db, guest, booking.id, Decimal("20"), "cancellation")

    with pytest.raises(RefundRequestConflict):
        await refunds.request_refund(db, guest, booking.id, Decimal("20"), "cancellation")


async def test_racing_request_is_rejected_by_unique_index(
    db, refunds, guest, paid_booking, monkeypatch
):
    booking, _ = paid_booking
    await refunds.request_refund(db, guest, booking.id, Decimal("20"), "cancellation")

    # Both requests read "nothing open" before either inserted
    async def nothing_open(db, booking_id):
        return None

    monkeypatch.setattr(refunds, "_open_request_for", nothing_open)

    with pytest.raises(RefundRequestConflict):
        await refunds.request_refund(db, guest, booking.id, Decimal("30"), "cancellation")


async def test_closed_request_does_not_block_a_new_one(
    db, refunds, guest, realtor_user, realtor, paid_booking
):
    booking, _ = paid_booking
    first = await refunds.request_refund(db, guest, booking.id, Decimal("20"), "cancellation")
    await refunds.realtor_decision(db, realtor_user, first.id, approved=False, reason="no")

    second = await refunds.request_refund(db, guest, booking.id, Decimal("20"), "cancellation")

    assert second.id != first.id
    assert second.status == RefundRequestStatus.PENDING_REALTOR_APPROVAL.value


async def test_request_requires_completed_payment(db, refunds, guest, make_booking):
    booking, _ = await make_booking(payment_status=PaymentStatus.PENDING)

    with pytest.raises(ValidationError):
        await refunds.request_refund(db, guest, booking.id, Decimal("20"), "cancellation")


async def test_request_on_someone_elses_booking_is_not_found(
    db, refunds, other_guest, paid_booking
):
    booking, _ = paid_booking

    with pytest.raises(NotFoundError):
        await refunds.request_refund(db, other_guest, booking.id, Decimal("20"), "cancellation")


# === Realtor decision ===


async def test_rejection_is_terminal(db, refunds, guest, realtor_user, realtor, paid_booking):
    booking, _ = paid_booking
    request = await refunds.request_refund(db, guest, booking.id, Decimal("20"), "cancellation")

    rejected = await refunds.realtor_decision(
        db, realtor_user, request.id, approved=False, reason="Stay was completed"
    )
    assert rejected.status == RefundRequestStatus.REALTOR_REJECTED.value
    assert rejected.realtor_decided_at is not None

    with pytest.raises(InvalidStatusTransition):
        await refunds.realtor_decision(db, realtor_user, request.id, approved=True)

    # A rejected request no longer blocks a new one
    again = await refunds.request_refund(db, guest, booking.id, Decimal("10"), "cancellation")
    assert again.status == RefundRequestStatus.PENDING_REALTOR_APPROVAL.value


async def test_realtor_cannot_decide_for_another_realtors_property(
    db, refunds, guest, paid_booking, unconnected_listing
):
    booking, _ = paid_booking
    request = await refunds.request_refund(db, guest, booking.id, Decimal("20"), "cancellation")
    other_realtor = await db.get(Realtor, unconnected_listing.realtor_id)
    other_user = await db.get(User, other_realtor.user_id)

    with pytest.raises(NotFoundError):
        await refunds.realtor_decision(db, other_user, request.id, approved=True)


# === Admin processing ===


async def test_partial_refund_keeps_payment_completed(
    db, session_factory, refunds, guest, realtor_user, realtor, admin, paid_booking, stripe_gateway
):
    booking, payment = paid_booking
    request = await approved_request(db, refunds, guest, realtor_user, booking, "50")

    processed = await refunds.process_refund(db, admin, request.id, notes="Goodwill")
    await db.commit()

    assert processed.status == RefundRequestStatus.COMPLETED.value
    assert processed.actual_refund_amount == Decimal("50.00")
    assert processed.provider_refund_id == "re_1"
    assert stripe_gateway.refunds == [
        {"transaction_id": payment.stripe_payment_intent_id, "amount": 5000, "reason": "cancellation"}
    ]
    stored = await payment_for(session_factory, booking.id)
    assert stored.refund_amount == Decimal("50.00")
    assert stored.status == PaymentStatus.COMPLETED.value
    assert stored.refunded_at is not None
    trail = await refunds_for_payment(db, payment.id)
    assert [entry.amount for entry in trail] == [Decimal("50.00")]


async def test_full_refund_marks_payment_refunded(
    db, session_factory, refunds, guest, realtor_user, realtor, admin, paid_booking
):
    booking, payment = paid_booking

    first = await approved_request(db, refunds, guest, realtor_user, booking, "50")
    await refunds.process_refund(db, admin, first.id)
    await db.commit()
    second = await approved_request(db, refunds, guest, realtor_user, booking, "150")
    await refunds.process_refund(db, admin, second.id)
    await db.commit()

    stored = await payment_for(session_factory, booking.id)
    assert stored.refund_amount == Decimal("200.00")
    assert stored.status == PaymentStatus.REFUNDED.value
    assert sorted(entry.amount for entry in await refunds_for_payment(db, payment.id)) == [
        Decimal("50.00"),
        Decimal("150.00"),
    ]


async def test_processing_rechecks_ceiling_without_mutation(
    db, session_factory, refunds, guest, realtor_user, realtor, admin, paid_booking, stripe_gateway
):
    booking, payment = paid_booking
    request = await approved_request(db, refunds, guest, realtor_user, booking, "150")
    # Another refund completed after this one was approved
    payment.refund_amount = Decimal("100.00")
    await db.commit()

    with pytest.raises(RefundAmountExceeded):
        await refunds.process_refund(db, admin, request.id)
    await db.commit()

    assert stripe_gateway.refunds == []
    assert (await db.get(RefundRequest, request.id)).status == (
        RefundRequestStatus.REALTOR_APPROVED.value
    )
    stored = await payment_for(session_factory, booking.id)
    assert stored.refund_amount == Decimal("100.00")


async def test_admin_amount_override_is_capped(
    db, refunds, guest, realtor_user, realtor, admin, paid_booking
):
    booking, _ = paid_booking
    request = await approved_request(db, refunds, guest, realtor_user, booking, "50")

    with pytest.raises(RefundAmountExceeded):
        await refunds.process_refund(db, admin, request.id, actual_amount=Decimal("250"))


async def test_gateway_failure_returns_request_to_admin_queue(
    db, session_factory, refunds, guest, realtor_user, realtor, admin, paid_booking, stripe_gateway
):
    booking, _ = paid_booking
    request = await approved_request(db, refunds, guest, realtor_user, booking, "50")
    stripe_gateway.refund_succeeds = False

    with pytest.raises(ExternalServiceError):
        await refunds.process_refund(db, admin, request.id)

    # The revert is committed by the service, not left to the caller
    stored_request = await reload(session_factory, RefundRequest, request.id)
    assert stored_request.status == RefundRequestStatus.REALTOR_APPROVED.value
    assert "card issuer declined" in stored_request.admin_notes
    stored = await payment_for(session_factory, booking.id)
    assert stored.refund_amount == Decimal("0.00")
    assert stored.status == PaymentStatus.COMPLETED.value


async def test_pending_request_cannot_be_processed(
    db, refunds, guest, admin, paid_booking
):
    booking, _ = paid_booking
    request = await refunds.request_refund(db, guest, booking.id, Decimal("20"), "cancellation")

    with pytest.raises(InvalidStatusTransition):
        await refunds.process_refund(db, admin, request.id)


# === Queries and notifications ===


async def test_request_visibility(
    db, refunds, guest, other_guest, realtor_user, realtor, admin, paid_booking
):
    booking, _ = paid_booking
    request = await refunds.request_refund(db, guest, booking.id, Decimal("20"), "cancellation")

    for viewer in (guest, realtor_user, admin):
        assert (await refunds.get_refund_request(db, viewer, request.id)).id == request.id
    with pytest.raises(AuthorizationError):
        await refunds.get_refund_request(db, other_guest, request.id)


async def test_admin_queue_lists_approved_requests(
    db, refunds, guest, realtor_user, realtor, paid_booking
):
    booking, _ = paid_booking
    request = await approved_request(db, refunds, guest, realtor_user, booking, "20")

    assert [r.id for r in await refunds.list_for_admin(db)] == [request.id]
    assert [r.id for r in await refunds.list_for_realtor(db, realtor_user)] == [request.id]
    assert await refunds.list_for_realtor(
        db, realtor_user, status=RefundRequestStatus.COMPLETED
    ) == []


async def test_notify_is_best_effort(db, refunds, notifier, guest, paid_booking):
    booking, _ = paid_booking
    request = await refunds.request_refund(db, guest, booking.id, Decimal("20"), "cancellation")
    await db.commit()

    await refunds.notify(request.id, notifier.REFUND_REQUESTED)

    assert notifier.refund_updates == [(request.id, "refund_requested")]
