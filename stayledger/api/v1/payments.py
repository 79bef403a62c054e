"""Payment endpoints (read-only views of reconciled payments)."""

from uuid import UUID

from fastapi import APIRouter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from stayledger.api.deps import CurrentAdmin, CurrentUser, DbSession
from stayledger.core.exceptions import AuthorizationError, NotFoundError
from stayledger.core.idempotency import IdempotencyLedger
from stayledger.models.booking import Booking
from stayledger.models.payment import Payment
from stayledger.models.property import Property
from stayledger.models.user import User
from stayledger.schemas.payment import (
    AuditLogResponse,
    BookingLedgerResponse,
    PaymentRefundsResponse,
    PaymentResponse,
    RefundAuditEntryResponse,
)
from stayledger.services.audit_service import AuditService
from stayledger.services.refund_service import refunds_for_payment

router = APIRouter()


async def _visible_booking(db: AsyncSession, user: User, booking_id: UUID) -> Booking:
    """Booking the user may see: their own stay, their property, or any for admins."""
    booking = await db.scalar(
        select(Booking)
        .where(Booking.id == booking_id)
        .options(
            selectinload(Booking.payment),
            selectinload(Booking.property).selectinload(Property.realtor),
        )
    )
    if booking is None:
        raise NotFoundError("Booking", str(booking_id))

    if user.role == "admin" or booking.guest_id == user.id:
        return booking
    if booking.property.realtor.user_id == user.id:
        return booking
    raise AuthorizationError("Unauthorized to view this booking's payment")


@router.get("/bookings/{booking_id}", response_model=PaymentResponse)
async def get_booking_payment(
    booking_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> PaymentResponse:
    """Get the payment of a booking."""
    booking = await _visible_booking(db, current_user, booking_id)
    if booking.payment is None:
        raise NotFoundError("Payment")
    return PaymentResponse.model_validate(booking.payment)


@router.get("/{payment_id}/refunds", response_model=PaymentRefundsResponse)
async def get_payment_refunds(
    payment_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> PaymentRefundsResponse:
    """Refunds sent against a payment and what is left to refund."""
    payment = await db.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError("Payment", str(payment_id))
    await _visible_booking(db, current_user, payment.booking_id)

    entries = await refunds_for_payment(db, payment.id)
    return PaymentRefundsResponse(
        payment_id=payment.id,
        amount=payment.amount,
        refund_amount=payment.refund_amount,
        refundable_amount=payment.refundable_amount,
        refunds=[RefundAuditEntryResponse.model_validate(e) for e in entries],
    )


@router.get("/bookings/{booking_id}/ledger", response_model=BookingLedgerResponse)
async def get_booking_ledger(
    booking_id: UUID,
    current_user: CurrentAdmin,
    db: DbSession,
) -> BookingLedgerResponse:
    """Gateway events applied to a booking and its financial audit trail (admin only)."""
    booking = await db.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking", str(booking_id))

    events = await IdempotencyLedger().processed_events(db, booking.id)
    audit = await AuditService().list_for_resource(db, booking.id)
    return BookingLedgerResponse(
        booking_id=booking.id,
        status=booking.status,
        payout_status=booking.payout_status,
        processed_events=events,
        audit=[AuditLogResponse.model_validate(a) for a in audit],
    )
