"""Admin endpoints for payout operations."""

from uuid import UUID

from fastapi import APIRouter

from stayledger.api.deps import CurrentAdmin, DbSession
from stayledger.core.exceptions import StatusConflict, ValidationError
from stayledger.schemas.payment import BookingPayoutResponse, PayoutListResponse
from stayledger.services.escrow_service import list_failed_payouts, requeue_payout

router = APIRouter()


@router.get("/payouts/failed", response_model=PayoutListResponse)
async def get_failed_payouts(
    current_user: CurrentAdmin,
    db: DbSession,
) -> PayoutListResponse:
    """Payouts the scheduler gave up on."""
    bookings = await list_failed_payouts(db)
    return PayoutListResponse(
        payouts=[BookingPayoutResponse.model_validate(b) for b in bookings],
        total=len(bookings),
    )


@router.post("/bookings/{booking_id}/payout/requeue", response_model=BookingPayoutResponse)
async def requeue_booking_payout(
    booking_id: UUID,
    current_user: CurrentAdmin,
    db: DbSession,
) -> BookingPayoutResponse:
    """Move a FAILED payout back to PENDING for the next scheduler tick."""
    try:
        booking = await requeue_payout(db, booking_id, current_user)
    except StatusConflict as e:
        raise ValidationError(f"Payout is {e.actual}, only FAILED payouts can be re-queued")
    await db.commit()
    return BookingPayoutResponse.model_validate(booking)
