"""Conditional status transitions for bookings.

Every status write goes through a single UPDATE ... WHERE status = expected.
Two writers racing on the same booking cannot both succeed: the loser sees
zero affected rows and gets ``StatusConflict`` with nothing mutated.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.core.exceptions import NotFoundError, StatusConflict
from stayledger.domain.booking_state import BookingStatus, assert_booking_transition
from stayledger.domain.payout_state import PayoutStatus, assert_payout_transition
from stayledger.models.booking import Booking

logger = logging.getLogger(__name__)


async def _conditional_update(
    db: AsyncSession,
    booking_id: UUID,
    column: str,
    expected: str,
    new: str,
    extra_fields: dict[str, Any] | None,
    booking_status: str | None = None,
) -> Booking:
    values = dict(extra_fields or {})
    values[column] = new
    conditions = [Booking.id == booking_id, getattr(Booking, column) == expected]
    if booking_status is not None:
        conditions.append(Booking.status == booking_status)
    result = await db.execute(
        update(Booking)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        row = (
            await db.execute(
                select(getattr(Booking, column), Booking.status).where(Booking.id == booking_id)
            )
        ).one_or_none()
        if row is None:
            raise NotFoundError("Booking", str(booking_id))
        actual, actual_booking_status = row
        if actual == expected:
            raise StatusConflict(booking_id, booking_status, actual_booking_status)
        raise StatusConflict(booking_id, expected, actual)

    booking = await db.get(Booking, booking_id, populate_existing=True)
    return booking


async def transition(
    db: AsyncSession,
    booking_id: UUID,
    expected: BookingStatus | str,
    new: BookingStatus | str,
    extra_fields: dict[str, Any] | None = None,
) -> Booking:
    """Move a booking from ``expected`` to ``new`` status.

    Args:
        db: Database session (the caller owns the transaction)
        booking_id: Booking to update
        expected: Status the caller believes the booking is in
        new: Target status
        extra_fields: Other columns written in the same statement

    Returns:
        The refreshed booking

    Raises:
        InvalidStatusTransition: If expected → new is not a legal transition
        NotFoundError: If the booking does not exist
        StatusConflict: If the persisted status differs from expected
    """
    expected = BookingStatus(expected).value
    new = BookingStatus(new).value
    assert_booking_transition(expected, new)

    booking = await _conditional_update(db, booking_id, "status", expected, new, extra_fields)
    logger.info(f"Booking {booking_id} status {expected} → {new}")
    return booking


async def transition_payout(
    db: AsyncSession,
    booking_id: UUID,
    expected: PayoutStatus | str,
    new: PayoutStatus | str,
    extra_fields: dict[str, Any] | None = None,
) -> Booking:
    """Move a booking's payout from ``expected`` to ``new`` status.

    Same contract as ``transition`` against the payout state table. A payout
    is only released on a CONFIRMED booking; otherwise ``StatusConflict``
    reports the booking status.
    """
    expected = PayoutStatus(expected).value
    new = PayoutStatus(new).value
    assert_payout_transition(expected, new)

    required = BookingStatus.CONFIRMED.value if new == PayoutStatus.RELEASED.value else None
    booking = await _conditional_update(
        db, booking_id, "payout_status", expected, new, extra_fields, booking_status=required
    )
    logger.info(f"Booking {booking_id} payout {expected} → {new}")
    return booking
