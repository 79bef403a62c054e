"""Realtor payout state machine.

States:
- PENDING: Funds held in escrow until the release date
- RELEASED: Realtor share transferred (or settled natively by a split)
- FAILED: Release failed or was held by a dispute; needs manual re-queue
"""

from enum import Enum

from stayledger.core.exceptions import InvalidStatusTransition
from stayledger.domain.booking_state import BookingStatus


class PayoutStatus(str, Enum):
    """Payout lifecycle states."""

    PENDING = "PENDING"
    RELEASED = "RELEASED"
    FAILED = "FAILED"


PAYOUT_TRANSITIONS: dict[PayoutStatus, set[PayoutStatus]] = {
    PayoutStatus.PENDING: {PayoutStatus.RELEASED, PayoutStatus.FAILED},
    PayoutStatus.RELEASED: {PayoutStatus.FAILED},  # transfer reversed by the gateway
    PayoutStatus.FAILED: {PayoutStatus.PENDING},  # admin re-queue
}


def assert_payout_transition(current: str, target: str) -> None:
    """Validate payout state transition.

    Args:
        current: Current payout status
        target: Target payout status

    Raises:
        InvalidStatusTransition: If transition is not allowed
    """
    try:
        ok = PayoutStatus(target) in PAYOUT_TRANSITIONS[PayoutStatus(current)]
    except ValueError:
        ok = False
    if not ok:
        raise InvalidStatusTransition("payout", current, target)


def can_release_payout(booking_status: str, payout_status: str) -> tuple[bool, str | None]:
    """Check if a booking's payout may be released.

    Returns:
        Tuple of (can_release, error_message)
    """
    if booking_status != BookingStatus.CONFIRMED:
        return False, f"Cannot release payout - booking status is {booking_status}"

    if payout_status != PayoutStatus.PENDING:
        return False, f"Cannot release payout - payout status is {payout_status}"

    return True, None
