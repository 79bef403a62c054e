"""Booking state machine."""

from enum import Enum

from stayledger.core.exceptions import InvalidStatusTransition


class BookingStatus(str, Enum):
    """Booking lifecycle states."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    # COMPLETED is reached through admin review; CANCELLED through disputes
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}


def can_transition_booking(current: str, target: str) -> bool:
    try:
        return BookingStatus(target) in BOOKING_TRANSITIONS[BookingStatus(current)]
    except ValueError:
        return False


def assert_booking_transition(current: str, target: str) -> None:
    if not can_transition_booking(current, target):
        raise InvalidStatusTransition("booking", current, target)
