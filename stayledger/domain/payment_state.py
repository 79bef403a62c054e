"""Payment state machine."""

from enum import Enum

from stayledger.core.exceptions import InvalidStatusTransition


class PaymentStatus(str, Enum):
    """Payment lifecycle states."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    # A late success after a failure notice is still money received
    PaymentStatus.FAILED: {PaymentStatus.COMPLETED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}


def assert_payment_transition(current: str, target: str) -> None:
    try:
        allowed = PAYMENT_TRANSITIONS[PaymentStatus(current)]
        ok = PaymentStatus(target) in allowed
    except ValueError:
        ok = False
    if not ok:
        raise InvalidStatusTransition("payment", current, target)
