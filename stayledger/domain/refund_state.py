"""Refund request state machine.

PENDING_REALTOR_APPROVAL → REALTOR_APPROVED → ADMIN_PROCESSING → COMPLETED
                         ↘ REALTOR_REJECTED
"""

from enum import Enum

from stayledger.core.exceptions import InvalidStatusTransition


class RefundRequestStatus(str, Enum):
    """Refund request states."""

    PENDING_REALTOR_APPROVAL = "PENDING_REALTOR_APPROVAL"
    REALTOR_APPROVED = "REALTOR_APPROVED"
    REALTOR_REJECTED = "REALTOR_REJECTED"
    ADMIN_PROCESSING = "ADMIN_PROCESSING"
    COMPLETED = "COMPLETED"


REFUND_TRANSITIONS: dict[RefundRequestStatus, set[RefundRequestStatus]] = {
    RefundRequestStatus.PENDING_REALTOR_APPROVAL: {
        RefundRequestStatus.REALTOR_APPROVED,
        RefundRequestStatus.REALTOR_REJECTED,
    },
    RefundRequestStatus.REALTOR_APPROVED: {RefundRequestStatus.ADMIN_PROCESSING},
    # Gateway refund failure hands the request back to the admin queue
    RefundRequestStatus.ADMIN_PROCESSING: {
        RefundRequestStatus.COMPLETED,
        RefundRequestStatus.REALTOR_APPROVED,
    },
    RefundRequestStatus.REALTOR_REJECTED: set(),
    RefundRequestStatus.COMPLETED: set(),
}

OPEN_REFUND_STATUSES = frozenset(
    {
        RefundRequestStatus.PENDING_REALTOR_APPROVAL,
        RefundRequestStatus.REALTOR_APPROVED,
        RefundRequestStatus.ADMIN_PROCESSING,
    }
)


def assert_refund_transition(current: str, target: str) -> None:
    """Validate refund request state transition."""
    try:
        ok = RefundRequestStatus(target) in REFUND_TRANSITIONS[RefundRequestStatus(current)]
    except ValueError:
        ok = False
    if not ok:
        raise InvalidStatusTransition("refund request", current, target)
