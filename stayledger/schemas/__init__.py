"""Pydantic schemas for API validation."""

from stayledger.schemas.payment import (
    AuditLogResponse,
    BookingLedgerResponse,
    BookingPayoutResponse,
    ConnectLinkResponse,
    ConnectStatusResponse,
    PaymentRefundsResponse,
    PaymentResponse,
    PayoutListResponse,
    RefundAuditEntryResponse,
)
from stayledger.schemas.refund import (
    RealtorDecision,
    RefundProcess,
    RefundRequestCreate,
    RefundRequestListResponse,
    RefundRequestResponse,
)

__all__ = [
    # Payment
    "PaymentResponse",
    "PaymentRefundsResponse",
    "RefundAuditEntryResponse",
    "AuditLogResponse",
    "BookingLedgerResponse",
    "BookingPayoutResponse",
    "PayoutListResponse",
    "ConnectLinkResponse",
    "ConnectStatusResponse",
    # Refund
    "RefundRequestCreate",
    "RealtorDecision",
    "RefundProcess",
    "RefundRequestResponse",
    "RefundRequestListResponse",
]
