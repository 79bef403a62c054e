"""Payment and payout Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    amount: Decimal
    currency: str
    status: str
    gateway: str
    refund_amount: Decimal
    gateway_fee: Decimal | None
    platform_net: Decimal | None
    payout_released: bool
    payout_released_at: datetime | None
    completed_at: datetime | None


class BookingPayoutResponse(BaseModel):
    """Payout view of a booking."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: str
    payout_status: str
    payout_release_date: datetime | None
    realtor_payout_amount: Decimal
    currency: str
    payout_failure_reason: str | None


class PayoutListResponse(BaseModel):
    payouts: list[BookingPayoutResponse]
    total: int


class ConnectLinkResponse(BaseModel):
    """Hosted Stripe Connect page the realtor is sent to."""

    url: str
    account_id: str


class ConnectStatusResponse(BaseModel):
    connected: bool
    account_id: str | None = None
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    requirements: list[str] = []


class RefundAuditEntryResponse(BaseModel):
    """One refund actually sent to the gateway."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payment_id: UUID
    refund_request_id: UUID
    amount: Decimal
    processed_by: UUID
    reason: str | None
    provider_refund_id: str | None
    created_at: datetime | None


class PaymentRefundsResponse(BaseModel):
    payment_id: UUID
    amount: Decimal
    refund_amount: Decimal
    refundable_amount: Decimal
    refunds: list[RefundAuditEntryResponse]


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    actor_id: UUID | None
    action: str
    resource_type: str
    details: dict | None
    created_at: datetime | None


class BookingLedgerResponse(BaseModel):
    """Reconciliation view of a booking: applied gateway events and audit trail."""

    booking_id: UUID
    status: str
    payout_status: str
    processed_events: list[str]
    audit: list[AuditLogResponse]
