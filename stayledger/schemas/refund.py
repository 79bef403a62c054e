"""Refund request Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RefundRequestCreate(BaseModel):
    """Guest refund request."""

    booking_id: UUID
    payment_id: UUID | None = None
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    reason: str = Field(..., min_length=1, max_length=50)
    customer_notes: str | None = Field(None, max_length=2000)


class RealtorDecision(BaseModel):
    approved: bool
    reason: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=2000)


class RefundProcess(BaseModel):
    """Admin processing; amount defaults to what was requested."""

    actual_refund_amount: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2)
    admin_notes: str | None = Field(None, max_length=2000)


class RefundRequestResponse(BaseModel):
    """Schema for refund request response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    payment_id: UUID
    requested_by: UUID
    realtor_id: UUID
    requested_amount: Decimal
    currency: str
    reason: str
    customer_notes: str | None
    status: str
    realtor_decided_at: datetime | None
    realtor_reason: str | None
    admin_processed_at: datetime | None
    actual_refund_amount: Decimal | None
    provider_refund_id: str | None
    completed_at: datetime | None
    created_at: datetime | None


class RefundRequestListResponse(BaseModel):
    requests: list[RefundRequestResponse]
    total: int
