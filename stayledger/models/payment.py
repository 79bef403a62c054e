"""Payment and processed-event models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from stayledger.database import Base, JSONVariant
from stayledger.domain.payment_state import PaymentStatus

if TYPE_CHECKING:
    from stayledger.models.booking import Booking
    from stayledger.models.refund import RefundAuditEntry


class Payment(Base):
    """Monetary transaction tied 1:1 to a booking (amounts in major units)."""

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("refund_amount <= amount", name="ck_payments_refund_ceiling"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), unique=True, nullable=False
    )

    # Amount
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Status
    status: Mapped[str] = mapped_column(
        String(20), default=PaymentStatus.PENDING.value
    )  # PENDING, COMPLETED, FAILED, REFUNDED

    # Gateway identifiers
    gateway: Mapped[str] = mapped_column(String(20), nullable=False)  # stripe, paystack
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(100), index=True)
    stripe_transfer_id: Mapped[str | None] = mapped_column(String(100))
    paystack_reference: Mapped[str | None] = mapped_column(String(100), index=True)
    paystack_transfer_reference: Mapped[str | None] = mapped_column(String(100), index=True)
    gateway_response: Mapped[dict | None] = mapped_column(JSONVariant)

    # Fees (gateway_fee and platform_net are only set once the charge settled)
    service_fee_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    platform_commission: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    gateway_fee: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    platform_net: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    # Payout
    payout_released: Mapped[bool] = mapped_column(Boolean, default=False)
    payout_released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Timestamps
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="payment")
    refund_audit: Mapped[list["RefundAuditEntry"]] = relationship(
        "RefundAuditEntry",
        back_populates="payment",
        order_by="RefundAuditEntry.created_at",
    )

    @property
    def refundable_amount(self) -> Decimal:
        """What is left to refund on this payment."""
        return Decimal(self.amount) - Decimal(self.refund_amount or 0)


class ProcessedWebhookEvent(Base):
    """Gateway event id already applied to a booking.

    Append-only. The unique constraint is what makes the ledger claim atomic.
    """

    __tablename__ = "processed_webhook_events"
    __table_args__ = (
        UniqueConstraint("booking_id", "event_id", name="uq_processed_event_booking"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, index=True
    )
    event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    gateway: Mapped[str | None] = mapped_column(String(20))
    event_type: Mapped[str | None] = mapped_column(String(100))
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
