"""Refund request and refund audit models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from stayledger.database import Base
from stayledger.domain.refund_state import RefundRequestStatus

if TYPE_CHECKING:
    from stayledger.models.booking import Booking
    from stayledger.models.payment import Payment
    from stayledger.models.user import Realtor, User


# Statuses in OPEN_REFUND_STATUSES
OPEN_REFUND_PREDICATE = (
    "status IN ('PENDING_REALTOR_APPROVAL', 'REALTOR_APPROVED', 'ADMIN_PROCESSING')"
)


class RefundRequest(Base):
    """Guest refund claim with realtor then admin approval."""

    __tablename__ = "refund_requests"
    __table_args__ = (
        # At most one open request per booking
        Index(
            "uq_refund_requests_open_booking",
            "booking_id",
            unique=True,
            postgresql_where=text(OPEN_REFUND_PREDICATE),
            sqlite_where=text(OPEN_REFUND_PREDICATE),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, index=True
    )
    payment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payments.id"), nullable=False
    )
    requested_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    realtor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("realtors.id"), nullable=False, index=True
    )

    # Request
    requested_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_notes: Mapped[str | None] = mapped_column(Text)

    status: Mapped[str] = mapped_column(
        String(30), default=RefundRequestStatus.PENDING_REALTOR_APPROVAL.value, index=True
    )

    # Realtor decision
    realtor_decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    realtor_reason: Mapped[str | None] = mapped_column(Text)
    realtor_notes: Mapped[str | None] = mapped_column(Text)

    # Admin processing
    admin_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    admin_processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    admin_notes: Mapped[str | None] = mapped_column(Text)
    actual_refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    provider_refund_id: Mapped[str | None] = mapped_column(String(100))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking")
    payment: Mapped["Payment"] = relationship("Payment")
    requester: Mapped["User"] = relationship("User", foreign_keys=[requested_by])
    realtor: Mapped["Realtor"] = relationship("Realtor")


class RefundAuditEntry(Base):
    """Append-only record of money refunded against a payment."""

    __tablename__ = "refund_audit_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payments.id"), nullable=False, index=True
    )
    refund_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("refund_requests.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    processed_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    provider_refund_id: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    payment: Mapped["Payment"] = relationship("Payment", back_populates="refund_audit")
