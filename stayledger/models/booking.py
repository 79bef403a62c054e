"""Booking model."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from stayledger.database import Base
from stayledger.domain.booking_state import BookingStatus
from stayledger.domain.payout_state import PayoutStatus

if TYPE_CHECKING:
    from stayledger.models.payment import Payment
    from stayledger.models.property import Property
    from stayledger.models.user import User


class Booking(Base):
    """Reservation of a property for a date range."""

    __tablename__ = "bookings"
    __table_args__ = (
        # Escrow release scan: status + payout_status + release date
        Index("ix_bookings_payout_scan", "status", "payout_status", "payout_release_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id"), nullable=False, index=True
    )
    guest_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )

    # Dates
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(20), default=BookingStatus.PENDING.value, index=True
    )  # PENDING, CONFIRMED, CANCELLED, COMPLETED

    # Payout
    payout_status: Mapped[str] = mapped_column(
        String(20), default=PayoutStatus.PENDING.value
    )  # PENDING, RELEASED, FAILED
    payout_release_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    realtor_payout_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    payout_failure_reason: Mapped[str | None] = mapped_column(Text)
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    # Timestamps
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    property: Mapped["Property"] = relationship("Property", back_populates="bookings")
    guest: Mapped["User"] = relationship("User", foreign_keys=[guest_id])
    payment: Mapped["Payment | None"] = relationship(
        "Payment", back_populates="booking", uselist=False
    )
