"""Property reference model.

Listings are managed by the catalogue service; only the ownership link
needed for payouts and refund approvals is kept here.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stayledger.database import Base

if TYPE_CHECKING:
    from stayledger.models.booking import Booking
    from stayledger.models.user import Realtor


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    realtor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("realtors.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)

    realtor: Mapped["Realtor"] = relationship("Realtor", back_populates="properties")
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="property")
