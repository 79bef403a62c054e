"""Database models."""

from stayledger.models.admin import AuditLog
from stayledger.models.booking import Booking
from stayledger.models.payment import Payment, ProcessedWebhookEvent
from stayledger.models.property import Property
from stayledger.models.refund import RefundAuditEntry, RefundRequest
from stayledger.models.user import Realtor, User

__all__ = [
    # User
    "User",
    "Realtor",
    # Property
    "Property",
    # Booking
    "Booking",
    # Payment
    "Payment",
    "ProcessedWebhookEvent",
    # Refund
    "RefundRequest",
    "RefundAuditEntry",
    # Admin
    "AuditLog",
]
