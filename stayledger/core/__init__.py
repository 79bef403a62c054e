"""Core utilities: exceptions, security, idempotency ledger."""

from stayledger.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    ExternalServiceError,
    GatewayNotConfigured,
    InvalidSignature,
    InvalidStatusTransition,
    MissingBookingReference,
    NotFoundError,
    PayoutError,
    RefundAmountExceeded,
    RefundRequestConflict,
    StatusConflict,
    ValidationError,
)
from stayledger.core.security import create_access_token, verify_token

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "ExternalServiceError",
    "GatewayNotConfigured",
    "InvalidSignature",
    "InvalidStatusTransition",
    "MissingBookingReference",
    "NotFoundError",
    "PayoutError",
    "RefundAmountExceeded",
    "RefundRequestConflict",
    "StatusConflict",
    "ValidationError",
    "create_access_token",
    "verify_token",
]
