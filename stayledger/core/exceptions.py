"""Custom application exceptions."""

from typing import Any
from uuid import UUID

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Validation error exception."""

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(AppException):
    """Authorization denied exception."""

    def __init__(self, detail: str = "You don't have permission to access this resource") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class InvalidSignature(AppException):
    """Webhook authenticity check failed."""

    def __init__(self, detail: str = "Invalid webhook signature") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InvalidStatusTransition(ValidationError):
    """Transition not present in the state table."""

    def __init__(self, kind: str, current: Any, target: Any) -> None:
        self.current = getattr(current, "value", current)
        self.target = getattr(target, "value", target)
        super().__init__(f"Invalid {kind} transition: {self.current} → {self.target}")


class RefundAmountExceeded(AppException):
    """Refund larger than what is left on the payment."""

    def __init__(self, currency: str, available: Any) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Refund amount cannot exceed available balance of {currency} {available}",
        )


class RefundRequestConflict(AppException):
    """A non-terminal refund request already exists for the booking."""

    def __init__(self, detail: str = "There is already a pending refund request for this booking") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class GatewayNotConfigured(AppException):
    """Gateway credentials are missing."""

    def __init__(self, gateway: str) -> None:
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{gateway} is not configured",
        )


class ExternalServiceError(AppException):
    """External service error."""

    def __init__(self, service: str, detail: str | None = None) -> None:
        message = f"External service '{service}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)


# Domain signals. These never reach the HTTP layer.


class StatusConflict(Exception):
    """Conditional transition lost a race: persisted status != expected."""

    def __init__(self, booking_id: UUID, expected: Any, actual: str | None) -> None:
        self.booking_id = booking_id
        self.expected = getattr(expected, "value", expected)
        self.actual = actual
        super().__init__(
            f"Booking {booking_id} status is {actual}, expected {self.expected}"
        )


class MissingBookingReference(Exception):
    """Gateway event carries no resolvable booking id."""

    def __init__(self, event_type: str, event_id: str | None = None) -> None:
        self.event_type = event_type
        self.event_id = event_id
        super().__init__(f"{event_type} event {event_id} has no booking reference")


class PayoutError(Exception):
    """Payout for a single booking could not be released."""
