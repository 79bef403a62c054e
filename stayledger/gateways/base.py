"""Base payment gateway interface.

All gateway adapters must implement this interface.
Business logic should NOT live in adapters - only gateway communication.
Amounts crossing this boundary are in the currency's minor unit.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class GatewayType(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"
    PAYSTACK = "paystack"


@dataclass
class TransactionFees:
    """Fee breakdown of a settled charge, in minor units."""

    amount: int
    fee: int
    currency: str
    raw_response: dict | None = None


@dataclass
class TransferResult:
    """Result of a payout transfer."""

    success: bool
    transfer_id: str | None = None
    reference: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


@dataclass
class RefundResult:
    """Result of a refund operation."""

    success: bool
    refund_id: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


@dataclass
class AccountStatus:
    """Connected payout account capabilities."""

    account_id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    requirements: list[str] = field(default_factory=list)


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    # Paystack kobo/pesewas and most Stripe currencies use two decimals
    minor_unit_divisor: int = 100

    @property
    @abstractmethod
    def gateway_type(self) -> GatewayType:
        """Return the gateway type."""
        pass

    @property
    def signature_header(self) -> str:
        """HTTP header carrying the webhook signature."""
        raise NotImplementedError

    def divisor_for(self, currency: str) -> int:
        """Minor units per major unit for a currency."""
        return self.minor_unit_divisor

    @abstractmethod
    def verify_webhook(
        self,
        payload: bytes,
        signature: str | None,
    ) -> dict:
        """Verify webhook signature and parse payload.

        Args:
            payload: Raw, untransformed request body
            signature: Webhook signature header

        Returns:
            Parsed event dict

        Raises:
            InvalidSignature: If the header is missing or does not match
        """
        pass

    @abstractmethod
    async def retrieve_transaction_fees(self, reference: str) -> TransactionFees:
        """Fetch the fee breakdown for a settled charge.

        Args:
            reference: Gateway charge reference (payment intent id, transaction reference)
        """
        pass

    @abstractmethod
    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        reference: str,
        metadata: dict | None = None,
    ) -> TransferResult:
        """Move the realtor's share to their connected account.

        Args:
            amount: Amount in smallest currency unit
            currency: ISO currency code
            destination: Connected account / recipient code
            reference: Idempotent reference for this payout
            metadata: Additional metadata echoed back on webhooks
        """
        pass

    @abstractmethod
    async def process_refund(
        self,
        transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Process a refund.

        Args:
            transaction_id: Original payment transaction ID
            amount: Refund amount in smallest currency unit
            reason: Refund reason

        Returns:
            RefundResult with refund details
        """
        pass

    async def create_account(self, email: str, country: str = "US") -> str:
        raise NotImplementedError(f"{self.gateway_type.value} has no connected accounts")

    async def retrieve_account_status(self, account_id: str) -> AccountStatus:
        raise NotImplementedError(f"{self.gateway_type.value} has no connected accounts")

    async def create_account_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        raise NotImplementedError(f"{self.gateway_type.value} has no hosted onboarding")

    async def create_dashboard_link(self, account_id: str) -> str:
        raise NotImplementedError(f"{self.gateway_type.value} has no connected dashboard")
