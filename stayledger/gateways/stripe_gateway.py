"""Stripe payment gateway adapter (Stripe Connect for realtor payouts)."""

import json

import stripe

from stayledger.core.exceptions import (
    ExternalServiceError,
    GatewayNotConfigured,
    InvalidSignature,
)
from stayledger.gateways.base import (
    AccountStatus,
    GatewayType,
    PaymentGateway,
    RefundResult,
    TransactionFees,
    TransferResult,
)

# https://docs.stripe.com/currencies#zero-decimal
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
        "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
    }
)


class StripeGateway(PaymentGateway):
    """Stripe payment gateway implementation."""

    def __init__(self, secret_key: str | None, webhook_secret: str | None):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.STRIPE

    @property
    def signature_header(self) -> str:
        return "Stripe-Signature"

    def divisor_for(self, currency: str) -> int:
        return 1 if currency.lower() in ZERO_DECIMAL_CURRENCIES else 100

    def _require_key(self) -> str:
        if not self.secret_key:
            raise GatewayNotConfigured("Stripe")
        return self.secret_key

    def verify_webhook(
        self,
        payload: bytes,
        signature: str | None,
    ) -> dict:
        """Verify Stripe webhook signature."""
        if not self.webhook_secret:
            raise GatewayNotConfigured("Stripe webhook secret")
        if not signature:
            raise InvalidSignature("Missing webhook signature")

        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError:
            raise InvalidSignature()
        except ValueError:
            raise InvalidSignature("Invalid payload")

        # The verified bytes are the event; keep it a plain dict
        return json.loads(payload)

    async def retrieve_transaction_fees(self, reference: str) -> TransactionFees:
        """Read the balance transaction behind a payment intent's charge."""
        intent = stripe.PaymentIntent.retrieve(
            reference,
            expand=["latest_charge.balance_transaction"],
            api_key=self._require_key(),
        )
        charge = intent.latest_charge
        if not charge or not charge.balance_transaction:
            raise ValueError(f"PaymentIntent {reference} has no settled charge yet")

        balance_transaction = charge.balance_transaction
        return TransactionFees(
            amount=balance_transaction.amount,
            fee=balance_transaction.fee,
            currency=balance_transaction.currency,
            raw_response={"balance_transaction": balance_transaction.id},
        )

    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        reference: str,
        metadata: dict | None = None,
    ) -> TransferResult:
        """Transfer the realtor's share to their connected account."""
        try:
            transfer = stripe.Transfer.create(
                amount=amount,
                currency=currency.lower(),
                destination=destination,
                transfer_group=reference,
                metadata=metadata or {},
                idempotency_key=reference,
                api_key=self._require_key(),
            )
        except stripe.StripeError as e:
            return TransferResult(success=False, reference=reference, error_message=str(e))

        return TransferResult(
            success=True,
            transfer_id=transfer.id,
            reference=reference,
            raw_response={"id": transfer.id, "destination": destination},
        )

    async def process_refund(
        self,
        transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Process Stripe refund."""
        try:
            refund = stripe.Refund.create(
                payment_intent=transaction_id,
                amount=amount,
                reason="requested_by_customer",
                metadata={"reason": reason[:500]},
                api_key=self._require_key(),
            )
        except stripe.StripeError as e:
            return RefundResult(success=False, error_message=str(e))

        return RefundResult(
            success=refund.status in ("succeeded", "pending"),
            refund_id=refund.id,
            raw_response={"status": refund.status, "id": refund.id},
        )

    async def retrieve_account_status(self, account_id: str) -> AccountStatus:
        try:
            account = stripe.Account.retrieve(account_id, api_key=self._require_key())
        except stripe.StripeError as e:
            raise ExternalServiceError("Stripe", str(e))
        requirements = getattr(account, "requirements", None)
        return AccountStatus(
            account_id=account.id,
            charges_enabled=bool(account.charges_enabled),
            payouts_enabled=bool(account.payouts_enabled),
            details_submitted=bool(account.details_submitted),
            requirements=list(getattr(requirements, "currently_due", None) or []),
        )

    async def create_account(self, email: str, country: str = "US") -> str:
        """Create an Express connected account and return its id."""
        try:
            account = stripe.Account.create(
                type="express",
                email=email,
                country=country,
                capabilities={"transfers": {"requested": True}},
                api_key=self._require_key(),
            )
        except stripe.StripeError as e:
            raise ExternalServiceError("Stripe", str(e))
        return account.id

    async def create_account_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        try:
            link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
                api_key=self._require_key(),
            )
        except stripe.StripeError as e:
            raise ExternalServiceError("Stripe", str(e))
        return link.url

    async def create_dashboard_link(self, account_id: str) -> str:
        try:
            link = stripe.Account.create_login_link(account_id, api_key=self._require_key())
        except stripe.StripeError as e:
            raise ExternalServiceError("Stripe", str(e))
        return link.url
