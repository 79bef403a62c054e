"""Paystack payment gateway adapter.

Documentation: https://paystack.com/docs/api/
Realtors are configured as split subaccounts, so room-fee settlement
happens on Paystack's side; transfers are only used for explicit payouts.
"""

import hashlib
import hmac
import json

import httpx

from stayledger.core.exceptions import GatewayNotConfigured, InvalidSignature
from stayledger.gateways.base import (
    GatewayType,
    PaymentGateway,
    RefundResult,
    TransactionFees,
    TransferResult,
)


class PaystackGateway(PaymentGateway):
    """Paystack payment gateway implementation."""

    def __init__(
        self,
        secret_key: str | None,
        base_url: str = "https://api.paystack.co",
        http_client: httpx.AsyncClient | None = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.PAYSTACK

    @property
    def signature_header(self) -> str:
        return "x-paystack-signature"

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()

    def _headers(self) -> dict[str, str]:
        if not self.secret_key:
            raise GatewayNotConfigured("Paystack")
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _generate_signature(self, payload: bytes) -> str:
        """HMAC-SHA512 of the raw body keyed with the secret key."""
        return hmac.new(self.secret_key.encode(), payload, hashlib.sha512).hexdigest()

    def verify_webhook(
        self,
        payload: bytes,
        signature: str | None,
    ) -> dict:
        """Verify Paystack webhook signature over the raw body bytes."""
        if not self.secret_key:
            raise GatewayNotConfigured("Paystack")
        if not signature:
            raise InvalidSignature("Missing webhook signature")

        expected = self._generate_signature(payload)
        if not hmac.compare_digest(expected, signature):
            raise InvalidSignature()

        try:
            event = json.loads(payload)
        except ValueError:
            raise InvalidSignature("Invalid payload")

        if not isinstance(event, dict) or "event" not in event:
            raise InvalidSignature("Invalid payload")
        return event

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        response = await self.http_client.request(
            method,
            f"{self.base_url}{path}",
            headers=self._headers(),
            **kwargs,
        )
        response.raise_for_status()
        body = response.json()
        if not body.get("status"):
            raise httpx.HTTPStatusError(
                body.get("message", "Paystack request failed"),
                request=response.request,
                response=response,
            )
        return body.get("data") or {}

    async def retrieve_transaction_fees(self, reference: str) -> TransactionFees:
        """Verify a transaction and read its fee (kobo)."""
        data = await self._request("GET", f"/transaction/verify/{reference}")
        if data.get("status") != "success":
            raise ValueError(f"Transaction {reference} is {data.get('status')}, not settled")

        return TransactionFees(
            amount=int(data.get("amount") or 0),
            fee=int(data.get("fees") or 0),
            currency=data.get("currency", "NGN"),
            raw_response={"id": data.get("id"), "reference": reference},
        )

    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        reference: str,
        metadata: dict | None = None,
    ) -> TransferResult:
        """Initiate a balance transfer to a transfer recipient."""
        try:
            data = await self._request(
                "POST",
                "/transfer",
                json={
                    "source": "balance",
                    "amount": amount,
                    "currency": currency.upper(),
                    "recipient": destination,
                    "reference": reference,
                    "reason": (metadata or {}).get("reason", "Booking payout"),
                },
            )
        except httpx.HTTPError as e:
            return TransferResult(success=False, reference=reference, error_message=str(e))

        return TransferResult(
            success=data.get("status") in ("success", "pending", "otp"),
            transfer_id=data.get("transfer_code"),
            reference=data.get("reference", reference),
            raw_response=data,
        )

    async def process_refund(
        self,
        transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Process refund via Paystack API."""
        try:
            data = await self._request(
                "POST",
                "/refund",
                json={
                    "transaction": transaction_id,
                    "amount": amount,
                    "merchant_note": reason[:500],
                },
            )
        except httpx.HTTPError as e:
            return RefundResult(success=False, error_message=str(e))

        return RefundResult(
            success=True,
            refund_id=str(data.get("id")) if data.get("id") is not None else None,
            raw_response=data,
        )
