"""Tests for gateway adapters and the email client."""

import json

import httpx
import pytest

from stayledger.config import settings
from stayledger.core.exceptions import GatewayNotConfigured, InvalidSignature
from stayledger.gateways.paystack import PaystackGateway
from stayledger.gateways.stripe_gateway import StripeGateway
from stayledger.services.notification_service import SENDGRID_URL, NotificationService

from tests.conftest import (
    PAYSTACK_SECRET,
    STRIPE_WEBHOOK_SECRET,
    paystack_signature,
    stripe_signature,
)


def paystack_client(handler) -> PaystackGateway:
    return PaystackGateway(
        PAYSTACK_SECRET,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


# === Paystack webhook verification ===


class TestPaystackVerification:
    payload = json.dumps(
        {"event": "charge.success", "data": {"id": 4099, "metadata": {"booking_id": "b1"}}}
    ).encode()

    def test_valid_signature_returns_event(self):
        gateway = PaystackGateway(PAYSTACK_SECRET)

        event = gateway.verify_webhook(self.payload, paystack_signature(self.payload))

        assert event["event"] == "charge.success"
        assert event["data"]["id"] == 4099

    def test_tampered_body_is_rejected(self):
        gateway = PaystackGateway(PAYSTACK_SECRET)
        signature = paystack_signature(self.payload)

        with pytest.raises(InvalidSignature):
            gateway.verify_webhook(self.payload.replace(b"4099", b"4100"), signature)

    def test_missing_signature_is_rejected(self):
        gateway = PaystackGateway(PAYSTACK_SECRET)

        with pytest.raises(InvalidSignature) as exc_info:
            gateway.verify_webhook(self.payload, None)

        assert exc_info.value.detail == "Missing webhook signature"

    def test_unconfigured_secret(self):
        gateway = PaystackGateway(None)

        with pytest.raises(GatewayNotConfigured) as exc_info:
            gateway.verify_webhook(self.payload, "anything")

        assert exc_info.value.status_code == 503

    @pytest.mark.parametrize("body", [b"[1, 2]", b'{"data": {}}', b"not json"])
    def test_signed_but_malformed_payload(self, body):
        gateway = PaystackGateway(PAYSTACK_SECRET)

        with pytest.raises(InvalidSignature) as exc_info:
            gateway.verify_webhook(body, paystack_signature(body))

        assert exc_info.value.detail == "Invalid payload"


# === Stripe webhook verification ===


class TestStripeVerification:
    payload = json.dumps(
        {
            "id": "evt_1",
            "object": "event",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_1", "metadata": {"booking_id": "b1"}}},
        }
    ).encode()

    def test_valid_signature_returns_plain_dict(self):
        gateway = StripeGateway(secret_key=None, webhook_secret=STRIPE_WEBHOOK_SECRET)

        event = gateway.verify_webhook(self.payload, stripe_signature(self.payload))

        assert type(event) is dict
        assert event["id"] == "evt_1"
        assert event["data"]["object"]["metadata"]["booking_id"] == "b1"

    def test_signature_from_another_secret_is_rejected(self):
        gateway = StripeGateway(secret_key=None, webhook_secret=STRIPE_WEBHOOK_SECRET)

        with pytest.raises(InvalidSignature):
            gateway.verify_webhook(self.payload, stripe_signature(self.payload, "whsec_other"))

    def test_missing_signature_is_rejected(self):
        gateway = StripeGateway(secret_key=None, webhook_secret=STRIPE_WEBHOOK_SECRET)

        with pytest.raises(InvalidSignature):
            gateway.verify_webhook(self.payload, "")

    def test_unconfigured_webhook_secret(self):
        gateway = StripeGateway(secret_key="sk_test", webhook_secret=None)

        with pytest.raises(GatewayNotConfigured):
            gateway.verify_webhook(self.payload, stripe_signature(self.payload))


# === Paystack REST ===


async def test_paystack_fee_lookup_reads_verified_transaction():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, request.headers["Authorization"]))
        return httpx.Response(
            200,
            json={
                "status": True,
                "data": {
                    "id": 4099,
                    "status": "success",
                    "amount": 2000000,
                    "fees": 30000,
                    "currency": "NGN",
                },
            },
        )

    fees = await paystack_client(handler).retrieve_transaction_fees("ps_ref_1")

    assert seen == [("GET", "/transaction/verify/ps_ref_1", f"Bearer {PAYSTACK_SECRET}")]
    assert (fees.amount, fees.fee, fees.currency) == (2000000, 30000, "NGN")


async def test_paystack_fee_lookup_refuses_unsettled_transaction():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": True, "data": {"status": "abandoned"}})

    with pytest.raises(ValueError, match="not settled"):
        await paystack_client(handler).retrieve_transaction_fees("ps_ref_1")


async def test_paystack_transfer_sends_minor_units_and_reference():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "status": True,
                "data": {"status": "pending", "transfer_code": "TRF_1", "reference": "payout-1"},
            },
        )

    result = await paystack_client(handler).create_transfer(
        1700000, "ngn", "RCP_lagoon", "payout-1"
    )

    assert result.success is True
    assert result.transfer_id == "TRF_1"
    assert bodies[0]["amount"] == 1700000
    assert bodies[0]["currency"] == "NGN"
    assert bodies[0]["recipient"] == "RCP_lagoon"
    assert bodies[0]["reference"] == "payout-1"


async def test_paystack_transfer_failure_is_reported_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"status": False, "message": "Insufficient balance"})

    result = await paystack_client(handler).create_transfer(100, "NGN", "RCP_x", "payout-2")

    assert result.success is False
    assert result.reference == "payout-2"
    assert result.error_message


async def test_paystack_refund_returns_provider_id():
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["transaction"] == "ps_ref_1"
        return httpx.Response(200, json={"status": True, "data": {"id": 77}})

    result = await paystack_client(handler).process_refund("ps_ref_1", 5000, "cancellation")

    assert result.success is True
    assert result.refund_id == "77"


# === SendGrid ===


async def test_email_is_dropped_without_api_key(monkeypatch):
    monkeypatch.setattr(settings, "sendgrid_api_key", None)

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    notifier = NotificationService(httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    assert await notifier.send_email("guest@example.com", "Hi", "<p>Hi</p>") is False


async def test_email_is_posted_to_sendgrid(monkeypatch):
    monkeypatch.setattr(settings, "sendgrid_api_key", "SG.test")
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202)

    notifier = NotificationService(httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    sent = await notifier.send_email("guest@example.com", "Receipt", "<p>Paid</p>", "Paid")

    assert sent is True
    assert str(requests[0].url) == SENDGRID_URL
    body = json.loads(requests[0].content)
    assert body["personalizations"] == [{"to": [{"email": "guest@example.com"}]}]
    assert [part["type"] for part in body["content"]] == ["text/plain", "text/html"]


async def test_rejected_email_returns_false(monkeypatch):
    monkeypatch.setattr(settings, "sendgrid_api_key", "SG.test")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401)

    notifier = NotificationService(httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    assert await notifier.send_email("guest@example.com", "Hi", "<p>Hi</p>") is False
