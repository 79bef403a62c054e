"""Pytest configuration and fixtures for StayLedger tests.

This module provides reusable fixtures for testing:
- In-memory SQLite database (aiosqlite) with the full schema
- Seeded users, realtors, properties, bookings and payments
- Fake gateway and notifier doubles injected through constructors
"""

import hashlib
import hmac
import json
import time
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import stayledger.models  # noqa: F401
from stayledger.database import Base
from stayledger.domain.booking_state import BookingStatus
from stayledger.domain.payment_state import PaymentStatus
from stayledger.domain.payout_state import PayoutStatus
from stayledger.gateways.base import (
    AccountStatus,
    GatewayType,
    PaymentGateway,
    RefundResult,
    TransactionFees,
    TransferResult,
)
from stayledger.models.booking import Booking
from stayledger.models.payment import Payment
from stayledger.models.property import Property
from stayledger.models.user import Realtor, User
from stayledger.services.gateway_service import GatewayRegistry
from stayledger.services.notification_service import NotificationService


# === Helpers ===


def utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything is stored in UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


async def reload(session_factory, model, ident: UUID):
    """Read a row back through a fresh session."""
    async with session_factory() as session:
        return await session.get(model, ident)


async def payment_for(session_factory, booking_id: UUID) -> Payment:
    async with session_factory() as session:
        return await session.scalar(select(Payment).where(Payment.booking_id == booking_id))


def stripe_event(event_id: str, event_type: str, obj: dict[str, Any]) -> dict[str, Any]:
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def paystack_event(event: str, data: dict[str, Any]) -> dict[str, Any]:
    return {"event": event, "data": data}


PAYSTACK_SECRET = "sk_test_paystack"
STRIPE_WEBHOOK_SECRET = "whsec_test"


def paystack_signature(payload: bytes, secret: str = PAYSTACK_SECRET) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha512).hexdigest()


def stripe_signature(payload: bytes, secret: str = STRIPE_WEBHOOK_SECRET) -> str:
    """Stripe-Signature header: HMAC-SHA256 over "{timestamp}.{body}"."""
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


# === Doubles ===


class FakeGateway(PaymentGateway):
    """Records calls instead of talking to a processor."""

    def __init__(self, gateway_type: GatewayType, fee: int = 150, currency: str = "usd"):
        self._type = gateway_type
        self.fee = fee
        self.currency = currency
        self.fee_calls: list[str] = []
        self.transfers: list[dict[str, Any]] = []
        self.refunds: list[dict[str, Any]] = []
        self.fail_references: set[str] = set()
        self.refund_succeeds = True
        self.accounts: list[str] = []
        self.link_error: Exception | None = None

    @property
    def gateway_type(self) -> GatewayType:
        return self._type

    @property
    def signature_header(self) -> str:
        return "x-test-signature"

    def verify_webhook(self, payload: bytes, signature: str | None) -> dict:
        return json.loads(payload)

    async def retrieve_transaction_fees(self, reference: str) -> TransactionFees:
        self.fee_calls.append(reference)
        return TransactionFees(amount=20000, fee=self.fee, currency=self.currency)

    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        reference: str,
        metadata: dict | None = None,
    ) -> TransferResult:
        if reference in self.fail_references:
            raise RuntimeError("gateway timeout")
        self.transfers.append(
            {"amount": amount, "currency": currency, "destination": destination, "reference": reference}
        )
        return TransferResult(success=True, transfer_id=f"tr_{len(self.transfers)}", reference=reference)

    async def process_refund(self, transaction_id: str, amount: int, reason: str) -> RefundResult:
        self.refunds.append({"transaction_id": transaction_id, "amount": amount, "reason": reason})
        if not self.refund_succeeds:
            return RefundResult(success=False, error_message="card issuer declined")
        return RefundResult(success=True, refund_id=f"re_{len(self.refunds)}")

    async def create_account(self, email: str, country: str = "US") -> str:
        self.accounts.append(email)
        return f"acct_{len(self.accounts)}"

    async def create_account_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        if self.link_error is not None:
            raise self.link_error
        return f"https://connect.example/setup/{account_id}"

    async def create_dashboard_link(self, account_id: str) -> str:
        return f"https://connect.example/express/{account_id}"

    async def retrieve_account_status(self, account_id: str) -> AccountStatus:
        return AccountStatus(
            account_id=account_id,
            charges_enabled=True,
            payouts_enabled=True,
            details_submitted=True,
        )


class FakeNotifier(NotificationService):
    """Collects notifications; optionally fails to exercise best-effort paths."""

    def __init__(self) -> None:
        super().__init__()
        self.receipts: list[UUID] = []
        self.payout_notices: list[UUID] = []
        self.refund_updates: list[tuple[UUID, str]] = []
        self.fail = False

    async def send_payment_receipt(self, db, booking_id: UUID) -> bool:
        if self.fail:
            raise RuntimeError("smtp down")
        self.receipts.append(booking_id)
        return True

    async def send_payout_notice(self, db, booking_id: UUID) -> bool:
        if self.fail:
            raise RuntimeError("smtp down")
        self.payout_notices.append(booking_id)
        return True

    async def send_refund_update(self, db, request_id: UUID, notification_type: str) -> bool:
        self.refund_updates.append((request_id, notification_type))
        return True


# === Database ===


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# === Gateways ===


@pytest.fixture
def stripe_gateway() -> FakeGateway:
    return FakeGateway(GatewayType.STRIPE)


@pytest.fixture
def paystack_gateway() -> FakeGateway:
    return FakeGateway(GatewayType.PAYSTACK, currency="NGN")


@pytest.fixture
def gateways(stripe_gateway, paystack_gateway) -> GatewayRegistry:
    return GatewayRegistry(
        {GatewayType.STRIPE: stripe_gateway, GatewayType.PAYSTACK: paystack_gateway}
    )


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


# === Seed data ===


@pytest.fixture
async def guest(db) -> User:
    user = User(email="guest@example.com", first_name="Ada", last_name="Obi", role="guest")
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def other_guest(db) -> User:
    user = User(email="someone@example.com", first_name="Tom", role="guest")
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def admin(db) -> User:
    user = User(email="ops@stayledger.app", first_name="Ops", role="admin")
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def realtor_user(db) -> User:
    user = User(email="host@example.com", first_name="Kemi", role="realtor")
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def realtor(db, realtor_user) -> Realtor:
    realtor = Realtor(
        user_id=realtor_user.id,
        business_name="Lagoon Stays",
        stripe_account_id="acct_lagoon",
        stripe_payouts_enabled=True,
        paystack_subaccount_code="ACCT_lagoon",
    )
    db.add(realtor)
    await db.commit()
    return realtor


@pytest.fixture
async def listing(db, realtor) -> Property:
    prop = Property(realtor_id=realtor.id, title="Beach House")
    db.add(prop)
    await db.commit()
    return prop


@pytest.fixture
async def unconnected_listing(db) -> Property:
    """Property whose realtor never connected a payout account."""
    user = User(email="new-host@example.com", role="realtor")
    db.add(user)
    await db.flush()
    realtor = Realtor(user_id=user.id, business_name="New Host")
    db.add(realtor)
    await db.flush()
    prop = Property(realtor_id=realtor.id, title="Cabin")
    db.add(prop)
    await db.commit()
    return prop


@pytest.fixture
def make_booking(db, listing, guest):
    """Factory for a booking with its payment.

    Returns (booking, payment). Stripe payments get a payment intent id,
    Paystack payments a transaction reference.
    """

    async def _make(
        gateway: str = "stripe",
        status: BookingStatus = BookingStatus.PENDING,
        payout_status: PayoutStatus = PayoutStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        release_date: datetime | None = None,
        amount: Decimal = Decimal("200.00"),
        realtor_payout_amount: Decimal = Decimal("170.00"),
        currency: str = "USD",
        prop: Property | None = None,
    ) -> tuple[Booking, Payment]:
        booking = Booking(
            property_id=(prop or listing).id,
            guest_id=guest.id,
            check_in=date(2026, 11, 1),
            check_out=date(2026, 11, 4),
            status=status.value,
            payout_status=payout_status.value,
            payout_release_date=release_date,
            realtor_payout_amount=realtor_payout_amount,
            currency=currency,
        )
        db.add(booking)
        await db.flush()

        payment = Payment(
            booking_id=booking.id,
            amount=amount,
            currency=currency,
            status=payment_status.value,
            gateway=gateway,
            service_fee_amount=Decimal("20.00"),
            platform_commission=Decimal("10.00"),
        )
        if gateway == GatewayType.STRIPE.value:
            payment.stripe_payment_intent_id = f"pi_{booking.id.hex[:16]}"
        else:
            payment.paystack_reference = f"ps_{booking.id.hex[:16]}"
        db.add(payment)
        await db.commit()
        return booking, payment

    return _make
