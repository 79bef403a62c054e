"""Payment reconciliation from gateway webhooks.

Each verified gateway event goes through two phases:

1. Critical (``handle_stripe_event`` / ``handle_paystack_event``), inside the
   caller's transaction: resolve the booking, claim the event id in the
   ledger, apply the guarded booking/payout transition, update the payment.
   Any unexpected error propagates so the webhook answers 5xx, the
   transaction (including the ledger claim) rolls back and the gateway
   redelivers.
2. Best-effort (``run_follow_ups``), after commit, in fresh sessions: fee
   computation, audit log, email. Failures are logged and swallowed; the
   gateway has already been acknowledged.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stayledger.config import settings
from stayledger.core.exceptions import (
    InvalidStatusTransition,
    MissingBookingReference,
    StatusConflict,
)
from stayledger.core.idempotency import IdempotencyLedger
from stayledger.domain.booking_state import BookingStatus
from stayledger.domain.payment_state import PaymentStatus, assert_payment_transition
from stayledger.domain.payout_state import PayoutStatus
from stayledger.gateways.base import GatewayType
from stayledger.models.booking import Booking
from stayledger.models.payment import Payment
from stayledger.models.user import Realtor
from stayledger.services.audit_service import AuditService
from stayledger.services.fee_service import FeeService
from stayledger.services.gateway_service import GatewayRegistry
from stayledger.services.notification_service import NotificationService
from stayledger.services.status_guard import transition, transition_payout

logger = logging.getLogger(__name__)


class ReconcileResult(str, Enum):
    """What happened to a delivered event."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"  # no resolvable booking
    IGNORED = "ignored"  # event type not handled


class FollowUp(str, Enum):
    """Best-effort steps run after the webhook transaction commits."""

    FEES = "fees"
    AUDIT = "audit"
    RECEIPT = "receipt"


@dataclass
class ReconciliationOutcome:
    """Result of phase 1, carrying what phase 2 needs."""

    gateway: str
    event_type: str
    event_id: str
    result: ReconcileResult = ReconcileResult.IGNORED
    booking_id: UUID | None = None
    reference: str | None = None
    follow_ups: list[FollowUp] = field(default_factory=list)
    audit_action: str | None = None
    audit_details: dict[str, Any] = field(default_factory=dict)


Handler = Callable[[AsyncSession, ReconciliationOutcome, dict], Awaitable[None]]


def _metadata_booking_id(obj: dict) -> str | None:
    metadata = obj.get("metadata") or {}
    if not isinstance(metadata, dict):
        return None
    return metadata.get("booking_id") or metadata.get("bookingId")


def _payout_reference_booking_id(reference: str | None) -> str | None:
    """Booking id embedded in scheduler transfer references ("payout-<id>")."""
    if reference and reference.startswith("payout-"):
        return reference.removeprefix("payout-")
    return None


class PaymentReconciler:
    """Applies gateway payment, transfer and dispute events to bookings."""

    def __init__(
        self,
        gateways: GatewayRegistry,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: NotificationService | None = None,
        fee_service: FeeService | None = None,
        audit: AuditService | None = None,
        ledger: IdempotencyLedger | None = None,
        escrow_offset: timedelta | None = None,
    ):
        self.gateways = gateways
        self.session_factory = session_factory
        self.notifier = notifier or NotificationService()
        self.fee_service = fee_service or FeeService()
        self.audit = audit or AuditService()
        self.ledger = ledger or IdempotencyLedger()
        if escrow_offset is None:
            escrow_offset = timedelta(hours=settings.escrow_release_offset_hours)
        self.escrow_offset = escrow_offset

    # ==================== ENTRY POINTS ====================

    async def handle_stripe_event(self, db: AsyncSession, event: dict) -> ReconciliationOutcome:
        """Phase 1 for a verified Stripe event."""
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}
        outcome = ReconciliationOutcome(
            gateway=GatewayType.STRIPE.value,
            event_type=event_type,
            event_id=event.get("id", ""),
        )
        logger.info(f"Stripe event {outcome.event_id} ({event_type}) received")

        if event_type == "account.updated":
            return await self._stripe_account_updated(db, outcome, obj)

        if event_type.startswith("payment_intent."):
            outcome.reference = obj.get("id")
            lookup = Payment.stripe_payment_intent_id == outcome.reference
        elif event_type.startswith("transfer."):
            outcome.reference = obj.get("id")
            lookup = Payment.stripe_transfer_id == outcome.reference
        elif event_type == "charge.dispute.created":
            outcome.reference = obj.get("payment_intent")
            lookup = Payment.stripe_payment_intent_id == outcome.reference
        else:
            return self._ignored(outcome)

        handlers: dict[str, Handler] = {
            "payment_intent.succeeded": self._stripe_payment_succeeded,
            "payment_intent.payment_failed": self._stripe_payment_failed,
            "transfer.created": self._stripe_transfer_created,
            "transfer.paid": self._payout_released,
            "transfer.reversed": self._payout_failed,
            "charge.dispute.created": self._dispute_created,
        }
        handler = handlers.get(event_type)
        if handler is None:
            return self._ignored(outcome)

        fallback_id = _payout_reference_booking_id(obj.get("transfer_group"))
        return await self._apply(db, outcome, obj, lookup, handler, fallback_id)

    async def handle_paystack_event(self, db: AsyncSession, event: dict) -> ReconciliationOutcome:
        """Phase 1 for a verified Paystack event.

        Paystack envelopes carry no event id, so the ledger key is the
        event name joined with the transaction/transfer id.
        """
        event_type = event.get("event", "")
        data = event.get("data") or {}
        reference = data.get("reference")
        data_id = data.get("id") if data.get("id") is not None else reference
        outcome = ReconciliationOutcome(
            gateway=GatewayType.PAYSTACK.value,
            event_type=event_type,
            event_id=f"{event_type}:{data_id}",
            reference=reference,
        )
        logger.info(f"Paystack event {outcome.event_id} received")

        handlers: dict[str, Handler] = {
            "charge.success": self._paystack_charge_success,
            "charge.failed": self._paystack_charge_failed,
            "transfer.success": self._payout_released,
            "transfer.failed": self._payout_failed,
            "transfer.reversed": self._payout_failed,
        }
        handler = handlers.get(event_type)
        if handler is None:
            return self._ignored(outcome)

        if event_type.startswith("charge."):
            lookup = Payment.paystack_reference == reference
            fallback_id = None
        else:
            lookup = Payment.paystack_transfer_reference == reference
            fallback_id = _payout_reference_booking_id(reference)
        return await self._apply(db, outcome, data, lookup, handler, fallback_id)

    # ==================== PHASE 1 PLUMBING ====================

    def _ignored(self, outcome: ReconciliationOutcome) -> ReconciliationOutcome:
        logger.warning(
            f"Unhandled {outcome.gateway} event type {outcome.event_type} ({outcome.event_id})"
        )
        outcome.result = ReconcileResult.IGNORED
        return outcome

    async def _resolve_booking_id(
        self,
        db: AsyncSession,
        outcome: ReconciliationOutcome,
        obj: dict,
        lookup,
        fallback_id: str | None,
    ) -> UUID:
        """Booking id from event metadata, else from the stored gateway reference."""
        candidate = _metadata_booking_id(obj) or fallback_id
        booking_id: UUID | None = None
        if candidate:
            try:
                booking_id = UUID(str(candidate))
            except ValueError:
                booking_id = None

        if booking_id is None and outcome.reference:
            booking_id = await db.scalar(select(Payment.booking_id).where(lookup))

        if booking_id is None or await db.get(Booking, booking_id) is None:
            raise MissingBookingReference(outcome.event_type, outcome.event_id)
        return booking_id

    async def _apply(
        self,
        db: AsyncSession,
        outcome: ReconciliationOutcome,
        obj: dict,
        lookup,
        handler: Handler,
        fallback_id: str | None = None,
    ) -> ReconciliationOutcome:
        try:
            outcome.booking_id = await self._resolve_booking_id(
                db, outcome, obj, lookup, fallback_id
            )
        except MissingBookingReference as e:
            logger.warning(f"{e}, acknowledging without changes")
            outcome.result = ReconcileResult.SKIPPED
            return outcome

        claimed = await self.ledger.claim(
            db, outcome.event_id, outcome.booking_id, outcome.gateway, outcome.event_type
        )
        if not claimed:
            outcome.result = ReconcileResult.DUPLICATE
            return outcome

        await handler(db, outcome, obj)
        await db.flush()

        outcome.result = ReconcileResult.APPLIED
        logger.info(
            f"{outcome.gateway} event {outcome.event_id} applied to booking {outcome.booking_id}"
        )
        return outcome

    async def _guarded(self, coro: Awaitable[Booking]) -> Booking | None:
        """Run a guard transition; a lost race is logged and tolerated."""
        try:
            return await coro
        except StatusConflict as e:
            logger.warning(f"Status conflict, continuing: {e}")
            return None

    async def _payment_for(self, db: AsyncSession, booking_id: UUID) -> Payment | None:
        payment = await db.scalar(select(Payment).where(Payment.booking_id == booking_id))
        if payment is None:
            logger.warning(f"Booking {booking_id} has no payment record")
        return payment

    def _set_payment_status(self, payment: Payment, target: PaymentStatus) -> bool:
        """Write payment status unless it would undo a later, legitimate state."""
        if payment.status == target.value:
            return True
        try:
            assert_payment_transition(payment.status, target.value)
        except InvalidStatusTransition:
            logger.warning(
                f"Payment {payment.id} is {payment.status}, not moving to {target.value}"
            )
            return False
        payment.status = target.value
        return True

    # ==================== PAYMENT OUTCOMES ====================

    async def _confirm(
        self,
        db: AsyncSession,
        outcome: ReconciliationOutcome,
        identifiers: dict[str, Any],
        gateway_response: dict[str, Any],
    ) -> None:
        now = datetime.now(UTC)
        await self._guarded(
            transition(
                db,
                outcome.booking_id,
                BookingStatus.PENDING,
                BookingStatus.CONFIRMED,
                {"confirmed_at": now, "payout_release_date": now + self.escrow_offset},
            )
        )

        payment = await self._payment_for(db, outcome.booking_id)
        if payment is not None:
            self._set_payment_status(payment, PaymentStatus.COMPLETED)
            for name, value in identifiers.items():
                setattr(payment, name, value)
            if payment.completed_at is None:
                payment.completed_at = now
            payment.gateway_response = gateway_response

        outcome.follow_ups = [FollowUp.FEES, FollowUp.AUDIT, FollowUp.RECEIPT]
        outcome.audit_action = "payment_completed"

    async def _fail(
        self,
        db: AsyncSession,
        outcome: ReconciliationOutcome,
        identifiers: dict[str, Any],
        gateway_response: dict[str, Any],
    ) -> None:
        await self._guarded(
            transition(
                db,
                outcome.booking_id,
                BookingStatus.PENDING,
                BookingStatus.CANCELLED,
                {"cancelled_at": datetime.now(UTC)},
            )
        )

        payment = await self._payment_for(db, outcome.booking_id)
        if payment is not None:
            applied = self._set_payment_status(payment, PaymentStatus.FAILED)
            for name, value in identifiers.items():
                setattr(payment, name, value)
            if applied:
                payment.gateway_response = gateway_response

        outcome.follow_ups = [FollowUp.AUDIT]
        outcome.audit_action = "payment_failed"

    async def _stripe_payment_succeeded(
        self, db: AsyncSession, outcome: ReconciliationOutcome, intent: dict
    ) -> None:
        await self._confirm(
            db,
            outcome,
            {"stripe_payment_intent_id": intent.get("id")},
            {
                "event_id": outcome.event_id,
                "status": intent.get("status"),
                "amount_received": intent.get("amount_received"),
            },
        )

    async def _stripe_payment_failed(
        self, db: AsyncSession, outcome: ReconciliationOutcome, intent: dict
    ) -> None:
        error = intent.get("last_payment_error") or {}
        await self._fail(
            db,
            outcome,
            {"stripe_payment_intent_id": intent.get("id")},
            {"event_id": outcome.event_id, "error": error.get("message")},
        )

    async def _paystack_charge_success(
        self, db: AsyncSession, outcome: ReconciliationOutcome, data: dict
    ) -> None:
        await self._confirm(
            db,
            outcome,
            {"paystack_reference": data.get("reference")},
            {
                "event_id": outcome.event_id,
                "status": data.get("status"),
                "amount": data.get("amount"),
                "channel": data.get("channel"),
            },
        )

    async def _paystack_charge_failed(
        self, db: AsyncSession, outcome: ReconciliationOutcome, data: dict
    ) -> None:
        await self._fail(
            db,
            outcome,
            {"paystack_reference": data.get("reference")},
            {"event_id": outcome.event_id, "gateway_response": data.get("gateway_response")},
        )

    # ==================== TRANSFERS ====================

    async def _stripe_transfer_created(
        self, db: AsyncSession, outcome: ReconciliationOutcome, transfer: dict
    ) -> None:
        payment = await self._payment_for(db, outcome.booking_id)
        if payment is not None:
            payment.stripe_transfer_id = transfer.get("id")

        outcome.follow_ups = [FollowUp.AUDIT]
        outcome.audit_action = "payout_transfer_created"
        outcome.audit_details = {"transfer_id": transfer.get("id")}

    async def _payout_released(
        self, db: AsyncSession, outcome: ReconciliationOutcome, transfer: dict
    ) -> None:
        """Gateway confirms the realtor's share arrived."""
        now = datetime.now(UTC)
        await self._guarded(
            transition_payout(db, outcome.booking_id, PayoutStatus.PENDING, PayoutStatus.RELEASED)
        )

        payment = await self._payment_for(db, outcome.booking_id)
        if payment is not None:
            if outcome.gateway == GatewayType.STRIPE.value:
                payment.stripe_transfer_id = transfer.get("id")
            else:
                payment.paystack_transfer_reference = transfer.get("reference")
            if not payment.payout_released:
                payment.payout_released = True
                payment.payout_released_at = now

        outcome.follow_ups = [FollowUp.AUDIT]
        outcome.audit_action = "payout_released"

    async def _payout_failed(
        self, db: AsyncSession, outcome: ReconciliationOutcome, transfer: dict
    ) -> None:
        """Transfer failed or was reversed after the fact."""
        reason = f"{outcome.gateway} {outcome.event_type}"
        booking = await db.get(Booking, outcome.booking_id)
        current = booking.payout_status
        if current != PayoutStatus.FAILED.value:
            await self._guarded(
                transition_payout(
                    db,
                    outcome.booking_id,
                    current,
                    PayoutStatus.FAILED,
                    {"payout_failure_reason": reason},
                )
            )

        payment = await self._payment_for(db, outcome.booking_id)
        if payment is not None:
            payment.payout_released = False
            payment.payout_released_at = None

        outcome.follow_ups = [FollowUp.AUDIT]
        outcome.audit_action = "payout_failed"
        outcome.audit_details = {"previous_payout_status": current, "reason": reason}

    # ==================== DISPUTES ====================

    async def _dispute_created(
        self, db: AsyncSession, outcome: ReconciliationOutcome, dispute: dict
    ) -> None:
        """Chargeback: cancel the booking and hold the payout, whatever the release date."""
        booking = await db.get(Booking, outcome.booking_id)
        booking_status = booking.status
        payout_status = booking.payout_status

        if booking_status in (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value):
            await self._guarded(
                transition(
                    db,
                    outcome.booking_id,
                    booking_status,
                    BookingStatus.CANCELLED,
                    {"cancelled_at": datetime.now(UTC)},
                )
            )
        else:
            logger.warning(
                f"Dispute {dispute.get('id')} on booking {outcome.booking_id} in {booking_status}"
            )

        if payout_status != PayoutStatus.FAILED.value:
            await self._guarded(
                transition_payout(
                    db,
                    outcome.booking_id,
                    payout_status,
                    PayoutStatus.FAILED,
                    {"payout_failure_reason": f"dispute {dispute.get('id')}"},
                )
            )

        outcome.follow_ups = [FollowUp.AUDIT]
        outcome.audit_action = "dispute_opened"
        outcome.audit_details = {
            "dispute_id": dispute.get("id"),
            "reason": dispute.get("reason"),
            "amount": dispute.get("amount"),
        }

    # ==================== CONNECTED ACCOUNTS ====================

    async def _stripe_account_updated(
        self, db: AsyncSession, outcome: ReconciliationOutcome, account: dict
    ) -> ReconciliationOutcome:
        """Mirror connected-account capabilities onto the realtor. No booking, no dedup."""
        realtor = await db.scalar(
            select(Realtor).where(Realtor.stripe_account_id == account.get("id"))
        )
        if realtor is None:
            logger.warning(f"account.updated for unknown Stripe account {account.get('id')}")
            outcome.result = ReconcileResult.SKIPPED
            return outcome

        realtor.stripe_charges_enabled = bool(account.get("charges_enabled"))
        realtor.stripe_payouts_enabled = bool(account.get("payouts_enabled"))
        realtor.stripe_details_submitted = bool(account.get("details_submitted"))
        await db.flush()

        outcome.result = ReconcileResult.APPLIED
        logger.info(f"Realtor {realtor.id} Stripe capabilities updated")
        return outcome

    # ==================== PHASE 2 ====================

    async def run_follow_ups(self, outcome: ReconciliationOutcome) -> None:
        """Best-effort side effects. Never raises."""
        if outcome.result != ReconcileResult.APPLIED or outcome.booking_id is None:
            return

        steps = {
            FollowUp.FEES: self._compute_fees,
            FollowUp.AUDIT: self._write_audit,
            FollowUp.RECEIPT: self._send_receipt,
        }
        for follow_up in outcome.follow_ups:
            try:
                async with self.session_factory() as db:
                    await steps[follow_up](db, outcome)
                    await db.commit()
            except Exception as e:
                logger.warning(
                    f"{follow_up.value} failed for booking {outcome.booking_id} "
                    f"(event {outcome.event_id}): {e}"
                )

    async def _compute_fees(self, db: AsyncSession, outcome: ReconciliationOutcome) -> None:
        if not outcome.reference:
            logger.warning(f"No charge reference on event {outcome.event_id}, skipping fees")
            return
        gateway = self.gateways.get(outcome.gateway)
        await self.fee_service.compute_gateway_fee(
            db, outcome.booking_id, outcome.reference, gateway
        )

    async def _write_audit(self, db: AsyncSession, outcome: ReconciliationOutcome) -> None:
        await self.audit.log_gateway_event(
            db,
            action=outcome.audit_action or outcome.event_type,
            booking_id=outcome.booking_id,
            gateway=outcome.gateway,
            event_id=outcome.event_id,
            event_type=outcome.event_type,
            extra=outcome.audit_details,
        )

    async def _send_receipt(self, db: AsyncSession, outcome: ReconciliationOutcome) -> None:
        sent = await self.notifier.send_payment_receipt(db, outcome.booking_id)
        if not sent:
            logger.warning(f"Receipt for booking {outcome.booking_id} was not sent")
