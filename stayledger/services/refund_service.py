"""Refund request workflow.

Guest requests → realtor approves or rejects → admin processes through the
gateway. The refund ceiling (payment.amount - payment.refund_amount) is
checked when the request is made and again when the admin processes it,
because other refunds may have completed in between.
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from stayledger.core.exceptions import (
    AuthorizationError,
    ExternalServiceError,
    NotFoundError,
    RefundAmountExceeded,
    RefundRequestConflict,
    ValidationError,
)
from stayledger.domain.payment_state import PaymentStatus
from stayledger.domain.refund_state import (
    OPEN_REFUND_STATUSES,
    RefundRequestStatus,
    assert_refund_transition,
)
from stayledger.gateways.base import GatewayType
from stayledger.models.booking import Booking
from stayledger.models.payment import Payment
from stayledger.models.refund import RefundAuditEntry, RefundRequest
from stayledger.models.user import Realtor, User
from stayledger.services.audit_service import AuditService
from stayledger.services.fee_service import major_to_minor, quantize_money
from stayledger.services.gateway_service import GatewayRegistry
from stayledger.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def _check_ceiling(payment: Payment, amount: Decimal) -> None:
    available = quantize_money(payment.refundable_amount)
    if amount > available:
        raise RefundAmountExceeded(payment.currency, available)


class RefundService:
    """Refund request lifecycle."""

    def __init__(
        self,
        gateways: GatewayRegistry,
        notifier: NotificationService | None = None,
        audit: AuditService | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        self.gateways = gateways
        self.notifier = notifier or NotificationService()
        self.audit = audit or AuditService()
        self.session_factory = session_factory

    async def notify(self, request_id: UUID, notification_type: str) -> None:
        """Best-effort email after the request's transaction committed."""
        if self.session_factory is None:
            return
        try:
            async with self.session_factory() as db:
                await self.notifier.send_refund_update(db, request_id, notification_type)
        except Exception as e:
            logger.warning(f"Refund notification for {request_id} failed: {e}")

    async def _open_request_for(self, db: AsyncSession, booking_id: UUID) -> UUID | None:
        return await db.scalar(
            select(RefundRequest.id).where(
                RefundRequest.booking_id == booking_id,
                RefundRequest.status.in_([s.value for s in OPEN_REFUND_STATUSES]),
            )
        )

    async def _realtor_for(self, db: AsyncSession, user: User) -> Realtor:
        realtor = await db.scalar(select(Realtor).where(Realtor.user_id == user.id))
        if realtor is None:
            raise NotFoundError("Realtor profile")
        return realtor

    # ==================== GUEST ====================

    async def request_refund(
        self,
        db: AsyncSession,
        user: User,
        booking_id: UUID,
        amount: Decimal,
        reason: str,
        notes: str | None = None,
        payment_id: UUID | None = None,
    ) -> RefundRequest:
        """Open a refund request on the guest's own booking.

        Raises:
            NotFoundError: Booking not found, not the guest's, or has no payment
            ValidationError: Payment not completed or amount not positive
            RefundAmountExceeded: Amount above what is left to refund
            RefundRequestConflict: Another request is still open
        """
        booking = await db.scalar(
            select(Booking)
            .where(Booking.id == booking_id, Booking.guest_id == user.id)
            .options(selectinload(Booking.payment), selectinload(Booking.property))
        )
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))

        payment = booking.payment
        if payment is None or (payment_id is not None and payment.id != payment_id):
            raise NotFoundError("Payment")
        if payment.status != PaymentStatus.COMPLETED.value:
            raise ValidationError("Can only refund completed payments")

        amount = quantize_money(amount)
        if amount <= 0:
            raise ValidationError("Refund amount must be positive")
        _check_ceiling(payment, amount)

        if await self._open_request_for(db, booking.id) is not None:
            raise RefundRequestConflict()

        refund = RefundRequest(
            booking_id=booking.id,
            payment_id=payment.id,
            requested_by=user.id,
            realtor_id=booking.property.realtor_id,
            requested_amount=amount,
            currency=payment.currency,
            reason=reason,
            customer_notes=notes,
            status=RefundRequestStatus.PENDING_REALTOR_APPROVAL.value,
        )
        db.add(refund)
        try:
            await db.flush()
        except IntegrityError:
            # Lost the race against a concurrent request for the same booking
            logger.warning(f"Concurrent refund request for booking {booking.id} rejected")
            raise RefundRequestConflict()

        await self.audit.log_refund_action(
            db, user.id, "refund_requested", refund.id, payment.id, amount, refund.status
        )
        logger.info(f"Refund request {refund.id} opened for booking {booking.id}: {amount}")
        return refund

    # ==================== REALTOR ====================

    async def realtor_decision(
        self,
        db: AsyncSession,
        user: User,
        request_id: UUID,
        approved: bool,
        reason: str | None = None,
        notes: str | None = None,
    ) -> RefundRequest:
        """Approve or reject a pending request on one of the realtor's properties."""
        realtor = await self._realtor_for(db, user)
        refund = await db.scalar(
            select(RefundRequest).where(
                RefundRequest.id == request_id,
                RefundRequest.realtor_id == realtor.id,
            )
        )
        if refund is None:
            raise NotFoundError("Refund request", str(request_id))

        target = (
            RefundRequestStatus.REALTOR_APPROVED
            if approved
            else RefundRequestStatus.REALTOR_REJECTED
        )
        assert_refund_transition(refund.status, target.value)

        refund.status = target.value
        refund.realtor_decided_at = datetime.now(UTC)
        refund.realtor_reason = reason
        refund.realtor_notes = notes
        await db.flush()

        await self.audit.log_refund_action(
            db,
            user.id,
            "refund_realtor_decision",
            refund.id,
            refund.payment_id,
            refund.requested_amount,
            refund.status,
        )
        logger.info(f"Refund request {refund.id} {refund.status} by realtor {realtor.id}")
        return refund

    # ==================== ADMIN ====================

    async def process_refund(
        self,
        db: AsyncSession,
        admin: User,
        request_id: UUID,
        actual_amount: Decimal | None = None,
        notes: str | None = None,
    ) -> RefundRequest:
        """Send an approved refund to the gateway and record it.

        Raises:
            NotFoundError: Unknown request
            InvalidStatusTransition: Request is not REALTOR_APPROVED
            RefundAmountExceeded: Final amount above what is left (nothing changed)
            ExternalServiceError: Gateway refused the refund. The request is
                committed back to REALTOR_APPROVED with the gateway message in
                admin_notes before this is raised.
        """
        refund = await db.scalar(
            select(RefundRequest)
            .where(RefundRequest.id == request_id)
            .options(selectinload(RefundRequest.payment))
        )
        if refund is None:
            raise NotFoundError("Refund request", str(request_id))
        assert_refund_transition(refund.status, RefundRequestStatus.ADMIN_PROCESSING.value)

        payment = refund.payment
        final_amount = quantize_money(
            actual_amount if actual_amount is not None else refund.requested_amount
        )
        if final_amount <= 0:
            raise ValidationError("Refund amount must be positive")
        _check_ceiling(payment, final_amount)

        # Claim the request so two admins cannot both send it to the gateway
        result = await db.execute(
            update(RefundRequest)
            .where(
                RefundRequest.id == refund.id,
                RefundRequest.status == RefundRequestStatus.REALTOR_APPROVED.value,
            )
            .values(status=RefundRequestStatus.ADMIN_PROCESSING.value, admin_id=admin.id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise RefundRequestConflict("Refund request is already being processed")
        await db.refresh(refund, ["status", "admin_id"])

        gateway = self.gateways.get(payment.gateway)
        transaction_id = (
            payment.stripe_payment_intent_id
            if payment.gateway == GatewayType.STRIPE.value
            else payment.paystack_reference
        )
        refund_result = await gateway.process_refund(
            transaction_id=transaction_id,
            amount=major_to_minor(final_amount, gateway.divisor_for(payment.currency)),
            reason=refund.reason,
        )
        if not refund_result.success:
            assert_refund_transition(refund.status, RefundRequestStatus.REALTOR_APPROVED.value)
            refund.status = RefundRequestStatus.REALTOR_APPROVED.value
            refund.admin_notes = f"Gateway refund failed: {refund_result.error_message}"
            await self.audit.log_refund_action(
                db, admin.id, "refund_failed", refund.id, payment.id, final_amount, refund.status
            )
            # Committed here: the caller rolls back on the error raised below
            await db.commit()
            logger.error(f"Gateway refund for request {refund.id} failed: {refund_result.error_message}")
            raise ExternalServiceError(payment.gateway, refund_result.error_message)

        now = datetime.now(UTC)
        payment.refund_amount = quantize_money(Decimal(payment.refund_amount or 0) + final_amount)
        payment.refunded_at = now
        if payment.refund_amount >= Decimal(payment.amount):
            payment.status = PaymentStatus.REFUNDED.value

        db.add(
            RefundAuditEntry(
                payment_id=payment.id,
                refund_request_id=refund.id,
                amount=final_amount,
                processed_by=admin.id,
                reason=refund.reason,
                provider_refund_id=refund_result.refund_id,
            )
        )

        assert_refund_transition(refund.status, RefundRequestStatus.COMPLETED.value)
        refund.status = RefundRequestStatus.COMPLETED.value
        refund.admin_processed_at = now
        refund.admin_notes = notes
        refund.actual_refund_amount = final_amount
        refund.provider_refund_id = refund_result.refund_id
        refund.completed_at = now
        await db.flush()

        await self.audit.log_refund_action(
            db, admin.id, "refund_processed", refund.id, payment.id, final_amount, refund.status
        )
        logger.info(
            f"Refund request {refund.id} completed: {final_amount} {payment.currency} "
            f"(payment {payment.id} now refunded {payment.refund_amount})"
        )
        return refund

    # ==================== QUERIES ====================

    async def get_refund_request(
        self,
        db: AsyncSession,
        user: User,
        request_id: UUID,
    ) -> RefundRequest:
        """Fetch a request visible to the guest, its realtor or an admin."""
        refund = await db.scalar(
            select(RefundRequest)
            .where(RefundRequest.id == request_id)
            .options(selectinload(RefundRequest.realtor))
        )
        if refund is None:
            raise NotFoundError("Refund request", str(request_id))

        can_view = (
            user.role == "admin"
            or refund.requested_by == user.id
            or refund.realtor.user_id == user.id
        )
        if not can_view:
            raise AuthorizationError("Unauthorized to view this refund request")
        return refund

    async def list_for_realtor(
        self,
        db: AsyncSession,
        user: User,
        status: RefundRequestStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[RefundRequest]:
        realtor = await self._realtor_for(db, user)
        query = select(RefundRequest).where(RefundRequest.realtor_id == realtor.id)
        if status:
            query = query.where(RefundRequest.status == RefundRequestStatus(status).value)
        result = await db.execute(
            query.order_by(RefundRequest.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    async def list_for_admin(
        self,
        db: AsyncSession,
        status: RefundRequestStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[RefundRequest]:
        """Requests awaiting admin processing unless another status is asked for."""
        status = RefundRequestStatus(status or RefundRequestStatus.REALTOR_APPROVED)
        result = await db.execute(
            select(RefundRequest)
            .where(RefundRequest.status == status.value)
            .order_by(RefundRequest.created_at)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())


async def refunds_for_payment(db: AsyncSession, payment_id: UUID) -> list[RefundAuditEntry]:
    """Refund audit trail of a payment, oldest first."""
    result = await db.execute(
        select(RefundAuditEntry)
        .where(RefundAuditEntry.payment_id == payment_id)
        .order_by(RefundAuditEntry.created_at)
    )
    return list(result.scalars().all())
