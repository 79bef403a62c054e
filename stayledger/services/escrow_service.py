"""Escrow release: pay realtors once the hold window has passed.

Funds for a confirmed booking stay with the platform until
``payout_release_date``. Each scheduler tick releases every due payout,
one booking per transaction, so a failing booking never blocks the others.
FAILED payouts are never retried automatically; an admin re-queues them.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from stayledger.core.exceptions import NotFoundError, PayoutError, StatusConflict
from stayledger.domain.booking_state import BookingStatus
from stayledger.domain.payout_state import PayoutStatus, can_release_payout
from stayledger.gateways.base import GatewayType
from stayledger.models.booking import Booking
from stayledger.models.property import Property
from stayledger.models.user import User
from stayledger.services.audit_service import AuditService
from stayledger.services.fee_service import major_to_minor
from stayledger.services.gateway_service import GatewayRegistry
from stayledger.services.notification_service import NotificationService
from stayledger.services.status_guard import transition_payout

logger = logging.getLogger(__name__)


@dataclass
class PayoutRunSummary:
    """What one scheduler tick did."""

    started_at: datetime
    eligible: int = 0
    released: list[UUID] = field(default_factory=list)
    failed: dict[UUID, str] = field(default_factory=dict)
    skipped: list[UUID] = field(default_factory=list)


class EscrowReleaseScheduler:
    """Releases realtor payouts whose escrow window has elapsed."""

    def __init__(
        self,
        gateways: GatewayRegistry,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: NotificationService | None = None,
        audit: AuditService | None = None,
    ):
        self.gateways = gateways
        self.session_factory = session_factory
        self.notifier = notifier or NotificationService()
        self.audit = audit or AuditService()

    async def find_due_bookings(self, db: AsyncSession, now: datetime) -> list[UUID]:
        result = await db.execute(
            select(Booking.id)
            .where(
                Booking.status == BookingStatus.CONFIRMED.value,
                Booking.payout_status == PayoutStatus.PENDING.value,
                Booking.payout_release_date <= now,
            )
            .order_by(Booking.payout_release_date)
        )
        return list(result.scalars().all())

    async def release_due_payouts(self, now: datetime | None = None) -> PayoutRunSummary:
        """Run one tick: release every due payout, isolating failures per booking."""
        now = now or datetime.now(UTC)
        summary = PayoutRunSummary(started_at=now)

        async with self.session_factory() as db:
            booking_ids = await self.find_due_bookings(db, now)
        summary.eligible = len(booking_ids)
        logger.info(f"Escrow release: {len(booking_ids)} bookings due")

        for booking_id in booking_ids:
            try:
                released = await self.release_payout(booking_id, now)
            except Exception as e:
                logger.error(f"Payout for booking {booking_id} failed: {e}")
                summary.failed[booking_id] = str(e)
                await self._mark_failed(booking_id, str(e))
                continue

            if not released:
                summary.skipped.append(booking_id)
                continue
            summary.released.append(booking_id)
            await self._after_release(booking_id)

        logger.info(
            f"Escrow release finished: {len(summary.released)} released, "
            f"{len(summary.failed)} failed, {len(summary.skipped)} skipped"
        )
        return summary

    async def release_payout(self, booking_id: UUID, now: datetime | None = None) -> bool:
        """Release one booking's payout in its own transaction.

        Returns:
            True if released, False if the booking is no longer eligible

        Raises:
            PayoutError: If no payout route exists or the transfer was refused
        """
        now = now or datetime.now(UTC)
        async with self.session_factory() as db:
            booking = await db.scalar(
                select(Booking)
                .where(Booking.id == booking_id)
                .options(
                    selectinload(Booking.payment),
                    selectinload(Booking.property).selectinload(Property.realtor),
                )
            )
            if booking is None:
                raise NotFoundError("Booking", str(booking_id))

            can_release, error = can_release_payout(booking.status, booking.payout_status)
            if not can_release:
                logger.info(f"Skipping booking {booking_id}: {error}")
                return False

            payment = booking.payment
            if payment is None:
                raise PayoutError("booking has no payment record")
            realtor = booking.property.realtor

            if payment.gateway == GatewayType.STRIPE.value and realtor.stripe_account_id:
                gateway = self.gateways.get(GatewayType.STRIPE)
                result = await gateway.create_transfer(
                    amount=major_to_minor(
                        booking.realtor_payout_amount, gateway.divisor_for(booking.currency)
                    ),
                    currency=booking.currency,
                    destination=realtor.stripe_account_id,
                    reference=f"payout-{booking.id}",
                    metadata={"booking_id": str(booking.id)},
                )
                if not result.success:
                    raise PayoutError(result.error_message or "transfer was not created")
                payment.stripe_transfer_id = result.transfer_id
            elif payment.gateway == GatewayType.PAYSTACK.value and realtor.paystack_subaccount_code:
                # Split payment: Paystack already settled the realtor's share
                pass
            else:
                raise PayoutError("no connected payout account")

            try:
                await transition_payout(
                    db,
                    booking.id,
                    PayoutStatus.PENDING,
                    PayoutStatus.RELEASED,
                    {"payout_failure_reason": None},
                )
            except StatusConflict as e:
                if e.actual != PayoutStatus.RELEASED.value:
                    raise
                # transfer.paid arrived while the transfer call was in flight
                await db.rollback()
                logger.info(f"Payout for booking {booking_id} already released by webhook")
                return False
            payment.payout_released = True
            payment.payout_released_at = now
            await db.commit()

        logger.info(f"Payout released for booking {booking_id}")
        return True

    async def _mark_failed(self, booking_id: UUID, reason: str) -> None:
        """Record the failure in a fresh transaction; never raises."""
        try:
            async with self.session_factory() as db:
                try:
                    await transition_payout(
                        db,
                        booking_id,
                        PayoutStatus.PENDING,
                        PayoutStatus.FAILED,
                        {"payout_failure_reason": reason[:1000]},
                    )
                except StatusConflict as e:
                    logger.warning(f"Not marking payout failed: {e}")
                    return
                await self.audit.log_payout_action(
                    db,
                    actor_id=None,
                    action="payout_failed",
                    booking_id=booking_id,
                    old_status=PayoutStatus.PENDING.value,
                    new_status=PayoutStatus.FAILED.value,
                    reason=reason,
                )
                await db.commit()
        except Exception as e:
            logger.error(f"Could not record payout failure for booking {booking_id}: {e}")

    async def _after_release(self, booking_id: UUID) -> None:
        """Audit and notify after a release; best-effort."""
        try:
            async with self.session_factory() as db:
                booking = await db.get(Booking, booking_id)
                await self.audit.log_payout_action(
                    db,
                    actor_id=None,
                    action="payout_released",
                    booking_id=booking_id,
                    old_status=PayoutStatus.PENDING.value,
                    new_status=PayoutStatus.RELEASED.value,
                    amount=booking.realtor_payout_amount,
                )
                await db.commit()
        except Exception as e:
            logger.warning(f"Audit for payout of booking {booking_id} failed: {e}")

        try:
            async with self.session_factory() as db:
                await self.notifier.send_payout_notice(db, booking_id)
        except Exception as e:
            logger.warning(f"Payout email for booking {booking_id} failed: {e}")


async def list_failed_payouts(db: AsyncSession) -> list[Booking]:
    """Bookings whose payout needs attention, oldest release date first."""
    result = await db.execute(
        select(Booking)
        .where(Booking.payout_status == PayoutStatus.FAILED.value)
        .order_by(Booking.payout_release_date)
    )
    return list(result.scalars().all())


async def requeue_payout(
    db: AsyncSession,
    booking_id: UUID,
    admin: User,
    audit: AuditService | None = None,
) -> Booking:
    """Put a FAILED payout back in the queue for the next tick."""
    booking = await transition_payout(
        db,
        booking_id,
        PayoutStatus.FAILED,
        PayoutStatus.PENDING,
        {"payout_failure_reason": None},
    )
    await (audit or AuditService()).log_payout_action(
        db,
        actor_id=admin.id,
        action="payout_requeued",
        booking_id=booking_id,
        old_status=PayoutStatus.FAILED.value,
        new_status=PayoutStatus.PENDING.value,
    )
    return booking
