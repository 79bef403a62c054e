"""Transactional email for payments, payouts and refunds.

Email is sent through the SendGrid v3 HTTP API. Every send is best-effort:
failures return False and never interrupt the money flow that triggered them.
"""

import logging
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from stayledger.config import settings
from stayledger.models.booking import Booking
from stayledger.models.property import Property
from stayledger.models.refund import RefundRequest
from stayledger.models.user import Realtor

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class NotificationService:
    """Service for sending payment-related emails."""

    # Notification types
    PAYMENT_RECEIVED = "payment_received"
    PAYOUT_SENT = "payout_sent"
    REFUND_REQUESTED = "refund_requested"
    REFUND_DECIDED = "refund_decided"
    REFUND_COMPLETED = "refund_completed"

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
    ) -> bool:
        """Send an email via SendGrid.

        Returns:
            bool: True if SendGrid accepted the message
        """
        if not settings.sendgrid_api_key:
            logger.debug(f"SendGrid not configured, dropping email to {to_email}")
            return False

        payload: dict[str, Any] = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {
                "email": settings.email_from_address,
                "name": settings.email_from_name,
            },
            "subject": subject,
            "content": [{"type": "text/html", "value": html_content}],
        }
        if text_content:
            payload["content"].insert(0, {"type": "text/plain", "value": text_content})

        try:
            response = await self.http_client.post(
                SENDGRID_URL,
                headers={
                    "Authorization": f"Bearer {settings.sendgrid_api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.warning(f"SendGrid request failed for {to_email}: {e}")
            return False

        if response.status_code not in (200, 202):
            logger.warning(f"SendGrid rejected email to {to_email}: {response.status_code}")
            return False
        return True

    async def _load_booking(self, db: AsyncSession, booking_id: UUID) -> Booking | None:
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .options(
                selectinload(Booking.guest),
                selectinload(Booking.payment),
                selectinload(Booking.property)
                .selectinload(Property.realtor)
                .selectinload(Realtor.user),
            )
        )
        return result.scalar_one_or_none()

    # ==================== PAYMENTS ====================

    async def send_payment_receipt(self, db: AsyncSession, booking_id: UUID) -> bool:
        """Email the guest a receipt for a confirmed booking."""
        booking = await self._load_booking(db, booking_id)
        if booking is None or booking.payment is None:
            return False

        payment = booking.payment
        subject = f"Payment received for {booking.property.title}"
        html = (
            f"<p>Hi {booking.guest.first_name or 'there'},</p>"
            f"<p>We received your payment of {payment.currency} {payment.amount} "
            f"for {booking.property.title} "
            f"({booking.check_in:%d %b %Y} to {booking.check_out:%d %b %Y}).</p>"
            f"<p>Booking reference: {booking.id}</p>"
        )
        return await self.send_email(booking.guest.email, subject, html)

    # ==================== PAYOUTS ====================

    async def send_payout_notice(self, db: AsyncSession, booking_id: UUID) -> bool:
        """Tell the realtor their share of a booking was released."""
        booking = await self._load_booking(db, booking_id)
        if booking is None:
            return False

        realtor = booking.property.realtor
        subject = f"Payout released for {booking.property.title}"
        html = (
            f"<p>Hi {realtor.business_name},</p>"
            f"<p>Your payout of {booking.currency} {booking.realtor_payout_amount} "
            f"for booking {booking.id} has been released.</p>"
        )
        return await self.send_email(realtor.user.email, subject, html)

    # ==================== REFUNDS ====================

    async def _load_refund(self, db: AsyncSession, request_id: UUID) -> RefundRequest | None:
        result = await db.execute(
            select(RefundRequest)
            .where(RefundRequest.id == request_id)
            .options(
                selectinload(RefundRequest.requester),
                selectinload(RefundRequest.realtor).selectinload(Realtor.user),
            )
        )
        return result.scalar_one_or_none()

    async def send_refund_update(
        self,
        db: AsyncSession,
        request_id: UUID,
        notification_type: str,
    ) -> bool:
        """Email the party that has to act next (or the guest, once decided)."""
        refund = await self._load_refund(db, request_id)
        if refund is None:
            return False

        if notification_type == self.REFUND_REQUESTED:
            to_email = refund.realtor.user.email
            subject = "New refund request"
            html = (
                f"<p>A guest requested a refund of {refund.currency} {refund.requested_amount} "
                f"for booking {refund.booking_id}.</p><p>Reason: {refund.reason}</p>"
            )
        elif notification_type == self.REFUND_DECIDED:
            to_email = refund.requester.email
            subject = "Your refund request was reviewed"
            html = (
                f"<p>Your refund request for booking {refund.booking_id} "
                f"is now {refund.status}.</p>"
            )
        else:
            to_email = refund.requester.email
            subject = "Your refund has been processed"
            html = (
                f"<p>{refund.currency} {refund.actual_refund_amount} has been refunded "
                f"for booking {refund.booking_id}.</p>"
            )
        return await self.send_email(to_email, subject, html)
