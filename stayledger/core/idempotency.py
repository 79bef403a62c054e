"""Idempotency ledger for gateway webhook events.

A gateway may deliver the same event more than once and in any order. The
ledger records (booking_id, event_id) pairs that have already been applied.
Rows are append-only; the unique constraint on the pair is what makes
``claim`` atomic across concurrent deliveries.
"""

import logging
from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.models.payment import ProcessedWebhookEvent

logger = logging.getLogger(__name__)


def _insert_for(db: AsyncSession):
    """Dialect-specific INSERT supporting ON CONFLICT."""
    if db.bind is not None and db.bind.dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


class IdempotencyLedger:
    """Per-booking set of processed gateway event ids."""

    async def already_processed(
        self,
        db: AsyncSession,
        event_id: str,
        booking_id: UUID | None,
    ) -> bool:
        """Membership check. Events without a booking are never deduplicated."""
        if booking_id is None:
            return False
        result = await db.execute(
            select(ProcessedWebhookEvent.id).where(
                ProcessedWebhookEvent.booking_id == booking_id,
                ProcessedWebhookEvent.event_id == event_id,
            )
        )
        return result.first() is not None

    async def claim(
        self,
        db: AsyncSession,
        event_id: str,
        booking_id: UUID | None,
        gateway: str | None = None,
        event_type: str | None = None,
    ) -> bool:
        """Atomically record the event unless it is already recorded.

        The row is written inside the caller's transaction, so if the caller
        rolls back the claim is released and a redelivery is processed again.

        Returns:
            True if this call recorded the event, False if it was already present
        """
        if booking_id is None:
            return True

        insert = _insert_for(db)
        stmt = (
            insert(ProcessedWebhookEvent)
            .values(
                id=uuid4(),
                booking_id=booking_id,
                event_id=event_id,
                gateway=gateway,
                event_type=event_type,
                processed_at=datetime.now(UTC),
            )
            .on_conflict_do_nothing(index_elements=["booking_id", "event_id"])
            .returning(ProcessedWebhookEvent.id)
        )
        result = await db.execute(stmt)
        claimed = result.scalar_one_or_none() is not None
        if not claimed:
            logger.info(f"Event {event_id} already processed for booking {booking_id}")
        return claimed

    async def mark_processed(
        self,
        db: AsyncSession,
        event_id: str,
        booking_id: UUID | None,
        gateway: str | None = None,
        event_type: str | None = None,
    ) -> None:
        """Record the event; a no-op if it is already recorded."""
        await self.claim(db, event_id, booking_id, gateway, event_type)

    async def processed_events(self, db: AsyncSession, booking_id: UUID) -> list[str]:
        """Event ids applied to a booking, oldest first."""
        result = await db.execute(
            select(ProcessedWebhookEvent.event_id)
            .where(ProcessedWebhookEvent.booking_id == booking_id)
            .order_by(ProcessedWebhookEvent.processed_at)
        )
        return list(result.scalars().all())
