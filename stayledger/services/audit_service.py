"""Financial audit trail service."""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.models.admin import AuditLog


class AuditService:
    """Service for append-only financial audit logging."""

    # Financial actions that require audit logging
    FINANCIAL_ACTIONS = {
        "payment_completed",
        "payment_failed",
        "payout_transfer_created",
        "payout_released",
        "payout_failed",
        "payout_requeued",
        "dispute_opened",
        "refund_requested",
        "refund_realtor_decision",
        "refund_processed",
    }

    async def log_financial_action(
        self,
        db: AsyncSession,
        actor_id: UUID | None,
        action: str,
        resource_type: str,
        resource_id: UUID | None,
        details: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Log a financial action.

        Args:
            db: Database session
            actor_id: User performing the action (None for gateway/scheduler)
            action: Action name (e.g., "payout_released")
            resource_type: Resource type (e.g., "booking", "payment")
            resource_id: Resource ID
            details: Values worth keeping (status change, amounts, event id)

        Returns:
            Created audit log entry
        """
        audit = AuditLog(
            actor_id=actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
        )
        db.add(audit)
        await db.flush()
        return audit

    async def log_gateway_event(
        self,
        db: AsyncSession,
        action: str,
        booking_id: UUID,
        gateway: str,
        event_id: str,
        event_type: str,
        extra: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Log a state change applied from a gateway webhook."""
        details: dict[str, Any] = {
            "gateway": gateway,
            "event_id": event_id,
            "event_type": event_type,
        }
        if extra:
            details.update(extra)
        return await self.log_financial_action(
            db=db,
            actor_id=None,
            action=action,
            resource_type="booking",
            resource_id=booking_id,
            details=details,
        )

    async def log_payout_action(
        self,
        db: AsyncSession,
        actor_id: UUID | None,
        action: str,
        booking_id: UUID,
        old_status: str,
        new_status: str,
        amount: Any = None,
        reason: str | None = None,
    ) -> AuditLog:
        """Log payout status change."""
        details: dict[str, Any] = {"old_status": old_status, "new_status": new_status}
        if amount is not None:
            details["amount"] = str(amount)
        if reason:
            details["reason"] = reason
        return await self.log_financial_action(
            db=db,
            actor_id=actor_id,
            action=action,
            resource_type="payout",
            resource_id=booking_id,
            details=details,
        )

    async def log_refund_action(
        self,
        db: AsyncSession,
        actor_id: UUID,
        action: str,
        refund_id: UUID,
        payment_id: UUID,
        amount: Any,
        status: str,
    ) -> AuditLog:
        """Log refund request creation, decision or processing."""
        return await self.log_financial_action(
            db=db,
            actor_id=actor_id,
            action=action,
            resource_type="refund",
            resource_id=refund_id,
            details={
                "payment_id": str(payment_id),
                "amount": str(amount),
                "status": status,
            },
        )

    async def list_for_resource(self, db: AsyncSession, resource_id: UUID) -> list[AuditLog]:
        result = await db.execute(
            select(AuditLog)
            .where(AuditLog.resource_id == resource_id)
            .order_by(AuditLog.created_at)
        )
        return list(result.scalars().all())
