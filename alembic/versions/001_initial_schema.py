"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all tables for the StayLedger payment core:
- Users, realtors and properties (ownership only)
- Bookings with escrow payout state
- Payments and the processed webhook event ledger
- Refund requests and the refund audit trail
- Admin audit logs
"""

from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all database tables."""

    # ==================== USERS ====================
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("role", sa.String(20), nullable=False, server_default="guest"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "realtors",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False),
        sa.Column("business_name", sa.String(200), nullable=False),
        sa.Column("stripe_account_id", sa.String(100), unique=True, index=True),
        sa.Column("stripe_charges_enabled", sa.Boolean, server_default=sa.false()),
        sa.Column("stripe_payouts_enabled", sa.Boolean, server_default=sa.false()),
        sa.Column("stripe_details_submitted", sa.Boolean, server_default=sa.false()),
        sa.Column("paystack_subaccount_code", sa.String(100)),
        sa.Column("paystack_recipient_code", sa.String(100)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== PROPERTIES ====================
    op.create_table(
        "properties",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("realtor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("realtors.id"), nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
    )

    # ==================== BOOKINGS ====================
    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("property_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("properties.id"), nullable=False, index=True),
        sa.Column("guest_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("check_in", sa.Date, nullable=False),
        sa.Column("check_out", sa.Date, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING", index=True),
        sa.Column("payout_status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("payout_release_date", sa.DateTime(timezone=True)),
        sa.Column("realtor_payout_amount", sa.Numeric(12, 2), server_default="0"),
        sa.Column("payout_failure_reason", sa.Text),
        sa.Column("currency", sa.String(3), server_default="USD"),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_bookings_payout_scan",
        "bookings",
        ["status", "payout_status", "payout_release_date"],
    )

    # ==================== PAYMENTS ====================
    op.create_table(
        "payments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), unique=True, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), server_default="USD"),
        sa.Column("refund_amount", sa.Numeric(12, 2), server_default="0"),
        sa.Column("refunded_at", sa.DateTime(timezone=True)),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("gateway", sa.String(20), nullable=False),
        sa.Column("stripe_payment_intent_id", sa.String(100), index=True),
        sa.Column("stripe_transfer_id", sa.String(100)),
        sa.Column("paystack_reference", sa.String(100), index=True),
        sa.Column("paystack_transfer_reference", sa.String(100), index=True),
        sa.Column("gateway_response", postgresql.JSONB),
        sa.Column("service_fee_amount", sa.Numeric(12, 2), server_default="0"),
        sa.Column("platform_commission", sa.Numeric(12, 2), server_default="0"),
        sa.Column("gateway_fee", sa.Numeric(12, 2)),
        sa.Column("platform_net", sa.Numeric(12, 2)),
        sa.Column("payout_released", sa.Boolean, server_default=sa.false()),
        sa.Column("payout_released_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("refund_amount <= amount", name="ck_payments_refund_ceiling"),
    )

    op.create_table(
        "processed_webhook_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("gateway", sa.String(20)),
        sa.Column("event_type", sa.String(100)),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("booking_id", "event_id", name="uq_processed_event_booking"),
    )

    # ==================== REFUNDS ====================
    op.create_table(
        "refund_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("payment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("payments.id"), nullable=False),
        sa.Column("requested_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("realtor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("realtors.id"), nullable=False, index=True),
        sa.Column("requested_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("reason", sa.String(50), nullable=False),
        sa.Column("customer_notes", sa.Text),
        sa.Column("status", sa.String(30), nullable=False, server_default="PENDING_REALTOR_APPROVAL", index=True),
        sa.Column("realtor_decided_at", sa.DateTime(timezone=True)),
        sa.Column("realtor_reason", sa.Text),
        sa.Column("realtor_notes", sa.Text),
        sa.Column("admin_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.Column("admin_processed_at", sa.DateTime(timezone=True)),
        sa.Column("admin_notes", sa.Text),
        sa.Column("actual_refund_amount", sa.Numeric(12, 2)),
        sa.Column("provider_refund_id", sa.String(100)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "uq_refund_requests_open_booking",
        "refund_requests",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text(
            "status IN ('PENDING_REALTOR_APPROVAL', 'REALTOR_APPROVED', 'ADMIN_PROCESSING')"
        ),
    )

    op.create_table(
        "refund_audit_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("payment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("payments.id"), nullable=False, index=True),
        sa.Column("refund_request_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("refund_requests.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("processed_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reason", sa.Text),
        sa.Column("provider_refund_id", sa.String(100)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== ADMIN ====================
    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), index=True),
        sa.Column("action", sa.String(100), nullable=False, index=True),
        sa.Column("resource_type", sa.String(50), nullable=False, index=True),
        sa.Column("resource_id", postgresql.UUID(as_uuid=True)),
        sa.Column("details", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )


def downgrade() -> None:
    """Drop all database tables in reverse order."""
    op.drop_table("audit_logs")
    op.drop_table("refund_audit_entries")
    op.drop_index("uq_refund_requests_open_booking", table_name="refund_requests")
    op.drop_table("refund_requests")
    op.drop_table("processed_webhook_events")
    op.drop_table("payments")
    op.drop_index("ix_bookings_payout_scan", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("properties")
    op.drop_table("realtors")
    op.drop_table("users")
