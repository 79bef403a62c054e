"""Gateway fee and platform net computation.

Gateways report fees in the currency's minor unit (cents, kobo). Payments
store major units, so every figure read from a gateway is divided by the
gateway/currency divisor before it touches the database.

    platform_net = service_fee_amount + platform_commission - gateway_fee

Both results are rounded half-up to two decimals.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.domain.payment_state import PaymentStatus
from stayledger.gateways.base import PaymentGateway
from stayledger.models.payment import Payment

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def minor_to_major(amount_minor: int, divisor: int = 100) -> Decimal:
    """Convert a minor-unit amount to major units (150, 100 → 1.50)."""
    return quantize_money(Decimal(amount_minor) / Decimal(divisor))


def major_to_minor(amount: Decimal, divisor: int = 100) -> int:
    """Convert a major-unit amount to an integer minor-unit amount."""
    return int((Decimal(amount) * divisor).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_platform_net(
    service_fee: Decimal,
    commission: Decimal,
    gateway_fee: Decimal,
) -> Decimal:
    """What the platform keeps after the gateway takes its fee."""
    return quantize_money(
        Decimal(service_fee or 0) + Decimal(commission or 0) - Decimal(gateway_fee or 0)
    )


class FeeService:
    """Records gateway fees on settled payments."""

    async def compute_gateway_fee(
        self,
        db: AsyncSession,
        booking_id: UUID,
        reference: str,
        gateway: PaymentGateway,
    ) -> Payment | None:
        """Fetch the charge's fee from the gateway and store fee and net.

        Args:
            db: Database session
            booking_id: Booking whose payment is updated
            reference: Gateway charge reference
            gateway: Adapter that settled the charge

        Returns:
            The updated payment, or None when the payment is not settled
        """
        payment = await db.scalar(select(Payment).where(Payment.booking_id == booking_id))
        if payment is None:
            logger.warning(f"No payment for booking {booking_id}, skipping fee computation")
            return None
        if payment.status != PaymentStatus.COMPLETED.value:
            logger.info(
                f"Payment {payment.id} is {payment.status}, fee computed only once settled"
            )
            return None

        fees = await gateway.retrieve_transaction_fees(reference)
        divisor = gateway.divisor_for(fees.currency or payment.currency)

        payment.gateway_fee = minor_to_major(fees.fee, divisor)
        payment.platform_net = compute_platform_net(
            payment.service_fee_amount,
            payment.platform_commission,
            payment.gateway_fee,
        )
        await db.flush()

        logger.info(
            f"Payment {payment.id}: gateway fee {payment.gateway_fee} {payment.currency}, "
            f"platform net {payment.platform_net}"
        )
        return payment
