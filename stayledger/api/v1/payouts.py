"""Payout endpoints for realtors (Stripe Connect onboarding and payout history)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.api.deps import CurrentRealtor, DbSession, Gateways
from stayledger.config import settings
from stayledger.core.exceptions import NotFoundError, ValidationError
from stayledger.domain.payout_state import PayoutStatus
from stayledger.gateways.base import GatewayType
from stayledger.models.booking import Booking
from stayledger.models.property import Property
from stayledger.models.user import Realtor, User
from stayledger.schemas.payment import (
    BookingPayoutResponse,
    ConnectLinkResponse,
    ConnectStatusResponse,
    PayoutListResponse,
)

router = APIRouter()


async def _realtor_profile(db: AsyncSession, user: User) -> Realtor:
    realtor = await db.scalar(select(Realtor).where(Realtor.user_id == user.id))
    if realtor is None:
        raise NotFoundError("Realtor profile")
    return realtor


@router.get("/", response_model=PayoutListResponse)
async def get_my_payouts(
    current_user: CurrentRealtor,
    db: DbSession,
    status_filter: Annotated[PayoutStatus | None, Query(alias="status")] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> PayoutListResponse:
    """Get the realtor's booking payouts."""
    realtor = await _realtor_profile(db, current_user)
    query = (
        select(Booking)
        .join(Property, Booking.property_id == Property.id)
        .where(Property.realtor_id == realtor.id)
    )
    if status_filter:
        query = query.where(Booking.payout_status == status_filter.value)

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0

    offset = (page - 1) * page_size
    result = await db.execute(
        query.order_by(Booking.payout_release_date.desc()).offset(offset).limit(page_size)
    )
    return PayoutListResponse(
        payouts=[BookingPayoutResponse.model_validate(b) for b in result.scalars().all()],
        total=total,
    )


@router.post("/connect/account-link", response_model=ConnectLinkResponse)
async def create_connect_account_link(
    current_user: CurrentRealtor,
    db: DbSession,
    gateways: Gateways,
) -> ConnectLinkResponse:
    """Start (or resume) Stripe Connect onboarding."""
    realtor = await _realtor_profile(db, current_user)
    gateway = gateways.get(GatewayType.STRIPE)

    if not realtor.stripe_account_id:
        realtor.stripe_account_id = await gateway.create_account(current_user.email)
        # Kept even if the link call below fails, so a retry reuses the account
        await db.commit()

    url = await gateway.create_account_link(
        realtor.stripe_account_id,
        refresh_url=settings.stripe_connect_refresh_url,
        return_url=settings.stripe_connect_return_url,
    )
    return ConnectLinkResponse(url=url, account_id=realtor.stripe_account_id)


@router.get("/connect/dashboard-link", response_model=ConnectLinkResponse)
async def get_connect_dashboard_link(
    current_user: CurrentRealtor,
    db: DbSession,
    gateways: Gateways,
) -> ConnectLinkResponse:
    """Login link to the realtor's Stripe Express dashboard."""
    realtor = await _realtor_profile(db, current_user)
    if not realtor.stripe_account_id:
        raise ValidationError("No Stripe account connected")

    gateway = gateways.get(GatewayType.STRIPE)
    url = await gateway.create_dashboard_link(realtor.stripe_account_id)
    return ConnectLinkResponse(url=url, account_id=realtor.stripe_account_id)


@router.get("/connect/status", response_model=ConnectStatusResponse)
async def get_connect_status(
    current_user: CurrentRealtor,
    db: DbSession,
    gateways: Gateways,
) -> ConnectStatusResponse:
    """Refresh and return the connected account's capabilities."""
    realtor = await _realtor_profile(db, current_user)
    if not realtor.stripe_account_id:
        return ConnectStatusResponse(connected=False)

    gateway = gateways.get(GatewayType.STRIPE)
    account = await gateway.retrieve_account_status(realtor.stripe_account_id)

    realtor.stripe_charges_enabled = account.charges_enabled
    realtor.stripe_payouts_enabled = account.payouts_enabled
    realtor.stripe_details_submitted = account.details_submitted

    return ConnectStatusResponse(
        connected=True,
        account_id=account.account_id,
        charges_enabled=account.charges_enabled,
        payouts_enabled=account.payouts_enabled,
        details_submitted=account.details_submitted,
        requirements=account.requirements,
    )
