"""Refund request endpoints (guest → realtor → admin)."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from stayledger.api.deps import (
    CurrentAdmin,
    CurrentRealtor,
    CurrentUser,
    DbSession,
    get_refund_service,
)
from stayledger.domain.refund_state import RefundRequestStatus
from stayledger.schemas.refund import (
    RealtorDecision,
    RefundProcess,
    RefundRequestCreate,
    RefundRequestListResponse,
    RefundRequestResponse,
)
from stayledger.services.notification_service import NotificationService
from stayledger.services.refund_service import RefundService

router = APIRouter()

Refunds = Annotated[RefundService, Depends(get_refund_service)]


@router.post("/", response_model=RefundRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_refund_request(
    data: RefundRequestCreate,
    current_user: CurrentUser,
    db: DbSession,
    refunds: Refunds,
    background_tasks: BackgroundTasks,
) -> RefundRequestResponse:
    """Guest asks for (part of) their payment back."""
    refund = await refunds.request_refund(
        db,
        current_user,
        booking_id=data.booking_id,
        payment_id=data.payment_id,
        amount=data.amount,
        reason=data.reason,
        notes=data.customer_notes,
    )
    await db.commit()
    background_tasks.add_task(refunds.notify, refund.id, NotificationService.REFUND_REQUESTED)
    return RefundRequestResponse.model_validate(refund)


@router.get("/realtor", response_model=RefundRequestListResponse)
async def list_realtor_refund_requests(
    current_user: CurrentRealtor,
    db: DbSession,
    refunds: Refunds,
    status_filter: Annotated[RefundRequestStatus | None, Query(alias="status")] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> RefundRequestListResponse:
    """Refund requests on the realtor's properties."""
    requests = await refunds.list_for_realtor(
        db,
        current_user,
        status=status_filter,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return RefundRequestListResponse(
        requests=[RefundRequestResponse.model_validate(r) for r in requests],
        total=len(requests),
    )


@router.get("/admin", response_model=RefundRequestListResponse)
async def list_admin_refund_requests(
    current_user: CurrentAdmin,
    db: DbSession,
    refunds: Refunds,
    status_filter: Annotated[RefundRequestStatus | None, Query(alias="status")] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> RefundRequestListResponse:
    """Refund requests waiting for admin processing."""
    requests = await refunds.list_for_admin(
        db,
        status=status_filter,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return RefundRequestListResponse(
        requests=[RefundRequestResponse.model_validate(r) for r in requests],
        total=len(requests),
    )


@router.get("/{request_id}", response_model=RefundRequestResponse)
async def get_refund_request(
    request_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    refunds: Refunds,
) -> RefundRequestResponse:
    refund = await refunds.get_refund_request(db, current_user, request_id)
    return RefundRequestResponse.model_validate(refund)


@router.post("/{request_id}/decision", response_model=RefundRequestResponse)
async def decide_refund_request(
    request_id: UUID,
    data: RealtorDecision,
    current_user: CurrentRealtor,
    db: DbSession,
    refunds: Refunds,
    background_tasks: BackgroundTasks,
) -> RefundRequestResponse:
    """Realtor approves or rejects."""
    refund = await refunds.realtor_decision(
        db,
        current_user,
        request_id,
        approved=data.approved,
        reason=data.reason,
        notes=data.notes,
    )
    await db.commit()
    background_tasks.add_task(refunds.notify, refund.id, NotificationService.REFUND_DECIDED)
    return RefundRequestResponse.model_validate(refund)


@router.post("/{request_id}/process", response_model=RefundRequestResponse)
async def process_refund_request(
    request_id: UUID,
    data: RefundProcess,
    current_user: CurrentAdmin,
    db: DbSession,
    refunds: Refunds,
    background_tasks: BackgroundTasks,
) -> RefundRequestResponse:
    """Admin sends the approved refund to the gateway."""
    refund = await refunds.process_refund(
        db,
        current_user,
        request_id,
        actual_amount=data.actual_refund_amount,
        notes=data.admin_notes,
    )
    await db.commit()
    background_tasks.add_task(refunds.notify, refund.id, NotificationService.REFUND_COMPLETED)
    return RefundRequestResponse.model_validate(refund)
