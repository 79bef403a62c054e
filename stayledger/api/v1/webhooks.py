"""Webhook endpoints for payment gateways.

The raw request body is handed to the gateway adapter untouched; both
gateways sign the exact bytes they sent. Once an event is verified the
endpoint always acknowledges it unless the critical write itself failed,
in which case the error propagates (5xx) and the gateway redelivers.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status

from stayledger.api.deps import DbSession, Gateways, get_reconciler
from stayledger.gateways.base import GatewayType
from stayledger.services.reconciliation_service import PaymentReconciler

logger = logging.getLogger(__name__)

router = APIRouter()

Reconciler = Annotated[PaymentReconciler, Depends(get_reconciler)]


@router.post("/stripe", status_code=status.HTTP_200_OK)
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: DbSession,
    gateways: Gateways,
    reconciler: Reconciler,
) -> dict:
    """Handle Stripe webhook events."""
    gateway = gateways.get(GatewayType.STRIPE)
    payload = await request.body()
    event = gateway.verify_webhook(payload, request.headers.get(gateway.signature_header))

    outcome = await reconciler.handle_stripe_event(db, event)
    await db.commit()

    background_tasks.add_task(reconciler.run_follow_ups, outcome)
    return {"received": True}


@router.post("/paystack", status_code=status.HTTP_200_OK)
async def paystack_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: DbSession,
    gateways: Gateways,
    reconciler: Reconciler,
) -> dict:
    """Handle Paystack webhook events."""
    gateway = gateways.get(GatewayType.PAYSTACK)
    payload = await request.body()
    event = gateway.verify_webhook(payload, request.headers.get(gateway.signature_header))

    outcome = await reconciler.handle_paystack_event(db, event)
    await db.commit()

    background_tasks.add_task(reconciler.run_follow_ups, outcome)
    return {"status": True}
