"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from stayledger.api.v1 import admin, payments, payouts, refunds, webhooks

api_router = APIRouter()

# Webhooks
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])

# Payments
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])

# Refunds
api_router.include_router(refunds.router, prefix="/refunds", tags=["Refunds"])

# Payouts
api_router.include_router(payouts.router, prefix="/payouts", tags=["Payouts"])

# Admin
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
