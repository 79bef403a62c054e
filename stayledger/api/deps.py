"""API dependencies for authentication and service wiring."""

from functools import lru_cache
from typing import Annotated
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stayledger.core.exceptions import AuthenticationError, AuthorizationError
from stayledger.core.security import verify_token
from stayledger.database import async_session_maker, get_db
from stayledger.models.user import User
from stayledger.services.gateway_service import GatewayRegistry, get_gateway_registry
from stayledger.services.notification_service import NotificationService
from stayledger.services.reconciliation_service import PaymentReconciler
from stayledger.services.refund_service import RefundService

# Security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    payload = verify_token(credentials.credentials, token_type="access")
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    try:
        user_uuid = UUID(user_id)
    except ValueError:
        raise AuthenticationError("Invalid token payload")

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user


async def get_current_realtor(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are a realtor."""
    if current_user.role not in ("realtor", "admin"):
        raise AuthorizationError("Realtor access required")
    return current_user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are an admin."""
    if current_user.role != "admin":
        raise AuthorizationError("Admin access required")
    return current_user


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives the request session."""
    return async_session_maker


@lru_cache
def get_notifier() -> NotificationService:
    """Shared notifier; its HTTP client is closed on app shutdown."""
    return NotificationService()


def get_reconciler(
    gateways: Annotated[GatewayRegistry, Depends(get_gateway_registry)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    notifier: Annotated[NotificationService, Depends(get_notifier)],
) -> PaymentReconciler:
    return PaymentReconciler(gateways, session_factory, notifier=notifier)


def get_refund_service(
    gateways: Annotated[GatewayRegistry, Depends(get_gateway_registry)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    notifier: Annotated[NotificationService, Depends(get_notifier)],
) -> RefundService:
    return RefundService(gateways, notifier=notifier, session_factory=session_factory)


# Type aliases
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentRealtor = Annotated[User, Depends(get_current_realtor)]
CurrentAdmin = Annotated[User, Depends(get_current_admin)]
Gateways = Annotated[GatewayRegistry, Depends(get_gateway_registry)]
