"""Celery background tasks.

Periodic escrow release: every tick releases the payouts whose hold window
has passed. A Redis lock keeps ticks single-flight across workers.
"""

import asyncio
import logging

import redis
from celery import shared_task
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from stayledger.config import settings
from stayledger.services.escrow_service import EscrowReleaseScheduler
from stayledger.services.gateway_service import get_gateway_registry
from stayledger.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

ESCROW_LOCK_NAME = "stayledger:lock:escrow_release"


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


def get_redis_client() -> redis.Redis:
    return redis.Redis.from_url(settings.redis_url)


# ==================== PAYOUT TASKS ====================


@shared_task(bind=True, max_retries=0)
def release_escrow_payouts(self):
    """Release realtor payouts whose escrow window has elapsed.

    Runs every ``escrow_release_interval_minutes``. If the previous tick is
    still running (on any worker) this tick is skipped.
    """
    lock = get_redis_client().lock(
        ESCROW_LOCK_NAME,
        timeout=settings.escrow_job_lock_timeout_seconds,
        blocking=False,
    )
    if not lock.acquire():
        logger.info("Escrow release already running elsewhere, skipping tick")
        return {"status": "skipped"}

    try:
        summary = run_async(_release_escrow_payouts())
    finally:
        try:
            lock.release()
        except redis.exceptions.LockError:
            logger.warning("Escrow release lock expired before the tick finished")

    return {
        "status": "success",
        "eligible": summary.eligible,
        "released": len(summary.released),
        "failed": len(summary.failed),
    }


async def _release_escrow_payouts():
    """Async implementation of one escrow release tick."""
    # Fresh engine per tick: asyncpg connections are bound to the event loop
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    notifier = NotificationService()
    try:
        scheduler = EscrowReleaseScheduler(
            gateways=get_gateway_registry(),
            session_factory=async_sessionmaker(engine, expire_on_commit=False),
            notifier=notifier,
        )
        return await scheduler.release_due_payouts()
    finally:
        await notifier.close()
        await engine.dispose()
