"""Expiry sweeper — releases pending reservations whose hold ran out.

Each batch runs in one transaction and locks rows with SKIP LOCKED, so a
payment confirmation holding the row lock wins and the sweeper moves on.
A redis lock keeps only one worker sweeping at a time.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

import redis.asyncio as redis
from redis.exceptions import LockError
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.booking.lifecycle import ReservationLifecycle
from fleetbook.config import settings
from fleetbook.models.reservation import Reservation
from fleetbook.schemas.reservation import BookingStatus

logger = structlog.get_logger()

LOCK_NAME = "fleetbook:expiry-sweeper"


class ExpirySweeper:
    """Moves expired pending reservations to `expired` and frees their blocks."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        redis_client: Optional[redis.Redis] = None,
        lifecycle: Optional[ReservationLifecycle] = None,
        batch_size: Optional[int] = None,
        lock_ttl_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.redis = redis_client
        self.lifecycle = lifecycle or ReservationLifecycle()
        self.batch_size = batch_size or settings.sweeper_batch_size
        self.lock_ttl = lock_ttl_seconds or settings.sweeper_lock_ttl_seconds

    async def sweep_batch(self, db: AsyncSession, now: datetime) -> int:
        stmt = (
            select(Reservation)
            .where(
                Reservation.booking_status == BookingStatus.PENDING.value,
                Reservation.expires_at.is_not(None),
                Reservation.expires_at <= now,
            )
            .order_by(Reservation.expires_at)
            .limit(self.batch_size)
            .with_for_update(skip_locked=True)
        )
        expired = (await db.execute(stmt)).scalars().all()
        for reservation in expired:
            await self.lifecycle.expire(db, reservation)
        await db.flush()
        return len(expired)

    async def sweep_once(self, now: Optional[datetime] = None) -> int:
        """Run one sweep if this worker wins the lock. Returns reservations released."""
        now = now or datetime.now(timezone.utc)

        lock = None
        if self.redis is not None:
            lock = self.redis.lock(LOCK_NAME, timeout=self.lock_ttl)
            if not await lock.acquire(blocking=False):
                logger.debug("sweeper_lock_busy")
                return 0

        try:
            async with self.session_factory() as db:
                async with db.begin():
                    released = await self.sweep_batch(db, now)
        finally:
            if lock is not None:
                try:
                    await lock.release()
                except LockError:
                    logger.warning("sweeper_lock_lost")

        if released:
            logger.info("reservations_expired", count=released)
        return released

    async def run_forever(self, interval_seconds: Optional[int] = None) -> None:
        interval = interval_seconds or settings.sweeper_interval_seconds
        logger.info("sweeper_started", interval=interval)
        while True:
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("sweep_failed", error=str(e))
            await asyncio.sleep(interval)
