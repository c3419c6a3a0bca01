"""Conflict checker — half-open interval overlap against availability blocks.

A candidate [p, d) conflicts with a block [p', d') iff p < d' and p' < d,
and the block is still holding the vehicle: a maintenance/manual block,
or a reservation that is pending (not yet expired), confirmed or in progress.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.models.fleet import Vehicle
from fleetbook.models.reservation import AvailabilityBlock, Reservation
from fleetbook.schemas.reservation import ACTIVE_STATUSES, BookingStatus

logger = structlog.get_logger()


def intervals_overlap(start: date, end: date, other_start: date, other_end: date) -> bool:
    return start < other_end and other_start < end


def is_expired_pending(reservation: Reservation, now: datetime) -> bool:
    return (
        reservation.booking_status == BookingStatus.PENDING.value
        and reservation.expires_at is not None
        and reservation.expires_at <= now
    )


def block_holds_vehicle(
    block: AvailabilityBlock, reservation: Optional[Reservation], now: datetime
) -> bool:
    if reservation is None:
        return block.reservation_id is None
    if BookingStatus(reservation.booking_status) not in ACTIVE_STATUSES:
        return False
    return not is_expired_pending(reservation, now)


@dataclass
class ConflictResult:
    reservation_ids: list[uuid.UUID] = field(default_factory=list)
    block_ids: list[uuid.UUID] = field(default_factory=list)
    # Blocks left behind by expired or finished reservations; free to reclaim
    stale_reservation_ids: list[uuid.UUID] = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return bool(self.block_ids)

    def __bool__(self) -> bool:
        return self.has_conflict


class ConflictChecker:
    """Looks up blocks overlapping a candidate interval for one vehicle."""

    async def check(
        self,
        db: AsyncSession,
        organization_id: uuid.UUID,
        vehicle_id: uuid.UUID,
        pickup: date,
        dropoff: date,
        now: Optional[datetime] = None,
    ) -> ConflictResult:
        now = now or datetime.now(timezone.utc)
        stmt = (
            select(AvailabilityBlock, Reservation)
            .join(Vehicle, Vehicle.id == AvailabilityBlock.vehicle_id)
            .outerjoin(Reservation, Reservation.id == AvailabilityBlock.reservation_id)
            .where(
                Vehicle.organization_id == organization_id,
                AvailabilityBlock.vehicle_id == vehicle_id,
                AvailabilityBlock.blocked_from < dropoff,
                AvailabilityBlock.blocked_until > pickup,
            )
        )
        rows = (await db.execute(stmt)).all()

        result = ConflictResult()
        for block, reservation in rows:
            if block_holds_vehicle(block, reservation, now):
                result.block_ids.append(block.id)
                if reservation is not None:
                    result.reservation_ids.append(reservation.id)
            elif reservation is not None:
                result.stale_reservation_ids.append(reservation.id)

        if result.has_conflict:
            logger.info(
                "availability_conflict",
                vehicle_id=str(vehicle_id),
                pickup=pickup.isoformat(),
                dropoff=dropoff.isoformat(),
                reservation_ids=[str(r) for r in result.reservation_ids],
            )
        return result
