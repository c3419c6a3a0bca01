"""Location fee resolver — pickup and delivery surcharges."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.errors import NotFoundError
from fleetbook.models.catalog import Location
from fleetbook.pricing.money import ZERO, round_money, to_decimal


@dataclass
class LocationFees:
    pickup_fee: Decimal = ZERO
    delivery_fee: Decimal = ZERO

    @property
    def amount(self) -> Decimal:
        return round_money(self.pickup_fee + self.delivery_fee)


class LocationFeeResolver:
    """Pickup fee of the pickup location plus delivery fee of the dropoff location.

    Both apply independently, even when pickup and dropoff are the same place.
    """

    def fees_for(self, pickup: Location, dropoff: Location) -> LocationFees:
        return LocationFees(
            pickup_fee=to_decimal(pickup.extra_pickup_fee),
            delivery_fee=to_decimal(dropoff.extra_delivery_fee),
        )

    async def load_location(
        self, db: AsyncSession, organization_id: uuid.UUID, location_id: uuid.UUID
    ) -> Location:
        result = await db.execute(
            select(Location).where(
                Location.id == location_id,
                Location.organization_id == organization_id,
                Location.is_active == True,  # noqa: E712
            )
        )
        location = result.scalar_one_or_none()
        if location is None:
            raise NotFoundError("Location not found", location_id=str(location_id))
        return location

    async def resolve(
        self,
        db: AsyncSession,
        organization_id: uuid.UUID,
        pickup_location_id: uuid.UUID,
        dropoff_location_id: uuid.UUID,
    ) -> LocationFees:
        pickup = await self.load_location(db, organization_id, pickup_location_id)
        if dropoff_location_id == pickup_location_id:
            dropoff = pickup
        else:
            dropoff = await self.load_location(db, organization_id, dropoff_location_id)
        return self.fees_for(pickup, dropoff)
