"""Concurrent reservation attempts against a real PostgreSQL database.

Set TEST_DATABASE_URL (postgresql+asyncpg://...) to run; the schema is
dropped and recreated.
"""

import asyncio
import os
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fleetbook.booking.writer import ReservationWriter
from fleetbook.errors import ConflictError
from fleetbook.models import (
    AvailabilityBlock,
    DiscountCode,
    Location,
    Organization,
    PricingRule,
    Reservation,
    Vehicle,
    VehicleCategory,
)
from fleetbook.models.base import Base
from fleetbook.schemas.booking import ReservationCreate

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(
    not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set"
)

PICKUP = date(2030, 6, 1)
DROPOFF = date(2030, 6, 4)


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS btree_gist"))
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def fleet(session_factory):
    async with session_factory() as db:
        org = Organization(slug="demo", name="Demo Rentals", tax_rate=Decimal("0.24"))
        db.add(org)
        await db.flush()
        category = VehicleCategory(organization_id=org.id, name="Economy")
        db.add(category)
        await db.flush()
        vehicles = [
            Vehicle(organization_id=org.id, category_id=category.id, make="Toyota", model=f"Yaris {i}")
            for i in range(2)
        ]
        office = Location(organization_id=org.id, name="Office")
        db.add_all(vehicles + [office])
        db.add(
            PricingRule(
                organization_id=org.id,
                category_id=category.id,
                start_date=date(2030, 1, 1),
                end_date=date(2030, 12, 31),
                price_per_day=Decimal("50.00"),
            )
        )
        db.add(
            DiscountCode(
                organization_id=org.id,
                code="ONCE",
                discount_type="percentage",
                discount_value=Decimal("10"),
                max_uses=1,
            )
        )
        await db.commit()
        return {"vehicles": [v.id for v in vehicles], "location": office.id}


def _request(vehicle_id, location_id, email, **extra):
    return ReservationCreate(
        vehicle_id=vehicle_id,
        pickup_date=PICKUP,
        pickup_location_id=location_id,
        dropoff_date=DROPOFF,
        dropoff_location_id=location_id,
        customer_full_name="Test Customer",
        customer_email=email,
        customer_phone="+30 690 000 0000",
        **extra,
    )


@pytest.mark.asyncio
async def test_exactly_one_concurrent_booking_wins(session_factory, fleet):
    writer = ReservationWriter(session_factory, max_attempts=5)
    vehicle_id = fleet["vehicles"][0]

    results = await asyncio.gather(
        *[
            writer.create("demo", _request(vehicle_id, fleet["location"], f"c{i}@example.com"))
            for i in range(5)
        ],
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert all(isinstance(f, ConflictError) for f in failures)

    async with session_factory() as db:
        blocks = (
            await db.execute(
                select(func.count(AvailabilityBlock.id)).where(AvailabilityBlock.vehicle_id == vehicle_id)
            )
        ).scalar_one()
    assert blocks == 1


@pytest.mark.asyncio
async def test_single_use_code_redeemed_once(session_factory, fleet):
    writer = ReservationWriter(session_factory, max_attempts=5)

    results = await asyncio.gather(
        *[
            writer.create(
                "demo",
                _request(vehicle_id, fleet["location"], f"d{i}@example.com", discount_code="once"),
            )
            for i, vehicle_id in enumerate(fleet["vehicles"])
        ],
        return_exceptions=True,
    )

    receipts = [r for r in results if not isinstance(r, Exception)]
    discounted = [r for r in receipts if r.reservation.discount_code_id is not None]
    assert len(discounted) <= 1

    async with session_factory() as db:
        times_used = (await db.execute(select(DiscountCode.times_used))).scalar_one()
        with_code = (
            await db.execute(
                select(func.count(Reservation.id)).where(Reservation.discount_code_id.is_not(None))
            )
        ).scalar_one()
    assert times_used == with_code == len(discounted)


@pytest.mark.asyncio
async def test_expired_hold_is_reclaimed(session_factory, fleet):
    writer = ReservationWriter(session_factory, hold_period=timedelta(minutes=30))
    vehicle_id = fleet["vehicles"][0]
    then = datetime(2030, 5, 1, 9, 0, tzinfo=timezone.utc)

    first = await writer.create(
        "demo", _request(vehicle_id, fleet["location"], "a@example.com"), now=then
    )
    second = await writer.create(
        "demo", _request(vehicle_id, fleet["location"], "b@example.com"), now=then + timedelta(hours=1)
    )

    async with session_factory() as db:
        stale = await db.get(Reservation, first.reservation.id)
    assert stale.booking_status == "expired"
    assert second.reservation.booking_status == "pending"

    with pytest.raises(ConflictError):
        await writer.create(
            "demo", _request(vehicle_id, fleet["location"], "c@example.com"), now=then + timedelta(hours=1)
        )
