"""Test fixtures and configuration."""

import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def vehicle_id():
    return uuid.uuid4()


@pytest.fixture
def category_id():
    return uuid.uuid4()


@pytest.fixture
def make_rule(vehicle_id, category_id):
    """Factory for pricing rules (no DB)."""

    def _make_rule(
        price: str = "50.00",
        start: date = date(2024, 1, 1),
        end: date = date(2024, 12, 31),
        priority: int = 0,
        vehicle_scoped: bool = False,
        min_rental_days: int = 1,
        weekly: str | None = None,
        monthly: str | None = None,
    ):
        return SimpleNamespace(
            id=uuid.uuid4(),
            priority=priority,
            vehicle_id=vehicle_id if vehicle_scoped else None,
            category_id=None if vehicle_scoped else category_id,
            start_date=start,
            end_date=end,
            price_per_day=Decimal(price),
            min_rental_days=min_rental_days,
            weekly_discount_percent=Decimal(weekly) if weekly else None,
            monthly_discount_percent=Decimal(monthly) if monthly else None,
            is_active=True,
        )

    return _make_rule


@pytest.fixture
def make_reservation():
    """Factory for reservation rows (no DB)."""

    def _make_reservation(**overrides):
        values = dict(
            id=uuid.uuid4(),
            booking_status="pending",
            payment_status="pending",
            total_price=Decimal("266.60"),
            amount_paid=Decimal("0"),
            amount_remaining=Decimal("266.60"),
            deposit_amount=Decimal("79.98"),
            currency="EUR",
            expires_at=None,
            confirmed_at=None,
            picked_up_at=None,
            returned_at=None,
            cancelled_at=None,
            cancellation_reason=None,
        )
        values.update(overrides)
        return SimpleNamespace(**values)

    return _make_reservation


@pytest.fixture
def mock_db():
    """Mock AsyncSession; execute() results return None by default."""
    db = MagicMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = None
    db.execute = AsyncMock(return_value=result)
    db.flush = AsyncMock()
    db.commit = AsyncMock()
    return db


@pytest.fixture
def mock_redis():
    """Mock Redis client with a controllable lock."""
    redis = MagicMock()
    lock = MagicMock()
    lock.acquire = AsyncMock(return_value=True)
    lock.release = AsyncMock()
    redis.lock.return_value = lock
    return redis
