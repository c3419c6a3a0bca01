"""Rule resolver — per-day rate selection from dated, scoped pricing rules.

For each calendar day of the half-open interval [pickup, dropoff) the
winning rule is the eligible rule covering that day with:
1. Highest priority
2. Vehicle scope over category scope
3. Latest start_date, then rule id (keeps ties independent of fetch order)

Days without a covering rule are charged at the tenant default rate.
The volume discount (weekly / monthly) comes from the rule winning the
pickup day and applies to the whole subtotal.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Sequence

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.errors import NotFoundError
from fleetbook.models.fleet import Vehicle
from fleetbook.models.pricing import PricingRule
from fleetbook.pricing.money import ZERO, percent_of, round_money, to_decimal

logger = structlog.get_logger()

WEEKLY_THRESHOLD_DAYS = 7
MONTHLY_THRESHOLD_DAYS = 30


@dataclass
class DailyRate:
    day: date
    price: Decimal
    rule_id: Optional[uuid.UUID] = None


@dataclass
class BasePrice:
    """Result of rule resolution for one vehicle and interval."""

    rental_days: int
    days: list[DailyRate] = field(default_factory=list)
    subtotal: Decimal = ZERO
    volume_discount_kind: Optional[str] = None  # weekly | monthly
    volume_discount_percent: Decimal = ZERO
    volume_discount: Decimal = ZERO
    amount: Decimal = ZERO

    @property
    def average_daily_rate(self) -> Decimal:
        if not self.rental_days:
            return ZERO
        return round_money(self.amount / self.rental_days)


def rental_days_between(pickup: date, dropoff: date) -> int:
    """Day count of [pickup, dropoff)."""
    return (dropoff - pickup).days


def _rule_rank(rule: PricingRule, vehicle_id: uuid.UUID) -> tuple:
    return (
        rule.priority or 0,
        1 if rule.vehicle_id == vehicle_id else 0,
        rule.start_date,
        str(rule.id),
    )


def select_rule(
    rules: Sequence[PricingRule],
    day: date,
    vehicle_id: uuid.UUID,
    rental_days: int,
) -> Optional[PricingRule]:
    """Return the winning rule for a single day, or None."""
    covering = [
        rule
        for rule in rules
        if rule.start_date <= day <= rule.end_date
        and rental_days >= (rule.min_rental_days or 1)
    ]
    if not covering:
        return None
    return max(covering, key=lambda rule: _rule_rank(rule, vehicle_id))


def volume_discount_for(
    rule: Optional[PricingRule], rental_days: int
) -> tuple[Optional[str], Decimal]:
    """Pick the monthly or weekly percentage a rule grants for this duration."""
    if rule is None:
        return None, ZERO
    if rental_days >= MONTHLY_THRESHOLD_DAYS and rule.monthly_discount_percent:
        return "monthly", to_decimal(rule.monthly_discount_percent)
    if rental_days >= WEEKLY_THRESHOLD_DAYS and rule.weekly_discount_percent:
        return "weekly", to_decimal(rule.weekly_discount_percent)
    return None, ZERO


def resolve_base_price(
    rules: Sequence[PricingRule],
    vehicle_id: uuid.UUID,
    pickup: date,
    dropoff: date,
    default_rate: Decimal,
) -> BasePrice:
    """Price every day of [pickup, dropoff) and apply the volume discount."""
    rental_days = rental_days_between(pickup, dropoff)
    result = BasePrice(rental_days=rental_days)
    if rental_days <= 0:
        return result

    pickup_rule: Optional[PricingRule] = None
    for offset in range(rental_days):
        day = pickup + timedelta(days=offset)
        rule = select_rule(rules, day, vehicle_id, rental_days)
        if offset == 0:
            pickup_rule = rule
        if rule is None:
            result.days.append(DailyRate(day=day, price=to_decimal(default_rate)))
        else:
            result.days.append(
                DailyRate(day=day, price=to_decimal(rule.price_per_day), rule_id=rule.id)
            )

    result.subtotal = sum((d.price for d in result.days), ZERO)

    kind, percent = volume_discount_for(pickup_rule, rental_days)
    if kind:
        result.volume_discount_kind = kind
        result.volume_discount_percent = percent
        result.volume_discount = percent_of(result.subtotal, percent)

    result.amount = max(ZERO, round_money(result.subtotal - result.volume_discount))
    return result


class RuleResolver:
    """Loads the pricing rules relevant to a vehicle and resolves its base price."""

    async def require_vehicle(
        self,
        db: AsyncSession,
        organization_id: uuid.UUID,
        vehicle_id: uuid.UUID,
        for_update: bool = False,
    ) -> Vehicle:
        """Load a tenant's vehicle, optionally row-locked; NotFoundError otherwise."""
        stmt = select(Vehicle).where(
            Vehicle.id == vehicle_id,
            Vehicle.organization_id == organization_id,
            Vehicle.is_active == True,  # noqa: E712
        )
        if for_update:
            stmt = stmt.with_for_update()
        vehicle = (await db.execute(stmt)).scalar_one_or_none()
        if vehicle is None:
            raise NotFoundError("Vehicle not found", vehicle_id=str(vehicle_id))
        return vehicle

    async def fetch_rules(
        self,
        db: AsyncSession,
        vehicle: Vehicle,
        pickup: date,
        dropoff: date,
    ) -> list[PricingRule]:
        """Rules scoped to the vehicle or its category whose validity meets the interval."""
        scope = PricingRule.vehicle_id == vehicle.id
        if vehicle.category_id is not None:
            scope = or_(scope, PricingRule.category_id == vehicle.category_id)

        stmt = (
            select(PricingRule)
            .where(
                and_(
                    PricingRule.organization_id == vehicle.organization_id,
                    PricingRule.is_active == True,  # noqa: E712
                    scope,
                    PricingRule.start_date < dropoff,
                    PricingRule.end_date >= pickup,
                )
            )
            .order_by(PricingRule.priority.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def resolve(
        self,
        db: AsyncSession,
        vehicle: Vehicle,
        pickup: date,
        dropoff: date,
        default_rate: Decimal,
    ) -> BasePrice:
        rules = await self.fetch_rules(db, vehicle, pickup, dropoff)
        base = resolve_base_price(rules, vehicle.id, pickup, dropoff, default_rate)

        logger.info(
            "base_price_resolved",
            vehicle_id=str(vehicle.id),
            rules=len(rules),
            rental_days=base.rental_days,
            volume_discount=base.volume_discount_kind,
            amount=str(base.amount),
        )
        return base
