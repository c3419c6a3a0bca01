"""Pricing Engine — composes a full quote for a vehicle and date range.

Order: base price (rules) → extras → insurance → location fees →
discount on the pre-discount subtotal → tax.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.config import settings
from fleetbook.models.fleet import Vehicle
from fleetbook.models.organization import Organization
from fleetbook.pricing.composer import PriceBreakdown, PriceComposer
from fleetbook.pricing.discounts import (
    DiscountApplied,
    DiscountEngine,
    DiscountOutcome,
    DiscountSkipped,
)
from fleetbook.pricing.extras import ExtrasCalculator, ExtraSelection, ExtrasTotal
from fleetbook.pricing.fees import LocationFeeResolver, LocationFees
from fleetbook.pricing.insurance import InsuranceCalculator, InsuranceCharge
from fleetbook.pricing.money import to_decimal
from fleetbook.pricing.rules import BasePrice, RuleResolver

logger = structlog.get_logger()


def tax_rate_for(organization: Organization) -> Decimal:
    if organization.tax_rate is not None:
        return to_decimal(organization.tax_rate)
    return to_decimal(settings.default_tax_rate)


def default_rate_for(organization: Organization) -> Decimal:
    if organization.default_daily_rate is not None:
        return to_decimal(organization.default_daily_rate)
    return to_decimal(settings.default_daily_rate)


@dataclass(frozen=True)
class PriceQuote:
    base: BasePrice
    extras: ExtrasTotal
    insurance: InsuranceCharge
    fees: LocationFees
    discount: DiscountOutcome
    breakdown: PriceBreakdown

    @property
    def warnings(self) -> list[str]:
        notes = []
        if isinstance(self.discount, DiscountSkipped) and self.discount.code:
            notes.append(f"discount_code_{self.discount.reason}")
        notes.extend(f"extra_option_skipped:{extra_id}" for extra_id in self.extras.skipped)
        return notes

    def without_discount(self, reason: str) -> PriceQuote:
        """Same quote with the discount dropped (e.g. the code ran out mid-transaction)."""
        code = self.discount.code if isinstance(self.discount, DiscountApplied) else None
        composer = PriceComposer(tax_rate=self.breakdown.tax_rate)
        breakdown = composer.compose(
            rental_days=self.breakdown.rental_days,
            base_price=self.breakdown.base_price,
            extras_price=self.breakdown.extras_price,
            insurance_price=self.breakdown.insurance_price,
            location_fees=self.breakdown.location_fees,
        )
        return replace(
            self, discount=DiscountSkipped(code=code, reason=reason), breakdown=breakdown
        )


class PricingEngine:
    """Runs every pricing component and composes the breakdown."""

    def __init__(
        self,
        rules: Optional[RuleResolver] = None,
        extras: Optional[ExtrasCalculator] = None,
        insurance: Optional[InsuranceCalculator] = None,
        fees: Optional[LocationFeeResolver] = None,
        discounts: Optional[DiscountEngine] = None,
    ):
        self.rules = rules or RuleResolver()
        self.extras = extras or ExtrasCalculator()
        self.insurance = insurance or InsuranceCalculator()
        self.fees = fees or LocationFeeResolver()
        self.discounts = discounts or DiscountEngine()

    async def quote(
        self,
        db: AsyncSession,
        organization: Organization,
        vehicle: Vehicle,
        pickup: date,
        dropoff: date,
        pickup_location_id: uuid.UUID,
        dropoff_location_id: uuid.UUID,
        extras: Sequence[ExtraSelection] = (),
        insurance_type_id: Optional[uuid.UUID] = None,
        discount_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PriceQuote:
        """Price a selection. The discount is evaluated but not redeemed.

        Args:
            db: Database session
            organization: Tenant whose reference data and tax rate apply
            vehicle: Vehicle being priced (already checked to belong to the tenant)
            pickup: First rental day
            dropoff: Return day (not charged)
            pickup_location_id: Where the vehicle is picked up
            dropoff_location_id: Where the vehicle is returned
            extras: Selected add-ons with quantities
            insurance_type_id: Selected insurance tier, if any
            discount_code: Code typed by the customer, if any
            now: Reference time for discount validity

        Returns:
            PriceQuote with every component and the composed breakdown
        """
        composer = PriceComposer(tax_rate=tax_rate_for(organization))

        base = await self.rules.resolve(
            db, vehicle, pickup, dropoff, default_rate_for(organization)
        )
        rental_days = base.rental_days

        fees = await self.fees.resolve(
            db, organization.id, pickup_location_id, dropoff_location_id
        )
        extras_total = await self.extras.calculate(db, organization.id, extras, rental_days)
        insurance = await self.insurance.calculate(
            db, organization.id, insurance_type_id, rental_days
        )

        subtotal = composer.subtotal(
            base.amount, extras_total.amount, insurance.amount, fees.amount
        )
        discount = await self.discounts.apply(
            db, organization.id, discount_code, subtotal, now=now
        )

        breakdown = composer.compose(
            rental_days=rental_days,
            base_price=base.amount,
            extras_price=extras_total.amount,
            insurance_price=insurance.amount,
            location_fees=fees.amount,
            discount_amount=discount.amount,
        )

        logger.info(
            "price_quoted",
            organization_id=str(organization.id),
            vehicle_id=str(vehicle.id),
            rental_days=rental_days,
            subtotal=str(breakdown.subtotal),
            discount=str(breakdown.discount_amount),
            total=str(breakdown.total_price),
        )

        return PriceQuote(
            base=base,
            extras=extras_total,
            insurance=insurance,
            fees=fees,
            discount=discount,
            breakdown=breakdown,
        )
