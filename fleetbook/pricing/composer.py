"""Price composer — base, extras, insurance, fees, discount and VAT into one breakdown.

Each public amount is rounded to cents exactly once; totals are composed
from those rounded amounts so a persisted breakdown recomputes to the
same total.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from fleetbook.models.catalog import PaymentMethod
from fleetbook.models.reservation import Reservation
from fleetbook.pricing.money import ZERO, percent_of, round_money, to_decimal

DEFAULT_TAX_RATE = Decimal("0.24")


@dataclass(frozen=True)
class PriceBreakdown:
    rental_days: int
    base_price: Decimal
    extras_price: Decimal
    insurance_price: Decimal
    location_fees: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    total_before_tax: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_price: Decimal

    def as_dict(self) -> dict:
        return {
            "rental_days": self.rental_days,
            "base_price": float(self.base_price),
            "extras_price": float(self.extras_price),
            "insurance_price": float(self.insurance_price),
            "location_fees": float(self.location_fees),
            "subtotal": float(self.subtotal),
            "discount_amount": float(self.discount_amount),
            "total_before_tax": float(self.total_before_tax),
            "tax_rate": float(self.tax_rate),
            "tax_amount": float(self.tax_amount),
            "total_price": float(self.total_price),
        }


class PriceComposer:
    """Combines component prices and applies the tenant tax rate."""

    def __init__(self, tax_rate: Optional[Decimal] = None):
        self.tax_rate = to_decimal(tax_rate) if tax_rate is not None else DEFAULT_TAX_RATE

    def subtotal(
        self,
        base_price: Decimal,
        extras_price: Decimal,
        insurance_price: Decimal,
        location_fees: Decimal,
    ) -> Decimal:
        """Pre-discount subtotal; discount percentages are taken from this."""
        return base_price + extras_price + insurance_price + location_fees

    def compose(
        self,
        rental_days: int,
        base_price: Decimal,
        extras_price: Decimal,
        insurance_price: Decimal,
        location_fees: Decimal,
        discount_amount: Decimal = ZERO,
    ) -> PriceBreakdown:
        base_price = round_money(to_decimal(base_price))
        extras_price = round_money(to_decimal(extras_price))
        insurance_price = round_money(to_decimal(insurance_price))
        location_fees = round_money(to_decimal(location_fees))
        discount_amount = round_money(to_decimal(discount_amount))

        subtotal = self.subtotal(base_price, extras_price, insurance_price, location_fees)
        total_before_tax = max(ZERO, subtotal - discount_amount)
        tax_amount = round_money(total_before_tax * self.tax_rate)

        return PriceBreakdown(
            rental_days=rental_days,
            base_price=base_price,
            extras_price=extras_price,
            insurance_price=insurance_price,
            location_fees=location_fees,
            subtotal=subtotal,
            discount_amount=discount_amount,
            total_before_tax=total_before_tax,
            tax_rate=self.tax_rate,
            tax_amount=tax_amount,
            total_price=total_before_tax + tax_amount,
        )

    def deposit(self, total: Decimal, payment_method: Optional[PaymentMethod]) -> Decimal:
        """Amount due at booking time for the chosen payment method.

        No method or a full-payment method: the whole total. Otherwise the
        deposit percentage of the total, raised to the method's minimum and
        never above the total.
        """
        if payment_method is None or payment_method.requires_full_payment:
            return total
        if not payment_method.deposit_percentage:
            return total

        deposit = round_money(percent_of(total, payment_method.deposit_percentage))
        minimum = payment_method.minimum_deposit_amount
        if minimum is not None and deposit < to_decimal(minimum):
            deposit = to_decimal(minimum)
        return min(round_money(deposit), total)

    def recompose(
        self, reservation: Reservation, line_totals: Optional[Iterable[Decimal]] = None
    ) -> PriceBreakdown:
        """Rebuild a breakdown from a persisted reservation and its extra lines."""
        if line_totals is None:
            line_totals = (line.total_price for line in reservation.extra_lines)
        extras = sum((to_decimal(total) for total in line_totals), ZERO)

        composer = PriceComposer(tax_rate=reservation.tax_rate)
        return composer.compose(
            rental_days=reservation.rental_days,
            base_price=to_decimal(reservation.base_price),
            extras_price=extras,
            insurance_price=to_decimal(reservation.insurance_price),
            location_fees=to_decimal(reservation.location_fees),
            discount_amount=to_decimal(reservation.discount_amount),
        )
