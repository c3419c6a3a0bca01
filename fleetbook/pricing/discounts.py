"""Discount engine — validates codes and redeems them atomically.

Validation never blocks a booking: an unusable code yields
DiscountSkipped(reason) and the price is composed without a discount.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Union

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.models.discount import DiscountCode
from fleetbook.pricing.money import ZERO, percent_of, round_money, to_decimal

logger = structlog.get_logger()

PERCENTAGE = "percentage"
FIXED = "fixed"


@dataclass(frozen=True)
class DiscountApplied:
    discount_code_id: uuid.UUID
    code: str
    discount_type: str
    amount: Decimal


@dataclass(frozen=True)
class DiscountSkipped:
    code: Optional[str]
    reason: str  # not_found | inactive | not_yet_valid | expired | exhausted | no_code
    amount: Decimal = ZERO


DiscountOutcome = Union[DiscountApplied, DiscountSkipped]

NO_DISCOUNT = DiscountSkipped(code=None, reason="no_code")


def normalize_code(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


def discount_amount(discount: DiscountCode, subtotal: Decimal) -> Decimal:
    """Amount a valid code takes off the subtotal, never more than the subtotal."""
    value = to_decimal(discount.discount_value)
    if discount.discount_type == PERCENTAGE:
        amount = round_money(percent_of(subtotal, value))
    else:
        amount = round_money(value)
    return max(ZERO, min(amount, subtotal))


def evaluate_discount(
    discount: Optional[DiscountCode],
    code: str,
    subtotal: Decimal,
    now: datetime,
) -> DiscountOutcome:
    """Check existence, activity, validity window and usage, in that order."""
    if discount is None:
        return DiscountSkipped(code=code, reason="not_found")
    if not discount.is_active:
        return DiscountSkipped(code=code, reason="inactive")
    if discount.valid_from is not None and now < discount.valid_from:
        return DiscountSkipped(code=code, reason="not_yet_valid")
    if discount.valid_until is not None and now > discount.valid_until:
        return DiscountSkipped(code=code, reason="expired")
    if discount.max_uses is not None and discount.times_used >= discount.max_uses:
        return DiscountSkipped(code=code, reason="exhausted")

    return DiscountApplied(
        discount_code_id=discount.id,
        code=discount.code,
        discount_type=discount.discount_type,
        amount=discount_amount(discount, subtotal),
    )


class DiscountEngine:
    """Looks up, evaluates and redeems tenant discount codes."""

    async def lookup(
        self, db: AsyncSession, organization_id: uuid.UUID, code: str
    ) -> Optional[DiscountCode]:
        result = await db.execute(
            select(DiscountCode).where(
                DiscountCode.organization_id == organization_id,
                func.upper(DiscountCode.code) == code,
            )
        )
        return result.scalar_one_or_none()

    async def apply(
        self,
        db: AsyncSession,
        organization_id: uuid.UUID,
        code: Optional[str],
        subtotal: Decimal,
        now: Optional[datetime] = None,
    ) -> DiscountOutcome:
        """Evaluate a code against the subtotal without recording a redemption."""
        normalized = normalize_code(code)
        if normalized is None:
            return NO_DISCOUNT

        now = now or datetime.now(timezone.utc)
        discount = await self.lookup(db, organization_id, normalized)
        outcome = evaluate_discount(discount, normalized, subtotal, now)

        if isinstance(outcome, DiscountSkipped):
            logger.info(
                "discount_skipped",
                organization_id=str(organization_id),
                code=normalized,
                reason=outcome.reason,
            )
        return outcome

    async def redeem(self, db: AsyncSession, outcome: DiscountApplied) -> bool:
        """Atomically increment times_used if the code still has uses left.

        Runs inside the caller's reservation transaction, so a rollback
        un-counts the redemption.
        """
        stmt = (
            update(DiscountCode)
            .where(
                DiscountCode.id == outcome.discount_code_id,
                or_(
                    DiscountCode.max_uses.is_(None),
                    DiscountCode.times_used < DiscountCode.max_uses,
                ),
            )
            .values(times_used=DiscountCode.times_used + 1)
            .returning(DiscountCode.id)
            .execution_options(synchronize_session=False)
        )
        redeemed = (await db.execute(stmt)).scalar_one_or_none() is not None

        logger.info(
            "discount_redeemed" if redeemed else "discount_redeem_lost",
            discount_code_id=str(outcome.discount_code_id),
            code=outcome.code,
        )
        return redeemed
