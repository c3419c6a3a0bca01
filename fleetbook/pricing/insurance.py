"""Insurance calculator — daily insurance premium for the rental duration."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.models.catalog import InsuranceType
from fleetbook.pricing.money import ZERO, round_money, to_decimal

logger = structlog.get_logger()


@dataclass
class InsuranceCharge:
    insurance_type_id: Optional[uuid.UUID] = None
    name: Optional[str] = None
    price_per_day: Decimal = ZERO
    deductible: Decimal = ZERO
    amount: Decimal = ZERO


NO_INSURANCE = InsuranceCharge()


class InsuranceCalculator:
    """Absent or unknown insurance selections price as no insurance."""

    def price(self, insurance: Optional[InsuranceType], rental_days: int) -> InsuranceCharge:
        if insurance is None or not insurance.is_active:
            return NO_INSURANCE
        per_day = to_decimal(insurance.price_per_day)
        return InsuranceCharge(
            insurance_type_id=insurance.id,
            name=insurance.name,
            price_per_day=per_day,
            deductible=to_decimal(insurance.deductible),
            amount=round_money(per_day * rental_days),
        )

    async def calculate(
        self,
        db: AsyncSession,
        organization_id: uuid.UUID,
        insurance_type_id: Optional[uuid.UUID],
        rental_days: int,
    ) -> InsuranceCharge:
        if insurance_type_id is None:
            return NO_INSURANCE

        result = await db.execute(
            select(InsuranceType).where(
                InsuranceType.id == insurance_type_id,
                InsuranceType.organization_id == organization_id,
            )
        )
        insurance = result.scalar_one_or_none()
        if insurance is None or not insurance.is_active:
            logger.warning("insurance_type_skipped", insurance_type_id=str(insurance_type_id))
        return self.price(insurance, rental_days)
