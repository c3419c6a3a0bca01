"""Extras calculator — prices selected add-ons per day or once."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.models.catalog import ExtraOption
from fleetbook.pricing.money import ZERO, round_money, to_decimal

logger = structlog.get_logger()


@dataclass(frozen=True)
class ExtraSelection:
    extra_id: uuid.UUID
    quantity: int = 1


@dataclass
class ExtraLine:
    extra_option_id: uuid.UUID
    name: str
    quantity: int
    unit_price: Decimal
    is_per_day: bool
    total: Decimal


@dataclass
class ExtrasTotal:
    lines: list[ExtraLine] = field(default_factory=list)
    skipped: list[uuid.UUID] = field(default_factory=list)

    @property
    def amount(self) -> Decimal:
        return sum((line.total for line in self.lines), ZERO)


def price_extra(option: ExtraOption, quantity: int, rental_days: int) -> ExtraLine:
    unit_price = to_decimal(option.price_per_day)
    if option.is_one_time_fee:
        total = unit_price * quantity
    else:
        total = unit_price * quantity * rental_days
    return ExtraLine(
        extra_option_id=option.id,
        name=option.name,
        quantity=quantity,
        unit_price=unit_price,
        is_per_day=not option.is_one_time_fee,
        total=round_money(total),
    )


class ExtrasCalculator:
    """Prices add-ons; unknown or inactive options are skipped, never fatal."""

    def price(
        self,
        options: Mapping[uuid.UUID, ExtraOption],
        selections: Sequence[ExtraSelection],
        rental_days: int,
    ) -> ExtrasTotal:
        result = ExtrasTotal()
        for selection in selections:
            option = options.get(selection.extra_id)
            if option is None or not option.is_active:
                logger.warning(
                    "extra_option_skipped",
                    extra_id=str(selection.extra_id),
                    reason="unknown" if option is None else "inactive",
                )
                result.skipped.append(selection.extra_id)
                continue
            result.lines.append(price_extra(option, max(selection.quantity, 1), rental_days))
        return result

    async def calculate(
        self,
        db: AsyncSession,
        organization_id: uuid.UUID,
        selections: Sequence[ExtraSelection],
        rental_days: int,
    ) -> ExtrasTotal:
        if not selections:
            return ExtrasTotal()

        ids = {s.extra_id for s in selections}
        result = await db.execute(
            select(ExtraOption).where(
                ExtraOption.organization_id == organization_id,
                ExtraOption.id.in_(ids),
            )
        )
        options = {option.id: option for option in result.scalars().all()}
        return self.price(options, selections, rental_days)
