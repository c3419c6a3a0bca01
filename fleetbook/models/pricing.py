"""Pricing rules — dated daily rates scoped to a vehicle or a category."""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Integer, Numeric
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from fleetbook.models.base import Base, TimestampMixin, UUIDMixin


class PricingRule(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "pricing_rules"
    __table_args__ = (
        CheckConstraint(
            "(vehicle_id IS NULL) <> (category_id IS NULL)",
            name="ck_pricing_rules_single_scope",
        ),
        CheckConstraint("start_date <= end_date", name="ck_pricing_rules_validity"),
    )

    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )

    # Scope: exactly one of vehicle / category
    vehicle_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=True
    )
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vehicle_categories.id", ondelete="CASCADE"), nullable=True
    )

    # Validity, both ends inclusive
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    price_per_day: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    min_rental_days: Mapped[int] = mapped_column(Integer, default=1)
    weekly_discount_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    monthly_discount_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)
