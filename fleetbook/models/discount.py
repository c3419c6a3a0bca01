"""Discount codes with a bounded redemption counter."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from fleetbook.models.base import Base, TimestampMixin, UUIDMixin


class DiscountCode(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "discount_codes"
    __table_args__ = (
        CheckConstraint(
            "max_uses IS NULL OR times_used <= max_uses",
            name="ck_discount_codes_usage",
        ),
    )

    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)  # percentage|fixed
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Validity window (NULL = open-ended)
    valid_from: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Usage (NULL max_uses = unlimited)
    max_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    times_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


# Codes are unique per tenant regardless of case
Index(
    "uq_discount_codes_org_code",
    DiscountCode.organization_id,
    func.upper(DiscountCode.code),
    unique=True,
)
