"""Organization model — the rental tenant."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Boolean, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetbook.models.base import Base, TimestampMixin, UUIDMixin


class Organization(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "organizations"

    # Identity
    slug: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Telegram notifications
    owner_telegram_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    telegram_bot_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Pricing configuration (NULL = platform default)
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    timezone: Mapped[str] = mapped_column(String(50), default="Europe/Athens")
    tax_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 4), nullable=True)
    default_daily_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # Plan & limits
    subscription_status: Mapped[str] = mapped_column(
        String(20), default="trial"
    )  # trial|active|past_due|cancelled
    max_contracts_per_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    vehicles = relationship("Vehicle", back_populates="organization")
