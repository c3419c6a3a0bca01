"""Reservation, its priced extra lines, availability blocks and payments."""

import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    func,
    literal_column,
)
from sqlalchemy.dialects.postgresql import UUID, ExcludeConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleetbook.models.base import Base, TimestampMixin, UUIDMixin


class Reservation(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "reservations"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    vehicle_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vehicles.id"), nullable=False
    )
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vehicle_categories.id"), nullable=True
    )
    booking_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)

    # Customer (denormalized contract data)
    customer_full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(254), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_id_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    customer_driver_license: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    customer_date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    customer_address: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    customer_city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    customer_country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    customer_tax_id: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # Rental interval, half-open [pickup_date, dropoff_date)
    pickup_date: Mapped[date] = mapped_column(Date, nullable=False)
    pickup_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    pickup_location_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id"), nullable=False
    )
    dropoff_date: Mapped[date] = mapped_column(Date, nullable=False)
    dropoff_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    dropoff_location_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id"), nullable=False
    )
    rental_days: Mapped[int] = mapped_column(Integer, nullable=False)

    # Price breakdown
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    extras_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    insurance_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    location_fees: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR")

    selected_insurance_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("insurance_types.id"), nullable=True
    )
    discount_code_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("discount_codes.id"), nullable=True
    )

    # Payment
    payment_method_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("payment_methods.id"), nullable=True
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), default="pending"
    )  # pending|deposit_paid|fully_paid
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    amount_remaining: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Status
    booking_status: Mapped[str] = mapped_column(
        String(20), default="pending", index=True
    )  # pending|confirmed|in_progress|completed|cancelled|no_show|expired
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    picked_up_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    returned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Notes & source tracking
    flight_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String(30), default="web")
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Relationships
    extra_lines = relationship(
        "ReservationExtraLine",
        back_populates="reservation",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    availability_block = relationship(
        "AvailabilityBlock", back_populates="reservation", uselist=False
    )
    payments = relationship("PaymentTransaction", back_populates="reservation")


class ReservationExtraLine(Base, UUIDMixin):
    """Priced snapshot of one selected extra; never updated after creation."""

    __tablename__ = "reservation_extra_lines"

    reservation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False
    )
    extra_option_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("extra_options.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    is_per_day: Mapped[bool] = mapped_column(Boolean, nullable=False)

    reservation = relationship("Reservation", back_populates="extra_lines")


class AvailabilityBlock(Base, UUIDMixin, TimestampMixin):
    """Authoritative record that a vehicle is taken for [blocked_from, blocked_until)."""

    __tablename__ = "availability_blocks"

    vehicle_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False
    )
    reservation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("reservations.id", ondelete="CASCADE"),
        unique=True,
        nullable=True,
    )
    blocked_from: Mapped[date] = mapped_column(Date, nullable=False)
    blocked_until: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(String(20), default="booked")  # booked|maintenance|blocked

    reservation = relationship("Reservation", back_populates="availability_block")


# No two blocks for one vehicle may overlap (requires btree_gist)
AvailabilityBlock.__table__.append_constraint(
    ExcludeConstraint(
        (AvailabilityBlock.__table__.c.vehicle_id, "="),
        (
            func.daterange(
                AvailabilityBlock.__table__.c.blocked_from,
                AvailabilityBlock.__table__.c.blocked_until,
                literal_column("'[)'"),
            ),
            "&&",
        ),
        name="ex_availability_blocks_vehicle_period",
        using="gist",
    )
)


class PaymentTransaction(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "payment_transactions"

    reservation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False
    )
    provider_transaction_id: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    transaction_type: Mapped[str] = mapped_column(
        String(30), nullable=False
    )  # deposit|full_payment|remaining_payment
    payment_provider: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="completed")
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    reservation = relationship("Reservation", back_populates="payments")
