"""Booking request/response schemas for the public API."""

import uuid
from datetime import date, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ExtraSelectionIn(BaseModel):
    extra_id: uuid.UUID
    quantity: int = Field(1, ge=1)


class RentalInterval(BaseModel):
    """Dates are calendar dates; dropoff is exclusive."""

    pickup_date: date
    pickup_time: Optional[time] = None
    pickup_location_id: uuid.UUID
    dropoff_date: date
    dropoff_time: Optional[time] = None
    dropoff_location_id: uuid.UUID


class QuoteRequest(RentalInterval):
    vehicle_id: uuid.UUID
    selected_extras: list[ExtraSelectionIn] = []
    selected_insurance_id: Optional[uuid.UUID] = None
    discount_code: Optional[str] = None
    payment_method_id: Optional[uuid.UUID] = None


class ReservationCreate(QuoteRequest):
    # Customer (contract data)
    customer_full_name: str = Field(..., min_length=1, max_length=200)
    customer_email: str = Field(..., min_length=3, max_length=254)
    customer_phone: str = Field(..., min_length=3, max_length=50)
    customer_id_number: Optional[str] = None
    customer_driver_license: Optional[str] = None
    customer_date_of_birth: Optional[date] = None
    customer_address: Optional[str] = None
    customer_city: Optional[str] = None
    customer_country: Optional[str] = "Greece"
    customer_tax_id: Optional[str] = None

    # Notes
    flight_number: Optional[str] = None
    special_requests: Optional[str] = None
    customer_notes: Optional[str] = None

    @field_validator("customer_email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value:
            raise ValueError("customer_email must be an email address")
        return value

    @field_validator("customer_full_name", "customer_phone")
    @classmethod
    def strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class SearchRequest(RentalInterval):
    vehicle_type: Optional[str] = None  # car | atv | moto


class PaymentConfirmation(BaseModel):
    """Payment acknowledgment from the payment provider integration."""

    amount: Decimal = Field(..., gt=0)
    provider_transaction_id: str = Field(..., min_length=1, max_length=200)
    provider: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class PriceBreakdownOut(BaseModel):
    rental_days: int
    base_price: float
    extras_price: float
    insurance_price: float
    location_fees: float
    subtotal: float
    discount_amount: float
    total_before_tax: float
    tax_rate: float
    tax_amount: float
    total_price: float


class ReservationSummary(BaseModel):
    id: str
    booking_number: str
    total_price: float
    payment_status: str
    booking_status: str
    amount_paid: float
    amount_remaining: float
    deposit_amount: float
    expires_at: Optional[str] = None


class ReservationCreated(BaseModel):
    booking: ReservationSummary
    price: PriceBreakdownOut
    payment_url: Optional[str] = None
    warnings: list[str] = []
