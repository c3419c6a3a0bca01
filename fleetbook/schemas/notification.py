"""Notification payloads."""

from typing import Optional

from pydantic import BaseModel


class BookingNotification(BaseModel):
    """Data for the new-booking card sent to the organization owner."""

    reservation_id: str
    booking_number: str
    vehicle_name: str
    customer_full_name: str
    customer_phone: str
    customer_email: str
    pickup: str
    dropoff: str
    rental_days: int
    total_price: float
    currency: str = "EUR"
    discount_code: Optional[str] = None
    flight_number: Optional[str] = None
