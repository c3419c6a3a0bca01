"""ORM/engine objects → response payloads."""

from fleetbook.booking.writer import ReservationReceipt
from fleetbook.models.reservation import Reservation
from fleetbook.pricing.composer import PriceBreakdown
from fleetbook.pricing.discounts import DiscountApplied
from fleetbook.schemas.booking import PriceBreakdownOut, ReservationSummary
from fleetbook.schemas.notification import BookingNotification


def breakdown_out(breakdown: PriceBreakdown) -> PriceBreakdownOut:
    return PriceBreakdownOut(**breakdown.as_dict())


def reservation_summary(reservation: Reservation) -> ReservationSummary:
    return ReservationSummary(
        id=str(reservation.id),
        booking_number=reservation.booking_number,
        total_price=float(reservation.total_price),
        payment_status=reservation.payment_status,
        booking_status=reservation.booking_status,
        amount_paid=float(reservation.amount_paid or 0),
        amount_remaining=float(reservation.amount_remaining),
        deposit_amount=float(reservation.deposit_amount),
        expires_at=reservation.expires_at.isoformat() if reservation.expires_at else None,
    )


def reservation_detail(reservation: Reservation) -> dict:
    return {
        **reservation_summary(reservation).model_dump(),
        "vehicle_id": str(reservation.vehicle_id),
        "customer_full_name": reservation.customer_full_name,
        "customer_email": reservation.customer_email,
        "customer_phone": reservation.customer_phone,
        "pickup_date": reservation.pickup_date.isoformat(),
        "pickup_time": reservation.pickup_time.isoformat() if reservation.pickup_time else None,
        "pickup_location_id": str(reservation.pickup_location_id),
        "dropoff_date": reservation.dropoff_date.isoformat(),
        "dropoff_time": reservation.dropoff_time.isoformat() if reservation.dropoff_time else None,
        "dropoff_location_id": str(reservation.dropoff_location_id),
        "rental_days": reservation.rental_days,
        "base_price": float(reservation.base_price),
        "extras_price": float(reservation.extras_price),
        "insurance_price": float(reservation.insurance_price),
        "location_fees": float(reservation.location_fees),
        "discount_amount": float(reservation.discount_amount),
        "tax_rate": float(reservation.tax_rate),
        "tax_amount": float(reservation.tax_amount),
        "currency": reservation.currency,
        "extras": [
            {
                "extra_option_id": str(line.extra_option_id),
                "name": line.name,
                "quantity": line.quantity,
                "unit_price": float(line.unit_price),
                "total_price": float(line.total_price),
                "is_per_day": line.is_per_day,
            }
            for line in reservation.extra_lines
        ],
    }


def booking_notification(receipt: ReservationReceipt) -> BookingNotification:
    reservation = receipt.reservation
    vehicle = receipt.vehicle
    discount = receipt.quote.discount
    discount_code = discount.code if isinstance(discount, DiscountApplied) else None
    return BookingNotification(
        reservation_id=str(reservation.id),
        booking_number=reservation.booking_number,
        vehicle_name=" ".join(p for p in (vehicle.make, vehicle.model) if p),
        customer_full_name=reservation.customer_full_name,
        customer_phone=reservation.customer_phone,
        customer_email=reservation.customer_email,
        pickup=reservation.pickup_date.isoformat(),
        dropoff=reservation.dropoff_date.isoformat(),
        rental_days=reservation.rental_days,
        total_price=float(reservation.total_price),
        currency=reservation.currency,
        discount_code=discount_code,
        flight_number=reservation.flight_number,
    )
