"""Bookings API — reservation creation and lifecycle events."""

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.api.dependencies import get_lifecycle, get_reservation_writer
from fleetbook.api.serializers import (
    booking_notification,
    breakdown_out,
    reservation_detail,
    reservation_summary,
)
from fleetbook.booking.lifecycle import ReservationLifecycle
from fleetbook.booking.writer import ReservationWriter
from fleetbook.database import get_db
from fleetbook.notifications.telegram import notify_owner
from fleetbook.schemas.booking import (
    CancelRequest,
    PaymentConfirmation,
    ReservationCreate,
    ReservationCreated,
    ReservationSummary,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["bookings"])


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post(
    "/organizations/{slug}/bookings",
    response_model=ReservationCreated,
    status_code=201,
)
async def create_booking(
    slug: str,
    data: ReservationCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    writer: ReservationWriter = Depends(get_reservation_writer),
) -> ReservationCreated:
    """Create a reservation for a customer.

    Args:
        slug: Organization slug
        data: Vehicle, interval, selections and customer details
        request: Incoming request (client IP and user agent are recorded)
        background_tasks: Owner notification runs after the response
        writer: Reservation writer

    Returns:
        Booking summary, price breakdown and payment link
    """
    receipt = await writer.create(
        slug,
        data,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )

    organization = receipt.organization
    if organization.owner_telegram_id:
        background_tasks.add_task(
            notify_owner,
            organization.telegram_bot_token,
            organization.owner_telegram_id,
            booking_notification(receipt),
        )

    return ReservationCreated(
        booking=reservation_summary(receipt.reservation),
        price=breakdown_out(receipt.quote.breakdown),
        payment_url=receipt.payment_url,
        warnings=receipt.warnings,
    )


@router.get("/bookings/{booking_id}")
async def get_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
) -> dict:
    reservation = await lifecycle.get(db, booking_id)
    return reservation_detail(reservation)


@router.delete("/bookings/{booking_id}", response_model=ReservationSummary)
async def cancel_booking(
    booking_id: uuid.UUID,
    data: Optional[CancelRequest] = None,
    db: AsyncSession = Depends(get_db),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
) -> ReservationSummary:
    """Cancel a booking and free the vehicle."""
    reservation = await lifecycle.cancel(db, booking_id, reason=data.reason if data else None)
    await db.commit()
    return reservation_summary(reservation)


@router.post("/bookings/{booking_id}/payment", response_model=ReservationSummary)
async def confirm_payment(
    booking_id: uuid.UUID,
    data: PaymentConfirmation,
    db: AsyncSession = Depends(get_db),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
) -> ReservationSummary:
    """Record a payment acknowledged by the payment provider."""
    reservation = await lifecycle.confirm_payment(
        db,
        booking_id,
        amount=data.amount,
        provider_transaction_id=data.provider_transaction_id,
        provider=data.provider,
    )
    await db.commit()
    return reservation_summary(reservation)


@router.post("/bookings/{booking_id}/pickup", response_model=ReservationSummary)
async def pickup_vehicle(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
) -> ReservationSummary:
    reservation = await lifecycle.start_rental(db, booking_id)
    await db.commit()
    return reservation_summary(reservation)


@router.post("/bookings/{booking_id}/dropoff", response_model=ReservationSummary)
async def return_vehicle(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
) -> ReservationSummary:
    reservation = await lifecycle.complete_rental(db, booking_id)
    await db.commit()
    return reservation_summary(reservation)


@router.post("/bookings/{booking_id}/no-show", response_model=ReservationSummary)
async def mark_no_show(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
) -> ReservationSummary:
    reservation = await lifecycle.mark_no_show(db, booking_id)
    await db.commit()
    return reservation_summary(reservation)
