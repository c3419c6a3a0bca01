"""Reservation lifecycle — status transitions after creation.

Every transition locks the reservation row, and transitions that end
the claim on the vehicle (cancel, expire, complete, no-show) delete the
availability block in the same transaction. Callers commit.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.errors import ConflictError, NotFoundError, ValidationError
from fleetbook.models.reservation import AvailabilityBlock, PaymentTransaction, Reservation
from fleetbook.pricing.money import ZERO, round_money, to_decimal
from fleetbook.schemas.reservation import BookingStatus, PaymentStatus, can_transition

logger = structlog.get_logger()

PAYABLE_STATUSES = frozenset(
    {
        BookingStatus.PENDING.value,
        BookingStatus.CONFIRMED.value,
        BookingStatus.IN_PROGRESS.value,
        BookingStatus.COMPLETED.value,
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReservationLifecycle:
    """Applies lifecycle events to persisted reservations."""

    async def get(
        self, db: AsyncSession, reservation_id: uuid.UUID, for_update: bool = False
    ) -> Reservation:
        stmt = select(Reservation).where(Reservation.id == reservation_id)
        if for_update:
            stmt = stmt.with_for_update()
        reservation = (await db.execute(stmt)).scalar_one_or_none()
        if reservation is None:
            raise NotFoundError("Booking not found", reservation_id=str(reservation_id))
        return reservation

    async def release_block(self, db: AsyncSession, reservation_id: uuid.UUID) -> None:
        await db.execute(
            delete(AvailabilityBlock).where(AvailabilityBlock.reservation_id == reservation_id)
        )

    def _transition(self, reservation: Reservation, target: BookingStatus) -> None:
        if not can_transition(reservation.booking_status, target.value):
            raise ValidationError(
                f"Cannot move a {reservation.booking_status} booking to {target.value}",
                booking_status=reservation.booking_status,
            )
        reservation.booking_status = target.value

    async def confirm_payment(
        self,
        db: AsyncSession,
        reservation_id: uuid.UUID,
        amount: Decimal,
        provider_transaction_id: str,
        provider: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Reservation:
        """Record an acknowledged payment and confirm a pending reservation.

        Idempotent on provider_transaction_id: a repeated event returns the
        reservation unchanged.
        """
        now = now or _utcnow()
        reservation = await self.get(db, reservation_id, for_update=True)

        existing = await db.execute(
            select(PaymentTransaction.reservation_id).where(
                PaymentTransaction.provider_transaction_id == provider_transaction_id
            )
        )
        recorded_for = existing.scalar_one_or_none()
        if recorded_for is not None:
            if recorded_for != reservation.id:
                raise ConflictError(
                    "Payment transaction is already recorded for another booking",
                    transaction_id=provider_transaction_id,
                )
            logger.info(
                "payment_already_recorded",
                reservation_id=str(reservation_id),
                transaction_id=provider_transaction_id,
            )
            return reservation

        if reservation.booking_status not in PAYABLE_STATUSES:
            raise ConflictError(
                f"Booking is {reservation.booking_status} and can no longer be paid",
                booking_status=reservation.booking_status,
            )
        if reservation.booking_status == BookingStatus.PENDING.value and (
            reservation.expires_at is not None and reservation.expires_at <= now
        ):
            raise ConflictError("Booking has expired", booking_status="expired")

        amount = round_money(to_decimal(amount))
        total = to_decimal(reservation.total_price)
        previously_paid = to_decimal(reservation.amount_paid)
        amount_paid = previously_paid + amount

        if amount >= total:
            transaction_type = "full_payment"
        elif previously_paid > ZERO:
            transaction_type = "remaining_payment"
        else:
            transaction_type = "deposit"

        reservation.amount_paid = amount_paid
        reservation.amount_remaining = max(ZERO, total - amount_paid)
        reservation.payment_status = (
            PaymentStatus.FULLY_PAID.value if amount_paid >= total
            else PaymentStatus.DEPOSIT_PAID.value
        )
        if reservation.booking_status == BookingStatus.PENDING.value:
            self._transition(reservation, BookingStatus.CONFIRMED)
            reservation.confirmed_at = now
            reservation.expires_at = None

        db.add(
            PaymentTransaction(
                reservation_id=reservation.id,
                provider_transaction_id=provider_transaction_id,
                amount=amount,
                currency=reservation.currency,
                transaction_type=transaction_type,
                payment_provider=provider,
                status="completed",
                completed_at=now,
            )
        )
        await db.flush()

        logger.info(
            "payment_confirmed",
            reservation_id=str(reservation.id),
            amount=str(amount),
            payment_status=reservation.payment_status,
            booking_status=reservation.booking_status,
        )
        return reservation

    async def start_rental(
        self, db: AsyncSession, reservation_id: uuid.UUID, now: Optional[datetime] = None
    ) -> Reservation:
        """Pickup: confirmed → in_progress."""
        reservation = await self.get(db, reservation_id, for_update=True)
        self._transition(reservation, BookingStatus.IN_PROGRESS)
        reservation.picked_up_at = now or _utcnow()
        await db.flush()
        logger.info("rental_started", reservation_id=str(reservation.id))
        return reservation

    async def complete_rental(
        self, db: AsyncSession, reservation_id: uuid.UUID, now: Optional[datetime] = None
    ) -> Reservation:
        """Dropoff: in_progress → completed, vehicle released."""
        reservation = await self.get(db, reservation_id, for_update=True)
        self._transition(reservation, BookingStatus.COMPLETED)
        reservation.returned_at = now or _utcnow()
        await self.release_block(db, reservation.id)
        await db.flush()
        logger.info("rental_completed", reservation_id=str(reservation.id))
        return reservation

    async def mark_no_show(
        self, db: AsyncSession, reservation_id: uuid.UUID
    ) -> Reservation:
        reservation = await self.get(db, reservation_id, for_update=True)
        self._transition(reservation, BookingStatus.NO_SHOW)
        await self.release_block(db, reservation.id)
        await db.flush()
        logger.info("reservation_no_show", reservation_id=str(reservation.id))
        return reservation

    async def cancel(
        self,
        db: AsyncSession,
        reservation_id: uuid.UUID,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Reservation:
        reservation = await self.get(db, reservation_id, for_update=True)
        if not can_transition(reservation.booking_status, BookingStatus.CANCELLED.value):
            raise ValidationError(
                "Cannot cancel a booking that is completed or in progress",
                booking_status=reservation.booking_status,
            )
        reservation.booking_status = BookingStatus.CANCELLED.value
        reservation.cancelled_at = now or _utcnow()
        reservation.cancellation_reason = reason
        await self.release_block(db, reservation.id)
        await db.flush()
        logger.info("reservation_cancelled", reservation_id=str(reservation.id), reason=reason)
        return reservation

    async def expire(self, db: AsyncSession, reservation: Reservation) -> None:
        """Release an unconfirmed reservation whose hold ran out. Row must be locked."""
        self._transition(reservation, BookingStatus.EXPIRED)
        await self.release_block(db, reservation.id)
        logger.info("reservation_expired", reservation_id=str(reservation.id))
