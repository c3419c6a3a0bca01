"""Reservation writer — the transactional boundary for new reservations.

One SERIALIZABLE transaction per attempt:
1. tenant checks, vehicle row lock, duplicate check
2. fresh pricing (happens-before the conflict check)
3. conflict check, reclaim of stale blocks
4. discount redemption (conditional update)
5. reservation, availability block and extra lines inserted
6. commit

The exclusion constraint on availability_blocks is the final guard:
if two transactions slip past the conflict check, the loser fails with
an exclusion violation or a serialization failure and never commits.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.booking.conflicts import ConflictChecker, is_expired_pending
from fleetbook.booking.lifecycle import ReservationLifecycle
from fleetbook.config import settings
from fleetbook.errors import BookingError, ConflictError, InternalError, NotFoundError, ValidationError
from fleetbook.models.catalog import PaymentMethod
from fleetbook.models.fleet import Vehicle
from fleetbook.models.organization import Organization
from fleetbook.models.reservation import AvailabilityBlock, Reservation, ReservationExtraLine
from fleetbook.pricing.composer import PriceComposer
from fleetbook.pricing.discounts import DiscountApplied
from fleetbook.pricing.engine import PriceQuote, PricingEngine
from fleetbook.pricing.extras import ExtraSelection
from fleetbook.pricing.money import ZERO
from fleetbook.schemas.booking import RentalInterval, ReservationCreate
from fleetbook.schemas.reservation import ACTIVE_STATUSES, BlockReason, BookingStatus, PaymentStatus
from fleetbook.tenants.access import TenantGuard

logger = structlog.get_logger()

SERIALIZATION_FAILURES = frozenset({"40001", "40P01"})
EXCLUSION_VIOLATION = "23P01"

UNAVAILABLE_MESSAGE = "The vehicle is not available for the requested dates"
DUPLICATE_MESSAGE = "A booking already exists for this customer, vehicle, and date range"


def sqlstate(error: DBAPIError) -> Optional[str]:
    """SQLSTATE of a driver error, looking through the asyncpg adapter."""
    orig = error.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return code
    return None


def booking_number_for(reservation_id: uuid.UUID) -> str:
    return f"BK-{reservation_id.hex[:8].upper()}"


def validate_interval(request: RentalInterval) -> None:
    validate_dates(request.pickup_date, request.dropoff_date)


def validate_dates(pickup_date: date, dropoff_date: date) -> None:
    if dropoff_date <= pickup_date:
        raise ValidationError("Dropoff date must be after pickup date")
    rental_days = (dropoff_date - pickup_date).days
    if rental_days > settings.max_rental_days:
        raise ValidationError(
            f"Rental cannot be longer than {settings.max_rental_days} days",
            rental_days=rental_days,
            max_rental_days=settings.max_rental_days,
        )


@dataclass
class ReservationReceipt:
    reservation: Reservation
    organization: Organization
    vehicle: Vehicle
    quote: PriceQuote
    payment_url: Optional[str] = None

    @property
    def warnings(self) -> list[str]:
        return self.quote.warnings


class ReservationWriter:
    """Creates reservations atomically, retrying on serialization failures."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        pricing: Optional[PricingEngine] = None,
        conflicts: Optional[ConflictChecker] = None,
        tenants: Optional[TenantGuard] = None,
        lifecycle: Optional[ReservationLifecycle] = None,
        max_attempts: Optional[int] = None,
        hold_period: Optional[timedelta] = None,
    ):
        self.session_factory = session_factory
        self.pricing = pricing or PricingEngine()
        self.conflicts = conflicts or ConflictChecker()
        self.tenants = tenants or TenantGuard()
        self.lifecycle = lifecycle or ReservationLifecycle()
        self.max_attempts = max(1, max_attempts or settings.booking_max_attempts)
        self.hold_period = hold_period or timedelta(hours=settings.booking_expiry_hours)

    async def create(
        self,
        slug: str,
        request: ReservationCreate,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReservationReceipt:
        """Price and reserve a vehicle, or raise a BookingError.

        Raises:
            ValidationError: malformed interval
            NotFoundError: tenant, vehicle, location or payment method absent
            LimitExceededError: tenant unsubscribed or over its monthly quota
            ConflictError: vehicle unavailable or duplicate booking
            InternalError: storage failure; nothing was persisted
        """
        validate_interval(request)

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._create_once(slug, request, ip_address, user_agent, now)
            except BookingError:
                raise
            except DBAPIError as exc:
                code = sqlstate(exc)
                if code == EXCLUSION_VIOLATION:
                    logger.info(
                        "reservation_conflict",
                        vehicle_id=str(request.vehicle_id),
                        source="exclusion_constraint",
                    )
                    raise ConflictError(
                        UNAVAILABLE_MESSAGE, vehicle_id=str(request.vehicle_id)
                    ) from exc
                if code in SERIALIZATION_FAILURES:
                    if attempt < self.max_attempts:
                        logger.info(
                            "serialization_retry",
                            vehicle_id=str(request.vehicle_id),
                            attempt=attempt,
                        )
                        continue
                    raise ConflictError(
                        "The vehicle is being booked by another customer, please retry",
                        vehicle_id=str(request.vehicle_id),
                    ) from exc
                logger.error("reservation_write_failed", error=str(exc), sqlstate=code)
                raise InternalError("Failed to create booking") from exc
            except SQLAlchemyError as exc:
                logger.error("reservation_write_failed", error=str(exc))
                raise InternalError("Failed to create booking") from exc

        raise InternalError("Failed to create booking")

    async def _create_once(
        self,
        slug: str,
        request: ReservationCreate,
        ip_address: Optional[str],
        user_agent: Optional[str],
        now: Optional[datetime],
    ) -> ReservationReceipt:
        now = now or datetime.now(timezone.utc)

        async with self.session_factory() as db:
            async with db.begin():
                await db.connection(execution_options={"isolation_level": "SERIALIZABLE"})

                organization = await self.tenants.require_booking_allowed(db, slug, now)
                vehicle = await self.pricing.rules.require_vehicle(
                    db, organization.id, request.vehicle_id, for_update=True
                )
                if not vehicle.is_available_for_booking:
                    raise ConflictError(UNAVAILABLE_MESSAGE, vehicle_id=str(vehicle.id))
                payment_method = await self._payment_method(
                    db, organization.id, request.payment_method_id
                )
                await self._check_duplicate(db, organization.id, vehicle.id, request, now)

                quote = await self.pricing.quote(
                    db,
                    organization,
                    vehicle,
                    request.pickup_date,
                    request.dropoff_date,
                    request.pickup_location_id,
                    request.dropoff_location_id,
                    extras=[
                        ExtraSelection(extra_id=e.extra_id, quantity=e.quantity)
                        for e in request.selected_extras
                    ],
                    insurance_type_id=request.selected_insurance_id,
                    discount_code=request.discount_code,
                    now=now,
                )

                conflict = await self.conflicts.check(
                    db, organization.id, vehicle.id, request.pickup_date, request.dropoff_date, now
                )
                if conflict:
                    raise ConflictError(
                        UNAVAILABLE_MESSAGE,
                        vehicle_id=str(vehicle.id),
                        reservation_ids=[str(r) for r in conflict.reservation_ids],
                    )
                await self._reclaim(db, conflict.stale_reservation_ids, now)

                if isinstance(quote.discount, DiscountApplied):
                    if not await self.pricing.discounts.redeem(db, quote.discount):
                        quote = quote.without_discount("exhausted")

                reservation = self._build_reservation(
                    organization, vehicle, request, quote, payment_method,
                    ip_address, user_agent, now,
                )
                db.add(reservation)
                await db.flush()

                db.add(
                    AvailabilityBlock(
                        vehicle_id=vehicle.id,
                        reservation_id=reservation.id,
                        blocked_from=request.pickup_date,
                        blocked_until=request.dropoff_date,
                        reason=BlockReason.BOOKED.value,
                    )
                )
                await db.flush()

        payment_url = None
        if reservation.deposit_amount < reservation.total_price:
            payment_url = settings.payment_url_template.format(
                slug=slug, reservation_id=reservation.id
            )

        logger.info(
            "reservation_created",
            reservation_id=str(reservation.id),
            booking_number=reservation.booking_number,
            organization_id=str(organization.id),
            vehicle_id=str(vehicle.id),
            pickup=request.pickup_date.isoformat(),
            dropoff=request.dropoff_date.isoformat(),
            total=str(reservation.total_price),
        )
        return ReservationReceipt(
            reservation=reservation,
            organization=organization,
            vehicle=vehicle,
            quote=quote,
            payment_url=payment_url,
        )

    async def _payment_method(
        self,
        db: AsyncSession,
        organization_id: uuid.UUID,
        payment_method_id: Optional[uuid.UUID],
    ) -> Optional[PaymentMethod]:
        if payment_method_id is None:
            return None
        result = await db.execute(
            select(PaymentMethod).where(
                PaymentMethod.id == payment_method_id,
                PaymentMethod.organization_id == organization_id,
                PaymentMethod.is_active == True,  # noqa: E712
            )
        )
        method = result.scalar_one_or_none()
        if method is None:
            raise NotFoundError(
                "Payment method not found", payment_method_id=str(payment_method_id)
            )
        return method

    async def _check_duplicate(
        self,
        db: AsyncSession,
        organization_id: uuid.UUID,
        vehicle_id: uuid.UUID,
        request: ReservationCreate,
        now: datetime,
    ) -> None:
        result = await db.execute(
            select(Reservation).where(
                Reservation.organization_id == organization_id,
                Reservation.vehicle_id == vehicle_id,
                Reservation.customer_email == request.customer_email,
                Reservation.booking_status.in_([s.value for s in ACTIVE_STATUSES]),
                Reservation.pickup_date < request.dropoff_date,
                Reservation.dropoff_date > request.pickup_date,
            )
        )
        duplicates = [r for r in result.scalars().all() if not is_expired_pending(r, now)]
        if duplicates:
            raise ConflictError(
                DUPLICATE_MESSAGE, reservation_ids=[str(r.id) for r in duplicates]
            )

    async def _reclaim(
        self, db: AsyncSession, reservation_ids: list[uuid.UUID], now: datetime
    ) -> None:
        """Free blocks of expired or finished reservations overlapping the new interval."""
        for reservation_id in reservation_ids:
            stale = await self.lifecycle.get(db, reservation_id, for_update=True)
            if is_expired_pending(stale, now):
                await self.lifecycle.expire(db, stale)
            else:
                await self.lifecycle.release_block(db, stale.id)

    def _build_reservation(
        self,
        organization: Organization,
        vehicle: Vehicle,
        request: ReservationCreate,
        quote: PriceQuote,
        payment_method: Optional[PaymentMethod],
        ip_address: Optional[str],
        user_agent: Optional[str],
        now: datetime,
    ) -> Reservation:
        breakdown = quote.breakdown
        deposit = PriceComposer(tax_rate=breakdown.tax_rate).deposit(
            breakdown.total_price, payment_method
        )
        reservation_id = uuid.uuid4()
        discount_code_id = (
            quote.discount.discount_code_id
            if isinstance(quote.discount, DiscountApplied) else None
        )

        return Reservation(
            id=reservation_id,
            organization_id=organization.id,
            vehicle_id=vehicle.id,
            category_id=vehicle.category_id,
            booking_number=booking_number_for(reservation_id),
            # Customer
            customer_full_name=request.customer_full_name,
            customer_email=request.customer_email,
            customer_phone=request.customer_phone,
            customer_id_number=request.customer_id_number,
            customer_driver_license=request.customer_driver_license,
            customer_date_of_birth=request.customer_date_of_birth,
            customer_address=request.customer_address,
            customer_city=request.customer_city,
            customer_country=request.customer_country,
            customer_tax_id=request.customer_tax_id,
            # Rental
            pickup_date=request.pickup_date,
            pickup_time=request.pickup_time,
            pickup_location_id=request.pickup_location_id,
            dropoff_date=request.dropoff_date,
            dropoff_time=request.dropoff_time,
            dropoff_location_id=request.dropoff_location_id,
            rental_days=breakdown.rental_days,
            # Pricing
            base_price=breakdown.base_price,
            extras_price=breakdown.extras_price,
            insurance_price=breakdown.insurance_price,
            location_fees=breakdown.location_fees,
            discount_amount=breakdown.discount_amount,
            tax_rate=breakdown.tax_rate,
            tax_amount=breakdown.tax_amount,
            total_price=breakdown.total_price,
            currency=organization.currency or settings.currency,
            selected_insurance_id=quote.insurance.insurance_type_id,
            discount_code_id=discount_code_id,
            # Payment
            payment_method_id=payment_method.id if payment_method else None,
            payment_status=PaymentStatus.PENDING.value,
            deposit_amount=deposit,
            amount_paid=ZERO,
            amount_remaining=breakdown.total_price,
            # Status
            booking_status=BookingStatus.PENDING.value,
            expires_at=now + self.hold_period,
            # Notes & source
            flight_number=request.flight_number,
            special_requests=request.special_requests,
            customer_notes=request.customer_notes,
            ip_address=ip_address,
            user_agent=user_agent,
            extra_lines=[
                ReservationExtraLine(
                    extra_option_id=line.extra_option_id,
                    name=line.name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total_price=line.total,
                    is_per_day=line.is_per_day,
                )
                for line in quote.extras.lines
            ],
        )
