"""Public tenant API: access validation, catalog reads, vehicle search and quotes."""

import uuid
from datetime import date, datetime, timezone

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.api.dependencies import (
    get_conflict_checker,
    get_pricing_engine,
    get_tenant_guard,
)
from fleetbook.api.serializers import breakdown_out
from fleetbook.booking.conflicts import ConflictChecker
from fleetbook.booking.writer import validate_dates, validate_interval
from fleetbook.database import get_db
from fleetbook.errors import NotFoundError
from fleetbook.models.catalog import ExtraOption, InsuranceType, Location, PaymentMethod
from fleetbook.models.fleet import Vehicle, VehicleCategory
from fleetbook.pricing.composer import PriceComposer
from fleetbook.pricing.engine import PricingEngine, default_rate_for, tax_rate_for
from fleetbook.pricing.extras import ExtraSelection
from fleetbook.pricing.money import ZERO
from fleetbook.schemas.booking import QuoteRequest, SearchRequest
from fleetbook.tenants.access import TenantGuard

logger = structlog.get_logger()

OFFLINE_PROVIDER = "cash"

router = APIRouter(prefix="/api/v1/organizations", tags=["organizations"])


@router.get("/{slug}/validate")
async def validate_organization(
    slug: str,
    db: AsyncSession = Depends(get_db),
    tenants: TenantGuard = Depends(get_tenant_guard),
) -> dict:
    """Report whether the organization can currently take bookings."""
    report = await tenants.report(db, slug)
    return {
        "is_valid": report.is_valid,
        "organization_id": str(report.organization_id) if report.organization_id else None,
        "subscription_status": report.subscription_status,
        "is_active": report.is_active,
        "error_message": report.error_message,
        "monthly_usage": report.monthly_usage,
        "monthly_limit": report.monthly_limit,
    }


@router.get("/{slug}/locations")
async def list_locations(
    slug: str,
    db: AsyncSession = Depends(get_db),
    tenants: TenantGuard = Depends(get_tenant_guard),
) -> dict:
    """Active pickup and dropoff locations with their surcharges."""
    organization = await tenants.require_subscribed(db, slug)
    locations = (
        await db.execute(
            select(Location)
            .where(
                Location.organization_id == organization.id,
                Location.is_active == True,  # noqa: E712
            )
            .order_by(Location.name)
        )
    ).scalars().all()
    return {
        "currency": organization.currency,
        "locations": [
            {
                "id": str(location.id),
                "name": location.name,
                "address": location.address,
                "extra_pickup_fee": float(location.extra_pickup_fee or 0),
                "extra_delivery_fee": float(location.extra_delivery_fee or 0),
            }
            for location in locations
        ],
    }


@router.get("/{slug}/payment-methods")
async def list_payment_methods(
    slug: str,
    db: AsyncSession = Depends(get_db),
    tenants: TenantGuard = Depends(get_tenant_guard),
) -> dict:
    """Online payment methods and their deposit terms; pay-on-arrival is not offered."""
    organization = await tenants.require_subscribed(db, slug)
    methods = (
        await db.execute(
            select(PaymentMethod)
            .where(
                PaymentMethod.organization_id == organization.id,
                PaymentMethod.is_active == True,  # noqa: E712
                PaymentMethod.provider != OFFLINE_PROVIDER,
            )
            .order_by(PaymentMethod.display_order, PaymentMethod.name)
        )
    ).scalars().all()
    return {
        "payment_methods": [
            {
                "id": str(method.id),
                "name": method.name,
                "provider": method.provider,
                "deposit_percentage": (
                    float(method.deposit_percentage)
                    if method.deposit_percentage is not None
                    else None
                ),
                "minimum_deposit_amount": (
                    float(method.minimum_deposit_amount)
                    if method.minimum_deposit_amount is not None
                    else None
                ),
                "requires_full_payment": bool(method.requires_full_payment),
            }
            for method in methods
        ],
    }


@router.post("/{slug}/cars/search")
async def search_cars(
    slug: str,
    data: SearchRequest,
    db: AsyncSession = Depends(get_db),
    tenants: TenantGuard = Depends(get_tenant_guard),
    pricing: PricingEngine = Depends(get_pricing_engine),
    conflicts: ConflictChecker = Depends(get_conflict_checker),
) -> dict:
    """List vehicles free for the interval with their base price and location fees.

    Args:
        slug: Organization slug
        data: Interval, locations and optional vehicle type
        db: Database session

    Returns:
        Available vehicles with a price breakdown (no extras, insurance or discount)
    """
    validate_interval(data)
    now = datetime.now(timezone.utc)
    organization = await tenants.resolve(db, slug)
    fees = await pricing.fees.resolve(
        db, organization.id, data.pickup_location_id, data.dropoff_location_id
    )
    composer = PriceComposer(tax_rate=tax_rate_for(organization))

    stmt = (
        select(Vehicle)
        .where(
            Vehicle.organization_id == organization.id,
            Vehicle.is_active == True,  # noqa: E712
            Vehicle.is_available_for_booking == True,  # noqa: E712
        )
        .order_by(Vehicle.make, Vehicle.model)
    )
    if data.vehicle_type:
        stmt = stmt.join(VehicleCategory, VehicleCategory.id == Vehicle.category_id).where(
            VehicleCategory.vehicle_type == data.vehicle_type
        )
    vehicles = (await db.execute(stmt)).scalars().all()

    cars = []
    for vehicle in vehicles:
        conflict = await conflicts.check(
            db, organization.id, vehicle.id, data.pickup_date, data.dropoff_date, now=now
        )
        if conflict:
            continue
        base = await pricing.rules.resolve(
            db, vehicle, data.pickup_date, data.dropoff_date, default_rate_for(organization)
        )
        breakdown = composer.compose(
            rental_days=base.rental_days,
            base_price=base.amount,
            extras_price=ZERO,
            insurance_price=ZERO,
            location_fees=fees.amount,
        )
        cars.append(
            {
                "id": str(vehicle.id),
                "make": vehicle.make,
                "model": vehicle.model,
                "year": vehicle.year,
                "color": vehicle.color,
                "main_photo_url": vehicle.main_photo_url,
                "category": vehicle.category.name if vehicle.category else None,
                "vehicle_type": vehicle.category.vehicle_type if vehicle.category else None,
                "average_daily_rate": float(base.average_daily_rate),
                "volume_discount": base.volume_discount_kind,
                "price": breakdown_out(breakdown).model_dump(),
            }
        )

    logger.info(
        "cars_searched",
        slug=slug,
        pickup=data.pickup_date.isoformat(),
        dropoff=data.dropoff_date.isoformat(),
        available=len(cars),
        total=len(vehicles),
    )
    return {"currency": organization.currency, "cars": cars}


@router.get("/{slug}/cars/{car_id}")
async def get_car(
    slug: str,
    car_id: uuid.UUID,
    pickup_date: date,
    dropoff_date: date,
    db: AsyncSession = Depends(get_db),
    tenants: TenantGuard = Depends(get_tenant_guard),
    pricing: PricingEngine = Depends(get_pricing_engine),
) -> dict:
    """Vehicle detail for the booking page with its add-ons and base price.

    Location fees, extras and insurance are priced by the quote endpoint once
    the customer has chosen them.
    """
    validate_dates(pickup_date, dropoff_date)
    organization = await tenants.require_subscribed(db, slug)
    vehicle = await pricing.rules.require_vehicle(db, organization.id, car_id)
    base = await pricing.rules.resolve(
        db, vehicle, pickup_date, dropoff_date, default_rate_for(organization)
    )
    breakdown = PriceComposer(tax_rate=tax_rate_for(organization)).compose(
        rental_days=base.rental_days,
        base_price=base.amount,
        extras_price=ZERO,
        insurance_price=ZERO,
        location_fees=ZERO,
    )

    extras = (
        await db.execute(
            select(ExtraOption)
            .where(
                ExtraOption.organization_id == organization.id,
                ExtraOption.is_active == True,  # noqa: E712
            )
            .order_by(ExtraOption.display_order, ExtraOption.name)
        )
    ).scalars().all()
    insurance_types = (
        await db.execute(
            select(InsuranceType)
            .where(
                InsuranceType.organization_id == organization.id,
                InsuranceType.is_active == True,  # noqa: E712
            )
            .order_by(InsuranceType.is_default.desc(), InsuranceType.price_per_day)
        )
    ).scalars().all()

    category = vehicle.category
    return {
        "currency": organization.currency,
        "car": {
            "id": str(vehicle.id),
            "make": vehicle.make,
            "model": vehicle.model,
            "year": vehicle.year,
            "license_plate": vehicle.license_plate,
            "color": vehicle.color,
            "main_photo_url": vehicle.main_photo_url,
            "category": (
                {"id": str(category.id), "name": category.name, "vehicle_type": category.vehicle_type}
                if category
                else None
            ),
        },
        "extras": [
            {
                "id": str(extra.id),
                "name": extra.name,
                "description": extra.description,
                "price_per_day": float(extra.price_per_day),
                "is_one_time_fee": bool(extra.is_one_time_fee),
            }
            for extra in extras
        ],
        "insurance_types": [
            {
                "id": str(insurance.id),
                "name": insurance.name,
                "description": insurance.description,
                "price_per_day": float(insurance.price_per_day),
                "deductible": float(insurance.deductible or 0),
                "is_default": bool(insurance.is_default),
            }
            for insurance in insurance_types
        ],
        "average_daily_rate": float(base.average_daily_rate),
        "volume_discount": base.volume_discount_kind,
        "price": breakdown_out(breakdown).model_dump(),
    }


@router.post("/{slug}/quote")
async def quote_booking(
    slug: str,
    data: QuoteRequest,
    db: AsyncSession = Depends(get_db),
    tenants: TenantGuard = Depends(get_tenant_guard),
    pricing: PricingEngine = Depends(get_pricing_engine),
) -> dict:
    """Price a full selection without reserving anything or redeeming the code."""
    validate_interval(data)
    organization = await tenants.resolve(db, slug)
    vehicle = await pricing.rules.require_vehicle(db, organization.id, data.vehicle_id)

    quote = await pricing.quote(
        db,
        organization,
        vehicle,
        data.pickup_date,
        data.dropoff_date,
        data.pickup_location_id,
        data.dropoff_location_id,
        extras=[ExtraSelection(extra_id=e.extra_id, quantity=e.quantity) for e in data.selected_extras],
        insurance_type_id=data.selected_insurance_id,
        discount_code=data.discount_code,
    )

    deposit = quote.breakdown.total_price
    if data.payment_method_id is not None:
        method = (
            await db.execute(
                select(PaymentMethod).where(
                    PaymentMethod.id == data.payment_method_id,
                    PaymentMethod.organization_id == organization.id,
                    PaymentMethod.is_active == True,  # noqa: E712
                )
            )
        ).scalar_one_or_none()
        if method is None:
            raise NotFoundError(
                "Payment method not found", payment_method_id=str(data.payment_method_id)
            )
        deposit = PriceComposer(tax_rate=quote.breakdown.tax_rate).deposit(
            quote.breakdown.total_price, method
        )

    return {
        "currency": organization.currency,
        "price": breakdown_out(quote.breakdown).model_dump(),
        "extras": [
            {
                "extra_option_id": str(line.extra_option_id),
                "name": line.name,
                "quantity": line.quantity,
                "unit_price": float(line.unit_price),
                "total_price": float(line.total),
                "is_per_day": line.is_per_day,
            }
            for line in quote.extras.lines
        ],
        "deposit_amount": float(deposit),
        "warnings": quote.warnings,
    }
