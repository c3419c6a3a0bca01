"""Seed database with a demo rental organization and its reference data."""

import asyncio
from datetime import date
from decimal import Decimal

from fleetbook.database import async_session_maker, engine, init_db
from fleetbook.models import (
    DiscountCode,
    ExtraOption,
    InsuranceType,
    Location,
    Organization,
    PaymentMethod,
    PricingRule,
    Vehicle,
    VehicleCategory,
)

ORGANIZATION = {
    "slug": "demo-rentals",
    "name": "Demo Rentals",
    "currency": "EUR",
    "timezone": "Europe/Athens",
    "tax_rate": Decimal("0.24"),
    "subscription_status": "trial",
    "max_contracts_per_month": 50,
}

CATEGORIES = [
    {"name": "Economy", "vehicle_type": "car"},
    {"name": "ATV", "vehicle_type": "atv"},
]

VEHICLES = [
    {"make": "Toyota", "model": "Yaris", "year": 2022, "license_plate": "DEM-1001", "category": "Economy"},
    {"make": "Fiat", "model": "Panda", "year": 2021, "license_plate": "DEM-1002", "category": "Economy"},
    {"make": "Polaris", "model": "Sportsman 450", "year": 2023, "license_plate": "DEM-2001", "category": "ATV"},
]

YEAR = date.today().year

PRICING_RULES = [
    # Category-wide season, weekly/monthly discounts
    {"category": "Economy", "start": date(YEAR, 1, 1), "end": date(YEAR, 12, 31),
     "price": "40.00", "weekly": "10", "monthly": "20", "priority": 0},
    # High season overrides the year-round rule
    {"category": "Economy", "start": date(YEAR, 7, 1), "end": date(YEAR, 8, 31),
     "price": "65.00", "weekly": "5", "monthly": None, "priority": 10},
    {"category": "ATV", "start": date(YEAR, 1, 1), "end": date(YEAR, 12, 31),
     "price": "35.00", "weekly": None, "monthly": None, "priority": 0},
]

EXTRAS = [
    {"name": "Child seat", "price_per_day": Decimal("5.00"), "is_one_time_fee": False, "display_order": 1},
    {"name": "Additional driver", "price_per_day": Decimal("7.50"), "is_one_time_fee": False, "display_order": 2},
    {"name": "Airport delivery", "price_per_day": Decimal("25.00"), "is_one_time_fee": True, "display_order": 3},
]

INSURANCE = [
    {"name": "Basic (CDW)", "price_per_day": Decimal("0.00"), "deductible": Decimal("900.00"), "is_default": True},
    {"name": "Full (FDW)", "price_per_day": Decimal("12.00"), "deductible": Decimal("0.00")},
]

LOCATIONS = [
    {"name": "Office", "address": "Main street 1"},
    {"name": "Airport", "address": "International airport", "extra_pickup_fee": Decimal("15.00"),
     "extra_delivery_fee": Decimal("15.00")},
]

PAYMENT_METHODS = [
    {"name": "Card deposit", "provider": "stripe", "deposit_percentage": Decimal("30"),
     "minimum_deposit_amount": Decimal("50.00"), "display_order": 1},
    {"name": "Pay in full", "provider": "stripe", "requires_full_payment": True, "display_order": 2},
]

DISCOUNT_CODES = [
    {"code": "SAVE10", "discount_type": "percentage", "discount_value": Decimal("10"), "max_uses": 100},
    {"code": "WELCOME20", "discount_type": "fixed", "discount_value": Decimal("20"), "max_uses": None},
]


async def seed():
    """Seed the database with a demo organization."""
    await init_db()

    async with async_session_maker() as session:
        org = Organization(**ORGANIZATION)
        session.add(org)
        await session.flush()
        print(f"  + Organization: {org.slug}")

        category_map = {}
        for cat_data in CATEGORIES:
            cat = VehicleCategory(organization_id=org.id, **cat_data)
            session.add(cat)
            await session.flush()
            category_map[cat_data["name"]] = cat.id
            print(f"  + Category: {cat_data['name']}")

        for v_data in VEHICLES:
            v_data = dict(v_data)
            category = v_data.pop("category")
            session.add(Vehicle(organization_id=org.id, category_id=category_map[category], **v_data))
            print(f"  + Vehicle: {v_data['make']} {v_data['model']}")

        for rule in PRICING_RULES:
            session.add(
                PricingRule(
                    organization_id=org.id,
                    category_id=category_map[rule["category"]],
                    start_date=rule["start"],
                    end_date=rule["end"],
                    price_per_day=Decimal(rule["price"]),
                    weekly_discount_percent=Decimal(rule["weekly"]) if rule["weekly"] else None,
                    monthly_discount_percent=Decimal(rule["monthly"]) if rule["monthly"] else None,
                    priority=rule["priority"],
                )
            )
        print(f"  + Pricing rules: {len(PRICING_RULES)}")

        for extra in EXTRAS:
            session.add(ExtraOption(organization_id=org.id, **extra))
        for insurance in INSURANCE:
            session.add(InsuranceType(organization_id=org.id, **insurance))
        for location in LOCATIONS:
            session.add(Location(organization_id=org.id, **location))
        for method in PAYMENT_METHODS:
            session.add(PaymentMethod(organization_id=org.id, **method))
        for code in DISCOUNT_CODES:
            session.add(DiscountCode(organization_id=org.id, **code))

        await session.commit()

    await engine.dispose()
    print("\nSeed completed!")


if __name__ == "__main__":
    asyncio.run(seed())
