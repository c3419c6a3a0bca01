"""SQLAlchemy ORM models."""

from fleetbook.models.base import Base
from fleetbook.models.organization import Organization
from fleetbook.models.fleet import Vehicle, VehicleCategory
from fleetbook.models.pricing import PricingRule
from fleetbook.models.catalog import ExtraOption, InsuranceType, Location, PaymentMethod
from fleetbook.models.discount import DiscountCode
from fleetbook.models.reservation import (
    AvailabilityBlock,
    PaymentTransaction,
    Reservation,
    ReservationExtraLine,
)

__all__ = [
    "Base",
    "Organization",
    "Vehicle",
    "VehicleCategory",
    "PricingRule",
    "ExtraOption",
    "InsuranceType",
    "Location",
    "PaymentMethod",
    "DiscountCode",
    "Reservation",
    "ReservationExtraLine",
    "AvailabilityBlock",
    "PaymentTransaction",
]
