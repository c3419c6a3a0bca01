"""Shared FastAPI dependencies for the booking engine components."""

from fleetbook.booking.conflicts import ConflictChecker
from fleetbook.booking.lifecycle import ReservationLifecycle
from fleetbook.booking.writer import ReservationWriter
from fleetbook.database import async_session_maker
from fleetbook.pricing.engine import PricingEngine
from fleetbook.tenants.access import TenantGuard

_pricing = PricingEngine()
_conflicts = ConflictChecker()
_tenants = TenantGuard()
_lifecycle = ReservationLifecycle()
_writer = ReservationWriter(
    async_session_maker,
    pricing=_pricing,
    conflicts=_conflicts,
    tenants=_tenants,
    lifecycle=_lifecycle,
)


def get_pricing_engine() -> PricingEngine:
    return _pricing


def get_conflict_checker() -> ConflictChecker:
    return _conflicts


def get_tenant_guard() -> TenantGuard:
    return _tenants


def get_lifecycle() -> ReservationLifecycle:
    return _lifecycle


def get_reservation_writer() -> ReservationWriter:
    return _writer
