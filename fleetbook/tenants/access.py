"""Tenant access — organization resolution, subscription and monthly quota."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetbook.errors import LimitExceededError, NotFoundError
from fleetbook.models.organization import Organization
from fleetbook.models.reservation import Reservation

logger = structlog.get_logger()

ACTIVE_SUBSCRIPTIONS = frozenset({"active", "trial"})


@dataclass
class AccessReport:
    is_valid: bool
    organization_id: Optional[uuid.UUID] = None
    subscription_status: Optional[str] = None
    is_active: bool = False
    error_message: Optional[str] = None
    monthly_usage: int = 0
    monthly_limit: Optional[int] = None


def month_start(now: datetime, tz_name: Optional[str]) -> datetime:
    """First instant of the current calendar month in the tenant's timezone."""
    try:
        tz = ZoneInfo(tz_name) if tz_name else timezone.utc
    except ZoneInfoNotFoundError:
        tz = timezone.utc
    local = now.astimezone(tz)
    return local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class TenantGuard:
    """Decides whether an organization may take new reservations."""

    async def resolve(self, db: AsyncSession, slug: str) -> Organization:
        result = await db.execute(
            select(Organization).where(
                Organization.slug == slug,
                Organization.is_active == True,  # noqa: E712
            )
        )
        organization = result.scalar_one_or_none()
        if organization is None:
            raise NotFoundError("Organization not found or inactive", slug=slug)
        return organization

    async def require_subscribed(self, db: AsyncSession, slug: str) -> Organization:
        organization = await self.resolve(db, slug)
        if organization.subscription_status not in ACTIVE_SUBSCRIPTIONS:
            raise LimitExceededError(
                "Organization subscription is not active",
                subscription_status=organization.subscription_status,
            )
        return organization

    async def monthly_usage(
        self, db: AsyncSession, organization: Organization, now: datetime
    ) -> int:
        since = month_start(now, organization.timezone)
        result = await db.execute(
            select(func.count(Reservation.id)).where(
                Reservation.organization_id == organization.id,
                Reservation.created_at >= since,
            )
        )
        return result.scalar_one()

    async def require_booking_allowed(
        self, db: AsyncSession, slug: str, now: Optional[datetime] = None
    ) -> Organization:
        """Resolve the tenant and refuse if inactive, unsubscribed or over quota."""
        now = now or datetime.now(timezone.utc)
        organization = await self.require_subscribed(db, slug)

        limit = organization.max_contracts_per_month
        if limit is not None:
            usage = await self.monthly_usage(db, organization, now)
            if usage >= limit:
                logger.warning(
                    "monthly_limit_reached",
                    organization_id=str(organization.id),
                    usage=usage,
                    limit=limit,
                )
                raise LimitExceededError(
                    f"Monthly booking limit reached ({usage}/{limit})",
                    quota="max_contracts_per_month",
                    limit=limit,
                    usage=usage,
                )
        return organization

    async def report(
        self, db: AsyncSession, slug: str, now: Optional[datetime] = None
    ) -> AccessReport:
        """Non-raising variant for the validate endpoint."""
        now = now or datetime.now(timezone.utc)
        result = await db.execute(select(Organization).where(Organization.slug == slug))
        organization = result.scalar_one_or_none()
        if organization is None:
            return AccessReport(is_valid=False, error_message="Organization not found")

        report = AccessReport(
            is_valid=True,
            organization_id=organization.id,
            subscription_status=organization.subscription_status,
            is_active=organization.is_active,
            monthly_limit=organization.max_contracts_per_month,
        )
        if not organization.is_active:
            report.is_valid = False
            report.error_message = "Organization is inactive"
        elif organization.subscription_status not in ACTIVE_SUBSCRIPTIONS:
            report.is_valid = False
            report.error_message = "Organization subscription is not active"
        else:
            report.monthly_usage = await self.monthly_usage(db, organization, now)
            limit = organization.max_contracts_per_month
            if limit is not None and report.monthly_usage >= limit:
                report.is_valid = False
                report.error_message = "Monthly booking limit reached"
        return report
