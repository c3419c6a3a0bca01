"""Tests for the HTTP layer: routing, error rendering and response shapes."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from fleetbook.api.dependencies import (
    get_lifecycle,
    get_pricing_engine,
    get_reservation_writer,
    get_tenant_guard,
)
from fleetbook.config import settings
from fleetbook.database import get_db
from fleetbook.errors import ConflictError, LimitExceededError, NotFoundError
from fleetbook.main import app
from fleetbook.pricing.composer import PriceComposer
from fleetbook.pricing.rules import BasePrice
from fleetbook.tenants.access import AccessReport

BOOKING = {
    "vehicle_id": str(uuid.uuid4()),
    "pickup_date": "2024-06-01",
    "pickup_location_id": str(uuid.uuid4()),
    "dropoff_date": "2024-06-04",
    "dropoff_location_id": str(uuid.uuid4()),
    "customer_full_name": "Maria Papadopoulou",
    "customer_email": "maria@example.com",
    "customer_phone": "+30 690 000 0000",
}


async def _fake_db():
    db = MagicMock()
    db.commit = AsyncMock()
    yield db


@pytest.fixture
def client():
    app.dependency_overrides[get_db] = _fake_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _receipt(make_reservation):
    reservation = make_reservation(
        booking_number="BK-1A2B3C4D",
        expires_at=datetime(2024, 5, 21, 10, 0, tzinfo=timezone.utc),
    )
    breakdown = PriceComposer().compose(3, Decimal("150"), Decimal("20"), Decimal("30"), Decimal("15"))
    return SimpleNamespace(
        reservation=reservation,
        organization=SimpleNamespace(owner_telegram_id=None, telegram_bot_token=None),
        quote=SimpleNamespace(breakdown=breakdown),
        payment_url="/booking/demo/payment/x",
        warnings=["discount_code_exhausted"],
    )


class TestCreateBooking:
    def test_success(self, client, make_reservation):
        writer = MagicMock()
        writer.create = AsyncMock(return_value=_receipt(make_reservation))
        app.dependency_overrides[get_reservation_writer] = lambda: writer

        response = client.post("/api/v1/organizations/demo/bookings", json=BOOKING)

        assert response.status_code == 201
        body = response.json()
        assert body["booking"]["booking_number"] == "BK-1A2B3C4D"
        assert body["booking"]["booking_status"] == "pending"
        assert body["price"]["total_price"] == pytest.approx(266.6)
        assert body["warnings"] == ["discount_code_exhausted"]
        assert writer.create.await_args.args[0] == "demo"

    def test_conflict_rendered_as_409(self, client):
        writer = MagicMock()
        writer.create = AsyncMock(side_effect=ConflictError("The vehicle is not available", vehicle_id="v1"))
        app.dependency_overrides[get_reservation_writer] = lambda: writer

        response = client.post("/api/v1/organizations/demo/bookings", json=BOOKING)

        assert response.status_code == 409
        assert response.json() == {
            "error": "conflict",
            "message": "The vehicle is not available",
            "vehicle_id": "v1",
        }

    def test_malformed_body_is_400(self, client):
        response = client.post(
            "/api/v1/organizations/demo/bookings",
            json={**BOOKING, "customer_email": "not-an-email"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"


class TestBookingLifecycleRoutes:
    def test_unknown_booking_is_404(self, client):
        lifecycle = MagicMock()
        lifecycle.get = AsyncMock(side_effect=NotFoundError("Booking not found"))
        app.dependency_overrides[get_lifecycle] = lambda: lifecycle

        response = client.get(f"/api/v1/bookings/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_payment_returns_summary(self, client, make_reservation):
        reservation = make_reservation(
            booking_number="BK-1A2B3C4D",
            booking_status="confirmed",
            payment_status="deposit_paid",
            amount_paid=Decimal("79.98"),
            amount_remaining=Decimal("186.62"),
        )
        lifecycle = MagicMock()
        lifecycle.confirm_payment = AsyncMock(return_value=reservation)
        app.dependency_overrides[get_lifecycle] = lambda: lifecycle

        response = client.post(
            f"/api/v1/bookings/{reservation.id}/payment",
            json={"amount": "79.98", "provider_transaction_id": "txn-1", "provider": "stripe"},
        )

        assert response.status_code == 200
        assert response.json()["booking_status"] == "confirmed"
        assert lifecycle.confirm_payment.await_args.kwargs["provider_transaction_id"] == "txn-1"


class TestValidateOrganization:
    def test_report(self, client):
        guard = MagicMock()
        guard.report = AsyncMock(
            return_value=AccessReport(
                is_valid=False,
                subscription_status="active",
                is_active=True,
                error_message="Monthly booking limit reached",
                monthly_usage=10,
                monthly_limit=10,
            )
        )
        app.dependency_overrides[get_tenant_guard] = lambda: guard

        response = client.get("/api/v1/organizations/demo/validate")

        assert response.status_code == 200
        assert response.json()["is_valid"] is False
        assert response.json()["monthly_limit"] == 10


def _organization(**overrides):
    values = dict(
        id=uuid.uuid4(),
        slug="demo",
        currency="EUR",
        tax_rate=Decimal("0.24"),
        default_daily_rate=None,
        subscription_status="active",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _guard(organization):
    guard = MagicMock()
    guard.require_subscribed = AsyncMock(return_value=organization)
    return guard


def _db_with_rows(*row_lists):
    """Session whose successive execute() calls return the given row lists."""
    results = []
    for rows in row_lists:
        result = MagicMock()
        result.scalars.return_value.all.return_value = rows
        results.append(result)
    db = MagicMock()
    db.execute = AsyncMock(side_effect=results)

    async def override():
        yield db

    return override


class TestCatalogRoutes:
    def test_locations_with_fees(self, client):
        app.dependency_overrides[get_tenant_guard] = lambda: _guard(_organization())
        app.dependency_overrides[get_db] = _db_with_rows(
            [
                SimpleNamespace(
                    id=uuid.uuid4(),
                    name="Airport",
                    address="Heraklion Airport",
                    extra_pickup_fee=Decimal("15.00"),
                    extra_delivery_fee=Decimal("10.00"),
                ),
                SimpleNamespace(
                    id=uuid.uuid4(),
                    name="Office",
                    address=None,
                    extra_pickup_fee=Decimal("0"),
                    extra_delivery_fee=None,
                ),
            ]
        )

        response = client.get("/api/v1/organizations/demo/locations")

        assert response.status_code == 200
        locations = response.json()["locations"]
        assert [location["name"] for location in locations] == ["Airport", "Office"]
        assert locations[0]["extra_pickup_fee"] == 15.0
        assert locations[0]["extra_delivery_fee"] == 10.0
        assert locations[1]["extra_delivery_fee"] == 0.0

    def test_locations_of_lapsed_subscription_is_403(self, client):
        guard = MagicMock()
        guard.require_subscribed = AsyncMock(
            side_effect=LimitExceededError(
                "Organization subscription is not active", subscription_status="cancelled"
            )
        )
        app.dependency_overrides[get_tenant_guard] = lambda: guard

        response = client.get("/api/v1/organizations/demo/locations")

        assert response.status_code == 403
        assert response.json()["subscription_status"] == "cancelled"

    def test_payment_methods_with_deposit_terms(self, client):
        app.dependency_overrides[get_tenant_guard] = lambda: _guard(_organization())
        app.dependency_overrides[get_db] = _db_with_rows(
            [
                SimpleNamespace(
                    id=uuid.uuid4(),
                    name="Card",
                    provider="stripe",
                    deposit_percentage=Decimal("30.00"),
                    minimum_deposit_amount=Decimal("50.00"),
                    requires_full_payment=False,
                ),
                SimpleNamespace(
                    id=uuid.uuid4(),
                    name="Viva",
                    provider="viva_wallet",
                    deposit_percentage=None,
                    minimum_deposit_amount=None,
                    requires_full_payment=True,
                ),
            ]
        )

        response = client.get("/api/v1/organizations/demo/payment-methods")

        assert response.status_code == 200
        card, viva = response.json()["payment_methods"]
        assert card["deposit_percentage"] == 30.0
        assert card["minimum_deposit_amount"] == 50.0
        assert viva["deposit_percentage"] is None
        assert viva["requires_full_payment"] is True

    def test_unknown_organization_is_404(self, client):
        guard = MagicMock()
        guard.require_subscribed = AsyncMock(side_effect=NotFoundError("Organization not found or inactive"))
        app.dependency_overrides[get_tenant_guard] = lambda: guard

        response = client.get("/api/v1/organizations/nope/payment-methods")

        assert response.status_code == 404


class TestCarDetail:
    @pytest.fixture
    def pricing(self):
        pricing = MagicMock()
        pricing.rules.require_vehicle = AsyncMock(
            return_value=SimpleNamespace(
                id=uuid.uuid4(),
                make="Fiat",
                model="Panda",
                year=2022,
                license_plate="HKN-1234",
                color="white",
                main_photo_url=None,
                category=SimpleNamespace(id=uuid.uuid4(), name="Economy", vehicle_type="car"),
            )
        )
        pricing.rules.resolve = AsyncMock(return_value=BasePrice(rental_days=3, amount=Decimal("150")))
        return pricing

    def test_detail_with_extras_and_insurance(self, client, pricing):
        app.dependency_overrides[get_tenant_guard] = lambda: _guard(_organization())
        app.dependency_overrides[get_pricing_engine] = lambda: pricing
        app.dependency_overrides[get_db] = _db_with_rows(
            [
                SimpleNamespace(
                    id=uuid.uuid4(),
                    name="Child seat",
                    description=None,
                    price_per_day=Decimal("5.00"),
                    is_one_time_fee=False,
                )
            ],
            [
                SimpleNamespace(
                    id=uuid.uuid4(),
                    name="Full cover",
                    description="Zero excess",
                    price_per_day=Decimal("12.00"),
                    deductible=Decimal("0"),
                    is_default=True,
                )
            ],
        )

        response = client.get(
            f"/api/v1/organizations/demo/cars/{uuid.uuid4()}",
            params={"pickup_date": "2024-06-01", "dropoff_date": "2024-06-04"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["car"]["category"]["name"] == "Economy"
        assert body["extras"][0]["price_per_day"] == 5.0
        assert body["insurance_types"][0]["is_default"] is True
        assert body["average_daily_rate"] == 50.0
        assert body["price"]["base_price"] == 150.0
        assert body["price"]["location_fees"] == 0.0
        assert body["price"]["total_price"] == pytest.approx(186.0)

    def test_dates_required(self, client, pricing):
        app.dependency_overrides[get_pricing_engine] = lambda: pricing

        response = client.get(f"/api/v1/organizations/demo/cars/{uuid.uuid4()}")

        assert response.status_code == 400
        pricing.rules.require_vehicle.assert_not_awaited()

    def test_overlong_rental_rejected(self, client, pricing):
        app.dependency_overrides[get_tenant_guard] = lambda: _guard(_organization())
        app.dependency_overrides[get_pricing_engine] = lambda: pricing

        response = client.get(
            f"/api/v1/organizations/demo/cars/{uuid.uuid4()}",
            params={"pickup_date": "2024-01-01", "dropoff_date": "2524-01-01"},
        )

        assert response.status_code == 400
        assert response.json()["max_rental_days"] == settings.max_rental_days
        pricing.rules.resolve.assert_not_awaited()

    def test_unknown_car_is_404(self, client, pricing):
        pricing.rules.require_vehicle = AsyncMock(side_effect=NotFoundError("Vehicle not found"))
        app.dependency_overrides[get_tenant_guard] = lambda: _guard(_organization())
        app.dependency_overrides[get_pricing_engine] = lambda: pricing

        response = client.get(
            f"/api/v1/organizations/demo/cars/{uuid.uuid4()}",
            params={"pickup_date": "2024-06-01", "dropoff_date": "2024-06-04"},
        )

        assert response.status_code == 404
