"""Tests for discount code evaluation and redemption."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from fleetbook.pricing.discounts import (
    NO_DISCOUNT,
    DiscountApplied,
    DiscountEngine,
    DiscountSkipped,
    evaluate_discount,
    normalize_code,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
SUBTOTAL = Decimal("215.00")


def _code(**overrides):
    values = dict(
        id=uuid.uuid4(),
        code="SAVE10",
        discount_type="percentage",
        discount_value=Decimal("10"),
        valid_from=None,
        valid_until=None,
        max_uses=5,
        times_used=0,
        is_active=True,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestEvaluateDiscount:
    def test_percentage_discount(self):
        outcome = evaluate_discount(_code(), "SAVE10", SUBTOTAL, NOW)

        assert isinstance(outcome, DiscountApplied)
        assert outcome.amount == Decimal("21.50")

    def test_fixed_discount(self):
        outcome = evaluate_discount(
            _code(discount_type="fixed", discount_value=Decimal("25")), "SAVE10", SUBTOTAL, NOW
        )
        assert outcome.amount == Decimal("25.00")

    def test_fixed_discount_capped_at_subtotal(self):
        outcome = evaluate_discount(
            _code(discount_type="fixed", discount_value=Decimal("300")), "SAVE10", SUBTOTAL, NOW
        )
        assert outcome.amount == SUBTOTAL

    def test_exhausted_code_applies_nothing(self):
        outcome = evaluate_discount(_code(max_uses=5, times_used=5), "SAVE10", SUBTOTAL, NOW)

        assert isinstance(outcome, DiscountSkipped)
        assert outcome.reason == "exhausted"
        assert outcome.amount == Decimal("0")

    def test_unlimited_code(self):
        outcome = evaluate_discount(_code(max_uses=None, times_used=1000), "SAVE10", SUBTOTAL, NOW)
        assert isinstance(outcome, DiscountApplied)

    @pytest.mark.parametrize(
        "overrides, reason",
        [
            ({"is_active": False}, "inactive"),
            ({"valid_from": NOW + timedelta(days=1)}, "not_yet_valid"),
            ({"valid_until": NOW - timedelta(seconds=1)}, "expired"),
        ],
    )
    def test_unusable_codes(self, overrides, reason):
        outcome = evaluate_discount(_code(**overrides), "SAVE10", SUBTOTAL, NOW)
        assert outcome == DiscountSkipped(code="SAVE10", reason=reason)

    def test_validity_window_bounds_inclusive(self):
        outcome = evaluate_discount(_code(valid_from=NOW, valid_until=NOW), "SAVE10", SUBTOTAL, NOW)
        assert isinstance(outcome, DiscountApplied)

    def test_unknown_code(self):
        outcome = evaluate_discount(None, "NOPE", SUBTOTAL, NOW)
        assert outcome.reason == "not_found"


class TestNormalizeCode:
    def test_strips_and_uppercases(self):
        assert normalize_code("  save10 ") == "SAVE10"

    def test_blank_is_none(self):
        assert normalize_code("   ") is None
        assert normalize_code(None) is None


class TestDiscountEngine:
    @pytest.mark.asyncio
    async def test_no_code_skips_lookup(self, mock_db):
        engine = DiscountEngine()

        outcome = await engine.apply(mock_db, uuid.uuid4(), None, SUBTOTAL, now=NOW)

        assert outcome is NO_DISCOUNT
        mock_db.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_apply_normalizes_before_lookup(self, mock_db):
        engine = DiscountEngine()
        engine.lookup = AsyncMock(return_value=_code())
        org_id = uuid.uuid4()

        outcome = await engine.apply(mock_db, org_id, " save10", SUBTOTAL, now=NOW)

        engine.lookup.assert_awaited_once_with(mock_db, org_id, "SAVE10")
        assert isinstance(outcome, DiscountApplied)

    @pytest.mark.asyncio
    async def test_redeem_reports_lost_race(self, mock_db):
        outcome = DiscountApplied(uuid.uuid4(), "SAVE10", "percentage", Decimal("21.50"))

        assert await DiscountEngine().redeem(mock_db, outcome) is False

    @pytest.mark.asyncio
    async def test_redeem_success(self, mock_db):
        outcome = DiscountApplied(uuid.uuid4(), "SAVE10", "percentage", Decimal("21.50"))
        result = MagicMock()
        result.scalar_one_or_none.return_value = outcome.discount_code_id
        mock_db.execute = AsyncMock(return_value=result)

        assert await DiscountEngine().redeem(mock_db, outcome) is True
