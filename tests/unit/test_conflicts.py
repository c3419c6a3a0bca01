"""Tests for interval overlap and which blocks still hold a vehicle."""

import uuid
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from fleetbook.booking.conflicts import (
    ConflictResult,
    block_holds_vehicle,
    intervals_overlap,
    is_expired_pending,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestIntervalsOverlap:
    @pytest.mark.parametrize(
        "candidate, existing, expected",
        [
            ((date(2024, 6, 1), date(2024, 6, 4)), (date(2024, 6, 3), date(2024, 6, 6)), True),
            ((date(2024, 6, 1), date(2024, 6, 10)), (date(2024, 6, 3), date(2024, 6, 4)), True),
            # Back-to-back: dropoff day is the next pickup day
            ((date(2024, 6, 1), date(2024, 6, 4)), (date(2024, 6, 4), date(2024, 6, 6)), False),
            ((date(2024, 6, 4), date(2024, 6, 6)), (date(2024, 6, 1), date(2024, 6, 4)), False),
            ((date(2024, 6, 1), date(2024, 6, 2)), (date(2024, 6, 5), date(2024, 6, 6)), False),
        ],
    )
    def test_half_open(self, candidate, existing, expected):
        assert intervals_overlap(*candidate, *existing) is expected


class TestBlockHoldsVehicle:
    def _block(self, reservation_id=None):
        return SimpleNamespace(id=uuid.uuid4(), reservation_id=reservation_id)

    def test_manual_block_holds(self):
        assert block_holds_vehicle(self._block(), None, NOW) is True

    def test_orphaned_reservation_block_does_not_hold(self):
        assert block_holds_vehicle(self._block(uuid.uuid4()), None, NOW) is False

    @pytest.mark.parametrize("status", ["confirmed", "in_progress"])
    def test_active_reservation_holds(self, make_reservation, status):
        reservation = make_reservation(booking_status=status)
        assert block_holds_vehicle(self._block(reservation.id), reservation, NOW) is True

    @pytest.mark.parametrize("status", ["cancelled", "completed", "no_show", "expired"])
    def test_finished_reservation_does_not_hold(self, make_reservation, status):
        reservation = make_reservation(booking_status=status)
        assert block_holds_vehicle(self._block(reservation.id), reservation, NOW) is False

    def test_pending_within_hold_period_holds(self, make_reservation):
        reservation = make_reservation(expires_at=NOW + timedelta(hours=1))
        assert block_holds_vehicle(self._block(reservation.id), reservation, NOW) is True

    def test_expired_pending_does_not_hold(self, make_reservation):
        reservation = make_reservation(expires_at=NOW - timedelta(seconds=1))

        assert is_expired_pending(reservation, NOW) is True
        assert block_holds_vehicle(self._block(reservation.id), reservation, NOW) is False


def test_conflict_result_truthiness():
    assert not ConflictResult()
    assert not ConflictResult(stale_reservation_ids=[uuid.uuid4()])
    assert ConflictResult(block_ids=[uuid.uuid4()])
