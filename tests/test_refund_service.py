from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from templevisit.core.errors import NotCancellable
from templevisit.services.refund_service import calculate_refund, can_cancel, refund_for_cancellation

VISIT = datetime(2026, 11, 20, 9, 0, tzinfo=timezone.utc)


def at(hours_before: float) -> datetime:
    return VISIT - timedelta(hours=hours_before)


@pytest.mark.parametrize(
    "hours, expected",
    [
        (50, Decimal("1000.00")),
        (48, Decimal("1000.00")),
        (47.99, Decimal("800.00")),
        (30, Decimal("800.00")),
        (24, Decimal("800.00")),
        (23.99, Decimal("0.00")),
        (10, Decimal("0.00")),
        (-5, Decimal("0.00")),
    ],
)
def test_refund_tiers(hours, expected):
    assert calculate_refund(Decimal("1000.00"), VISIT, at(hours)) == expected


def test_partial_refund_rounds_to_paise():
    assert calculate_refund(Decimal("333.33"), VISIT, at(30)) == Decimal("266.66")
    assert calculate_refund(Decimal("0.05"), VISIT, at(30)) == Decimal("0.04")


def test_pending_booking_always_cancellable_without_refund():
    assert can_cancel("pending", VISIT, at(1))
    assert refund_for_cancellation("pending", Decimal("1000.00"), VISIT, at(1)) == Decimal("0.00")


def test_confirmed_inside_24_hours_not_cancellable():
    assert not can_cancel("confirmed", VISIT, at(10))
    with pytest.raises(NotCancellable):
        refund_for_cancellation("confirmed", Decimal("1000.00"), VISIT, at(10))


@pytest.mark.parametrize("status", ["checked_in", "completed", "cancelled", "expired"])
def test_other_states_not_cancellable(status):
    with pytest.raises(NotCancellable):
        refund_for_cancellation(status, Decimal("1000.00"), VISIT, at(100))
