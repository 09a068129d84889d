"""Time-based refund tiers. Pure functions, no session or network access."""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from templevisit.core.errors import NotCancellable
from templevisit.models.enums import BookingStatus

FULL_REFUND_HOURS = 48
PARTIAL_REFUND_HOURS = 24
PARTIAL_REFUND_RATE = Decimal("0.8")
CENT = Decimal("0.01")


def hours_until(visit_datetime: datetime, now: datetime) -> float:
    return (visit_datetime - now).total_seconds() / 3600


def calculate_refund(final_amount: Decimal, visit_datetime: datetime, now: datetime) -> Decimal:
    hours = hours_until(visit_datetime, now)
    amount = Decimal(final_amount)
    if hours >= FULL_REFUND_HOURS:
        return amount.quantize(CENT)
    if hours >= PARTIAL_REFUND_HOURS:
        return (amount * PARTIAL_REFUND_RATE).quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal("0.00")


def can_cancel(status: str, visit_datetime: datetime, now: datetime) -> bool:
    if status == BookingStatus.PENDING.value:
        return True
    if status == BookingStatus.CONFIRMED.value:
        return hours_until(visit_datetime, now) >= PARTIAL_REFUND_HOURS
    return False


def refund_for_cancellation(status: str, final_amount: Decimal, visit_datetime: datetime, now: datetime) -> Decimal:
    """Refund owed if the booking is cancelled at ``now``.

    Unpaid bookings may always be cancelled and owe nothing.
    """
    if not can_cancel(status, visit_datetime, now):
        if status == BookingStatus.CONFIRMED.value:
            raise NotCancellable(f"Bookings can only be cancelled at least {PARTIAL_REFUND_HOURS} hours before the visit")
        raise NotCancellable(f"A {status} booking cannot be cancelled")
    if status == BookingStatus.PENDING.value:
        return Decimal("0.00")
    return calculate_refund(final_amount, visit_datetime, now)
