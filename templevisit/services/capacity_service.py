"""Slot capacity accounting.

Visitors on ``pending`` and ``confirmed`` bookings count toward a slot's
capacity, so an unpaid reservation holds its places until it is paid,
cancelled or expired.

``reserve`` is the only entry point that may precede a booking insert. It
locks the slot's ledger row inside the caller's transaction before counting,
so concurrent reservations for the same (temple, date, slot) are admitted
one at a time and the request that would overflow the slot is the one that
fails. The lock is released when the caller commits or rolls back.
"""
import uuid
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from templevisit.core.errors import SlotUnavailable
from templevisit.core.logging_config import get_logger
from templevisit.models.booking import Booking
from templevisit.models.enums import HOLDING_STATUSES
from templevisit.models.slot_ledger import SlotLedger
from templevisit.models.temple_schedule import TempleSchedule
from templevisit.services.schedule_service import slot_catalog

log = get_logger("booking")

LOCK_ATTEMPTS = 3


@dataclass(frozen=True)
class Availability:
    available: bool
    remaining: int


@dataclass(frozen=True)
class SlotAvailability:
    time: str
    end: str
    available: bool
    remaining_capacity: int


def committed_visitors(db: Session, temple_id: str, visit_date: date, slot: tuple[str, str]) -> int:
    start, end = slot
    total = db.execute(
        select(func.coalesce(func.sum(Booking.total_visitors), 0)).where(
            Booking.temple_id == temple_id,
            Booking.visit_date == visit_date,
            Booking.slot_start == start,
            Booking.slot_end == end,
            Booking.booking_status.in_(HOLDING_STATUSES),
        )
    ).scalar_one()
    return int(total or 0)


def check_availability(db: Session, schedule: TempleSchedule, visit_date: date,
                       slot: tuple[str, str], requested_visitors: int) -> Availability:
    committed = committed_visitors(db, schedule.temple_id, visit_date, slot)
    return Availability(
        available=committed + requested_visitors <= schedule.capacity,
        remaining=max(0, schedule.capacity - committed),
    )


def list_slots_for_date(db: Session, schedule: TempleSchedule, visit_date: date) -> list[SlotAvailability]:
    rows = db.execute(
        select(Booking.slot_start, Booking.slot_end, func.sum(Booking.total_visitors))
        .where(
            Booking.temple_id == schedule.temple_id,
            Booking.visit_date == visit_date,
            Booking.booking_status.in_(HOLDING_STATUSES),
        )
        .group_by(Booking.slot_start, Booking.slot_end)
    ).all()
    committed = {(start, end): int(total or 0) for start, end, total in rows}

    out = []
    for start, end in slot_catalog(schedule):
        remaining = max(0, schedule.capacity - committed.get((start, end), 0))
        out.append(SlotAvailability(time=start, end=end, available=remaining > 0, remaining_capacity=remaining))
    return out


def _lock_slot(db: Session, temple_id: str, visit_date: date, slot: tuple[str, str]) -> SlotLedger:
    start, end = slot
    for _ in range(LOCK_ATTEMPTS):
        ledger = db.execute(
            select(SlotLedger).where(
                SlotLedger.temple_id == temple_id,
                SlotLedger.visit_date == visit_date,
                SlotLedger.slot_start == start,
                SlotLedger.slot_end == end,
            ).with_for_update()
        ).scalar_one_or_none()

        if ledger is None:
            ledger = SlotLedger(id=str(uuid.uuid4()), temple_id=temple_id, visit_date=visit_date,
                                slot_start=start, slot_end=end, version=1)
            db.add(ledger)
            try:
                db.flush()
            except IntegrityError:
                # Another request created the row first; take the lock on theirs.
                db.rollback()
                continue
            return ledger

        # The write takes the lock on backends without SELECT ... FOR UPDATE.
        ledger.version = SlotLedger.version + 1
        db.flush()
        return ledger
    raise RuntimeError(f"could not lock slot {temple_id} {visit_date} {start}-{end}")


def reserve(db: Session, schedule: TempleSchedule, visit_date: date,
            slot: tuple[str, str], requested_visitors: int) -> Availability:
    """Lock the slot and admit ``requested_visitors`` or raise SlotUnavailable.

    Must run first in the transaction that inserts the booking.
    """
    temple_id, capacity = schedule.temple_id, schedule.capacity
    _lock_slot(db, temple_id, visit_date, slot)
    committed = committed_visitors(db, temple_id, visit_date, slot)
    remaining = max(0, capacity - committed)
    if committed + requested_visitors > capacity:
        db.rollback()
        log.info(f"Slot full | temple={temple_id} date={visit_date} slot={slot[0]}-{slot[1]} "
                 f"requested={requested_visitors} remaining={remaining}")
        raise SlotUnavailable("Selected time slot is not available", remaining=remaining)
    return Availability(available=True, remaining=remaining)
