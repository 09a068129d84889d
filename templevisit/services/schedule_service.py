from decimal import Decimal
from sqlalchemy.orm import Session

from templevisit.core.config import settings
from templevisit.core.errors import NotFound, ValidationError
from templevisit.models.temple_schedule import TempleSchedule
from templevisit.services.validation import normalize_time


def _end_time(start_hhmm: str, dur_min: int) -> str:
    hh, mm = map(int, start_hhmm.split(":"))
    total = hh*60 + mm + dur_min
    total %= 1440
    eh, em = divmod(total, 60)
    return f"{eh:02d}:{em:02d}"


def get_schedule(db: Session, temple_id: str) -> TempleSchedule:
    s = db.get(TempleSchedule, temple_id)
    if not s or not s.active:
        raise NotFound("Temple not found")
    return s


def slot_catalog(schedule: TempleSchedule) -> list[tuple[str, str]]:
    """(start, end) pairs for the temple's bookable slots, in catalog order."""
    times = [t.strip() for t in (schedule.slot_times or "").split(",") if t.strip()]
    return [(t, _end_time(t, schedule.slot_minutes)) for t in times]


def resolve_slot(schedule: TempleSchedule, start: str) -> tuple[str, str]:
    start = normalize_time(start)
    for slot in slot_catalog(schedule):
        if slot[0] == start:
            return slot
    raise ValidationError("Time slot is not offered by this temple", {"timeSlot": start})


def quote(schedule: TempleSchedule, adults: int, children: int, seniors: int) -> tuple[Decimal, Decimal]:
    """Return (total_amount, service_fee) in major units."""
    total = (
        Decimal(schedule.adult_price or 0) * adults
        + Decimal(schedule.child_price or 0) * children
        + Decimal(schedule.senior_price or 0) * seniors
    )
    return total.quantize(Decimal("0.01")), Decimal(schedule.service_fee or 0).quantize(Decimal("0.01"))


def upsert_schedule(db: Session, temple_id: str, *, name: str | None = None, slot_times: list[str] | None = None,
                    slot_minutes: int | None = None, capacity: int | None = None,
                    adult_price: Decimal | None = None, child_price: Decimal | None = None,
                    senior_price: Decimal | None = None, service_fee: Decimal | None = None,
                    active: bool | None = None) -> TempleSchedule:
    if capacity is not None and capacity < 1:
        raise ValidationError("capacity must be >= 1", {"capacity": str(capacity)})
    if slot_minutes is not None and not 1 <= slot_minutes <= 1440:
        raise ValidationError("slotMinutes must be between 1 and 1440", {"slotMinutes": str(slot_minutes)})
    prices = {"adultPrice": adult_price, "childPrice": child_price, "seniorPrice": senior_price, "serviceFee": service_fee}
    negative = {k: "cannot be negative" for k, v in prices.items() if v is not None and v < 0}
    if negative:
        raise ValidationError("Prices cannot be negative", negative)
    times = None
    if slot_times is not None:
        times = sorted({normalize_time(t, "slotTimes") for t in slot_times})
        if not times:
            raise ValidationError("At least one slot time is required", {"slotTimes": ""})

    s = db.get(TempleSchedule, temple_id)
    if not s:
        s = TempleSchedule(
            temple_id=temple_id,
            slot_times=settings.DEFAULT_SLOT_TIMES,
            slot_minutes=settings.DEFAULT_SLOT_MINUTES,
            capacity=settings.DEFAULT_SLOT_CAPACITY,
        )
        db.add(s)
    if name is not None:
        s.name = name
    if times is not None:
        s.slot_times = ",".join(times)
    if slot_minutes is not None:
        s.slot_minutes = slot_minutes
    if capacity is not None:
        s.capacity = capacity
    if adult_price is not None:
        s.adult_price = adult_price
    if child_price is not None:
        s.child_price = child_price
    if senior_price is not None:
        s.senior_price = senior_price
    if service_fee is not None:
        s.service_fee = service_fee
    if active is not None:
        s.active = active
    db.commit()
    db.refresh(s)
    return s
