from decimal import Decimal
from pydantic import BaseModel
from typing import List, Optional

from templevisit.models.temple_schedule import TempleSchedule


class ScheduleIn(BaseModel):
    name: Optional[str] = None
    slotTimes: Optional[List[str]] = None
    slotMinutes: Optional[int] = None
    capacity: Optional[int] = None
    adultPrice: Optional[Decimal] = None
    childPrice: Optional[Decimal] = None
    seniorPrice: Optional[Decimal] = None
    serviceFee: Optional[Decimal] = None
    active: Optional[bool] = None


class ScheduleOut(BaseModel):
    templeId: str
    name: str
    slotTimes: List[str]
    slotMinutes: int
    capacity: int
    adultPrice: float
    childPrice: float
    seniorPrice: float
    serviceFee: float
    active: bool

    @classmethod
    def from_schedule(cls, s: TempleSchedule) -> "ScheduleOut":
        return cls(
            templeId=s.temple_id,
            name=s.name or "",
            slotTimes=[t for t in (s.slot_times or "").split(",") if t],
            slotMinutes=s.slot_minutes,
            capacity=s.capacity,
            adultPrice=float(s.adult_price or 0),
            childPrice=float(s.child_price or 0),
            seniorPrice=float(s.senior_price or 0),
            serviceFee=float(s.service_fee or 0),
            active=s.active,
        )
