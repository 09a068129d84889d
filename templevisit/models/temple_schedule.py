from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Integer, Boolean, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from templevisit.db.session import Base

class TempleSchedule(Base):
    __tablename__ = "temple_schedules"

    temple_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    # comma-separated start times
    slot_times: Mapped[str] = mapped_column(String(200), default="09:00,10:00,11:00,12:00,14:00,15:00,16:00,17:00")
    slot_minutes: Mapped[int] = mapped_column(Integer, default=60)
    capacity: Mapped[int] = mapped_column(Integer, default=50)
    adult_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    child_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    senior_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    service_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
