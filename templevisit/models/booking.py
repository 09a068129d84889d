from datetime import date, datetime, time, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import String, Integer, Date, DateTime, Numeric, Index
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, validates

from templevisit.core.config import settings
from templevisit.db.session import Base

ZERO = Decimal("0.00")


def _now():
    return datetime.now(timezone.utc)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_slot_status", "temple_id", "visit_date", "slot_start", "slot_end", "booking_status"),
        Index("ix_bookings_user_status", "user_id", "booking_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    temple_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)

    visit_date: Mapped[date] = mapped_column(Date, index=True)
    slot_start: Mapped[str] = mapped_column(String(5))  # HH:MM
    slot_end: Mapped[str] = mapped_column(String(5))    # HH:MM

    adults: Mapped[int] = mapped_column(Integer, default=1)
    children: Mapped[int] = mapped_column(Integer, default=0)
    seniors: Mapped[int] = mapped_column(Integer, default=0)

    # Major currency units
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO)
    service_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO)
    final_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO)
    currency: Mapped[str] = mapped_column(String(3), default="INR")

    # Snapshot at booking time, not linked to the user's profile
    contact_name: Mapped[str] = mapped_column(String(100))
    contact_phone: Mapped[str] = mapped_column(String(30))
    contact_email: Mapped[str] = mapped_column(String(320))
    special_requests: Mapped[str] = mapped_column(String(500), nullable=True)

    payment_method: Mapped[str] = mapped_column(String(20), default="card")
    payment_status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    payment_order_id: Mapped[str] = mapped_column(String(64), nullable=True, index=True)
    transaction_id: Mapped[str] = mapped_column(String(64), nullable=True, index=True)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    booking_status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    hold_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    qr_code: Mapped[str] = mapped_column(String, nullable=True)
    check_in_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    cancellation_reason: Mapped[str] = mapped_column(String(500), nullable=True)
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=True)
    refund_status: Mapped[str] = mapped_column(String(20), nullable=True)  # pending, processed, failed
    refund_id: Mapped[str] = mapped_column(String(64), nullable=True)

    source: Mapped[str] = mapped_column(String(10), default="web")  # web, mobile, admin

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)

    @validates("total_amount", "service_fee")
    def _recompute_final_amount(self, key, value):
        value = Decimal(value if value is not None else 0)
        total = value if key == "total_amount" else Decimal(self.total_amount or 0)
        fee = value if key == "service_fee" else Decimal(self.service_fee or 0)
        self.final_amount = total + fee
        return value

    @hybrid_property
    def total_visitors(self) -> int:
        return (self.adults or 0) + (self.children or 0) + (self.seniors or 0)

    @total_visitors.inplace.expression
    @classmethod
    def _total_visitors_expression(cls):
        return cls.adults + cls.children + cls.seniors

    @property
    def booking_reference(self) -> str:
        return f"DY{self.id.replace('-', '')[-8:].upper()}"

    @property
    def visit_datetime(self) -> datetime:
        """Slot start as an aware datetime in the temples' timezone."""
        hh, mm = map(int, self.slot_start.split(":"))
        return datetime.combine(self.visit_date, time(hh, mm), tzinfo=ZoneInfo(settings.TIMEZONE))
