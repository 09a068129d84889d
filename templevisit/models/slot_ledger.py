from datetime import date, datetime, timezone

from sqlalchemy import String, Integer, Date, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from templevisit.db.session import Base


class SlotLedger(Base):
    """Lock row for one (temple, date, slot). Reservations for the key serialise on it."""

    __tablename__ = "slot_ledgers"
    __table_args__ = (
        UniqueConstraint("temple_id", "visit_date", "slot_start", "slot_end", name="uq_slot_ledger_key"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    temple_id: Mapped[str] = mapped_column(String(36), index=True)
    visit_date: Mapped[date] = mapped_column(Date)
    slot_start: Mapped[str] = mapped_column(String(5))
    slot_end: Mapped[str] = mapped_column(String(5))
    version: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
