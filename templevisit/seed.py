from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError, OperationalError
from sqlalchemy.orm import Session

from templevisit.core.config import settings
from templevisit.core.logging_config import get_logger
from templevisit.db.session import SessionLocal
from templevisit.models.temple_schedule import TempleSchedule
from templevisit.services.schedule_service import upsert_schedule

log = get_logger()

DEMO_TEMPLES = [
    # temple_id, name, adult, child, senior, fee
    ("demo-temple", "Sri Demo Temple", Decimal("100.00"), Decimal("50.00"), Decimal("50.00"), Decimal("20.00")),
]


def run(db: Session | None = None):
    """Create demo temple schedules in non-production environments. Existing rows are left alone."""
    own = db is None
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM temple_schedules LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            log.warning("[seed] temple_schedules table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        if settings.ENV == "production":
            return
        for temple_id, name, adult, child, senior, fee in DEMO_TEMPLES:
            if db.get(TempleSchedule, temple_id):
                continue
            upsert_schedule(db, temple_id, name=name, adult_price=adult, child_price=child,
                            senior_price=senior, service_fee=fee)
            log.info(f"[seed] created schedule for {temple_id}")
    finally:
        if own:
            db.close()


if __name__ == "__main__":
    run()
