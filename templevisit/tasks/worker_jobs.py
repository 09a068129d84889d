from sqlalchemy.exc import ProgrammingError, OperationalError
from sqlalchemy.orm import Session

from templevisit.core.logging_config import configure_logging, get_logger
from templevisit.db.session import SessionLocal
from templevisit.services.booking_service import expire_stale_bookings

log = get_logger("booking")


def expire_pending_bookings(session_factory=SessionLocal) -> dict:
    """Expire pending bookings whose payment hold has lapsed, releasing their seats."""
    configure_logging()
    db: Session = session_factory()
    try:
        try:
            expired = expire_stale_bookings(db)
        except (ProgrammingError, OperationalError) as e:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            log.warning(f"Expiry job skipped: {e.__class__.__name__}")
            return {"skipped": True, "reason": "missing_tables"}
        return {"expired": expired}
    finally:
        db.close()
