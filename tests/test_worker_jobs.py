from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from templevisit.tasks import worker_jobs


def test_expiry_job_releases_lapsed_holds(db, session_factory, make_booking):
    b = make_booking(now=datetime.now(timezone.utc) - timedelta(minutes=30))
    assert worker_jobs.expire_pending_bookings(session_factory) == {"expired": 1}
    db.refresh(b)
    assert b.booking_status == "expired"
    assert worker_jobs.expire_pending_bookings(session_factory) == {"expired": 0}


def test_expiry_job_skips_unmigrated_database(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    try:
        out = worker_jobs.expire_pending_bookings(sessionmaker(bind=eng))
    finally:
        eng.dispose()
    assert out == {"skipped": True, "reason": "missing_tables"}
