from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from templevisit.api.deps import Caller, get_current_user, require_roles
from templevisit.db.session import get_db
from templevisit.schemas.temple import ScheduleIn, ScheduleOut
from templevisit.services.audit_service import log_audit
from templevisit.services.schedule_service import get_schedule, upsert_schedule

router = APIRouter(prefix="/temples", tags=["temples"])


@router.get("/{temple_id}/schedule", response_model=ScheduleOut)
def read_schedule(temple_id: str, db: Session = Depends(get_db), user: Caller = Depends(get_current_user)):
    return ScheduleOut.from_schedule(get_schedule(db, temple_id))


@router.put("/{temple_id}/schedule", response_model=ScheduleOut)
def write_schedule(
    temple_id: str,
    body: ScheduleIn,
    db: Session = Depends(get_db),
    user: Caller = Depends(require_roles("admin")),
):
    s = upsert_schedule(
        db, temple_id,
        name=body.name,
        slot_times=body.slotTimes,
        slot_minutes=body.slotMinutes,
        capacity=body.capacity,
        adult_price=body.adultPrice,
        child_price=body.childPrice,
        senior_price=body.seniorPrice,
        service_fee=body.serviceFee,
        active=body.active,
    )
    log_audit(db, actor_user_id=user.id, action="schedule.updated", entity_type="temple", entity_id=temple_id,
              details=body.model_dump(exclude_none=True))
    db.commit()
    return ScheduleOut.from_schedule(s)
