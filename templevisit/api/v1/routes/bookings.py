from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from templevisit.api.deps import Caller, get_current_user, require_roles, get_payment_gateway, STAFF_ROLES
from templevisit.db.session import get_db
from templevisit.models.enums import BookingStatus
from templevisit.schemas.booking import (
    BookingCreate, BookingOut, BookingList, Pagination, PaymentUpdate, CancelRequest, CancelOut, SlotOut, SlotsOut,
)
from templevisit.services import booking_service, capacity_service
from templevisit.services.payment_gateway import SettlementGateway
from templevisit.services.schedule_service import get_schedule
from templevisit.services.ticket_service import render_ticket_pdf_bytes
from templevisit.services.validation import parse_visit_date

router = APIRouter(prefix="/bookings", tags=["bookings"])

TICKETED = (BookingStatus.CONFIRMED.value, BookingStatus.CHECKED_IN.value, BookingStatus.COMPLETED.value)


@router.get("", response_model=BookingList)
def list_my_bookings(
    status: str | None = None,
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db),
    user: Caller = Depends(get_current_user),
):
    items, pagination = booking_service.list_bookings(db, user.id, status=status, page=page, limit=limit)
    return BookingList(bookings=[BookingOut.from_booking(b) for b in items], pagination=Pagination(**pagination))


@router.get("/slots/{temple_id}", response_model=SlotsOut)
def available_slots(
    temple_id: str,
    date: str = Query(..., description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
    user: Caller = Depends(get_current_user),
):
    visit_date = parse_visit_date(date)
    schedule = get_schedule(db, temple_id)
    slots = capacity_service.list_slots_for_date(db, schedule, visit_date)
    return SlotsOut(
        templeId=temple_id,
        date=visit_date.isoformat(),
        capacity=schedule.capacity,
        slots=[SlotOut(time=s.time, end=s.end, available=s.available, remainingCapacity=s.remaining_capacity) for s in slots],
    )


@router.get("/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), user: Caller = Depends(get_current_user)):
    return BookingOut.from_booking(booking_service.get_booking(db, booking_id, user.id))


@router.get("/{booking_id}/ticket")
def download_ticket(booking_id: str, db: Session = Depends(get_db), user: Caller = Depends(get_current_user)):
    b = booking_service.get_booking(db, booking_id, user.id)
    if b.booking_status not in TICKETED or not b.paid_at:
        raise HTTPException(status_code=409, detail="Ticket is only available after payment")
    schedule = get_schedule(db, b.temple_id)
    pdf = render_ticket_pdf_bytes(
        booking_id=b.id,
        booking_ref=b.booking_reference,
        issued_at=b.paid_at,
        temple_name=schedule.name,
        visit_date=b.visit_date.isoformat(),
        start_time=b.slot_start,
        end_time=b.slot_end,
        contact_name=b.contact_name,
        adults=b.adults,
        children=b.children,
        seniors=b.seniors,
        final_amount=f"{b.final_amount:.2f}",
        currency=b.currency,
    )
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{b.booking_reference}.pdf"'},
    )


@router.post("", response_model=BookingOut, status_code=201)
def create_booking(body: BookingCreate, db: Session = Depends(get_db), user: Caller = Depends(get_current_user)):
    adults, children, seniors = body.visitor_counts()
    booking = booking_service.create_booking(
        db,
        user_id=user.id,
        temple_id=body.templeId,
        visit_date=body.date,
        time_slot=body.timeSlot,
        adults=adults,
        children=children,
        seniors=seniors,
        contact_name=body.contactInfo.name,
        contact_phone=body.contactInfo.phone,
        contact_email=body.contactInfo.email,
        special_requests=body.contactInfo.specialRequests or body.specialRequests,
        payment_method=body.paymentMethod,
        source=body.source,
    )
    return BookingOut.from_booking(booking)


@router.patch("/{booking_id}/payment", response_model=BookingOut)
def update_payment(
    booking_id: str,
    body: PaymentUpdate,
    db: Session = Depends(get_db),
    user: Caller = Depends(require_roles(*STAFF_ROLES)),
):
    booking = booking_service.update_payment_status(
        db, booking_id,
        payment_status=body.paymentStatus,
        payment_method=body.paymentMethod,
        transaction_id=body.transactionId,
        actor=user.id,
    )
    return BookingOut.from_booking(booking)


@router.patch("/{booking_id}/cancel", response_model=CancelOut)
def cancel_booking(
    booking_id: str,
    body: CancelRequest | None = None,
    db: Session = Depends(get_db),
    user: Caller = Depends(get_current_user),
    gateway: SettlementGateway = Depends(get_payment_gateway),
):
    booking, refund = booking_service.cancel_booking(
        db, booking_id, user_id=user.id, reason=body.reason if body else None, gateway=gateway,
    )
    return CancelOut(booking=BookingOut.from_booking(booking), refundAmount=float(refund))


@router.patch("/{booking_id}/checkin", response_model=BookingOut)
def check_in(booking_id: str, db: Session = Depends(get_db), user: Caller = Depends(require_roles(*STAFF_ROLES))):
    return BookingOut.from_booking(booking_service.check_in(db, booking_id, actor=user.id))


@router.patch("/{booking_id}/complete", response_model=BookingOut)
def complete(booking_id: str, db: Session = Depends(get_db), user: Caller = Depends(require_roles(*STAFF_ROLES))):
    return BookingOut.from_booking(booking_service.complete(db, booking_id, actor=user.id))
