import math
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from templevisit.core.config import settings
from templevisit.core.errors import NotFound, InvalidTransition, DuplicateRefund, ValidationError
from templevisit.core.logging_config import get_logger
from templevisit.models.booking import Booking
from templevisit.models.enums import BookingStatus, PaymentStatus, RefundStatus
from templevisit.services import capacity_service
from templevisit.services.audit_service import log_audit
from templevisit.services.refund_service import refund_for_cancellation
from templevisit.services.schedule_service import get_schedule, resolve_slot, quote
from templevisit.services.ticket_service import issue_ticket
from templevisit.services.validation import (
    parse_visit_date, validate_visit_date, validate_visitors, validate_contact,
    validate_payment_method, validate_payment_status, validate_source, validate_reason,
)

log = get_logger("booking")

S = BookingStatus
TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED, S.EXPIRED}),
    S.CONFIRMED: frozenset({S.CHECKED_IN, S.COMPLETED, S.CANCELLED}),
    S.CHECKED_IN: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.EXPIRED: frozenset(),
}

DEFAULT_CANCELLATION_REASON = "User requested cancellation"
STAFF_REFUND_REASON = "Refunded by staff"
CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def assert_transition(current: str, target: BookingStatus) -> None:
    try:
        allowed = TRANSITIONS[BookingStatus(current)]
    except ValueError:
        allowed = frozenset()
    if target not in allowed:
        raise InvalidTransition(f"Cannot move booking from {current} to {target.value}")


def transition(booking: Booking, target: BookingStatus, now: datetime, **fields) -> None:
    """Move ``booking`` to ``target`` and set the fields that belong to that move.

    The only place booking_status and the per-state fields are written.
    Raises InvalidTransition without touching the booking.
    """
    assert_transition(booking.booking_status, target)

    if target is S.CONFIRMED:
        qr = issue_ticket(booking.id, now)
        booking.payment_status = PaymentStatus.COMPLETED.value
        booking.transaction_id = fields["transaction_id"]
        if fields.get("payment_method"):
            booking.payment_method = fields["payment_method"]
        booking.paid_at = now
        booking.hold_expires_at = None
        booking.qr_code = qr
    elif target is S.CHECKED_IN:
        booking.check_in_time = now
    elif target is S.COMPLETED:
        # never earlier than check-in
        checked_in = as_utc(booking.check_in_time)
        booking.check_out_time = max(now, checked_in) if checked_in else now
    elif target is S.CANCELLED:
        booking.cancellation_reason = fields.get("reason") or DEFAULT_CANCELLATION_REASON
        refund = fields.get("refund_amount", Decimal("0.00"))
        booking.refund_amount = refund
        if refund > 0:
            booking.refund_status = RefundStatus.PROCESSED.value
            booking.refund_id = fields.get("refund_id")
            booking.payment_status = PaymentStatus.REFUNDED.value
        else:
            booking.refund_status = None

    booking.booking_status = target.value


def _local_today(now: datetime):
    return now.astimezone(ZoneInfo(settings.TIMEZONE)).date()


def _load_for_update(db: Session, booking_id: str) -> Booking:
    b = db.execute(
        select(Booking).where(Booking.id == booking_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not b:
        raise NotFound("Booking not found")
    return b


def create_booking(db: Session, *, user_id: str, temple_id: str, visit_date, time_slot: str,
                   adults: int, children: int = 0, seniors: int = 0,
                   contact_name: str, contact_phone: str, contact_email: str,
                   special_requests: str | None = None, payment_method: str = "card",
                   source: str = "web", now: datetime | None = None) -> Booking:
    now = now or utcnow()
    vdate = parse_visit_date(visit_date)
    validate_visit_date(vdate, _local_today(now))
    validate_visitors(adults, children, seniors)
    validate_contact(contact_name, contact_phone, contact_email, special_requests)
    validate_payment_method(payment_method)
    validate_source(source)

    schedule = get_schedule(db, temple_id)
    slot = resolve_slot(schedule, time_slot)
    total_amount, service_fee = quote(schedule, adults, children, seniors)
    visitors = adults + children + seniors

    try:
        capacity_service.reserve(db, schedule, vdate, slot, visitors)
        booking = Booking(
            id=str(uuid.uuid4()),
            temple_id=temple_id,
            user_id=user_id,
            visit_date=vdate,
            slot_start=slot[0],
            slot_end=slot[1],
            adults=adults,
            children=children,
            seniors=seniors,
            total_amount=total_amount,
            service_fee=service_fee,
            currency=settings.CURRENCY,
            contact_name=contact_name.strip(),
            contact_phone=contact_phone.strip(),
            contact_email=contact_email.strip().lower(),
            special_requests=special_requests,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            booking_status=BookingStatus.PENDING.value,
            hold_expires_at=now + timedelta(minutes=settings.PENDING_HOLD_MINUTES),
            source=source,
        )
        db.add(booking)
        log_audit(db, actor_user_id=user_id, action="booking.created", entity_type="booking", entity_id=booking.id,
                  details={"temple": temple_id, "date": vdate.isoformat(), "slot": f"{slot[0]}-{slot[1]}", "visitors": visitors})
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(booking)
    log.info(f"Booking created | id={booking.id} user={user_id} temple={temple_id} "
             f"date={vdate} slot={slot[0]} visitors={visitors}")
    return booking


def get_booking(db: Session, booking_id: str, user_id: str | None = None) -> Booking:
    b = db.get(Booking, booking_id)
    if not b or (user_id is not None and b.user_id != user_id):
        raise NotFound("Booking not found")
    return b


def list_bookings(db: Session, user_id: str, status: str | None = None, page: int = 1, limit: int = 10) -> tuple[list[Booking], dict]:
    if page < 1 or not 1 <= limit <= 100:
        raise ValidationError("page must be >= 1 and limit between 1 and 100", {"page": str(page), "limit": str(limit)})
    filters = [Booking.user_id == user_id]
    if status:
        if status not in {s.value for s in BookingStatus}:
            raise ValidationError("Unknown booking status", {"status": status})
        filters.append(Booking.booking_status == status)

    total = db.execute(select(func.count()).select_from(Booking).where(*filters)).scalar_one()
    items = db.execute(
        select(Booking).where(*filters).order_by(Booking.created_at.desc()).limit(limit).offset((page - 1) * limit)
    ).scalars().all()
    pagination = {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)}
    return list(items), pagination


def confirm_payment(db: Session, booking_id: str, *, transaction_id: str, payment_method: str | None = None,
                    actor: str = "system", now: datetime | None = None) -> Booking:
    """pending -> confirmed. Repeating a confirmation for the same payment is a no-op."""
    now = now or utcnow()
    if not transaction_id:
        raise ValidationError("transactionId is required to confirm payment", {"transactionId": ""})
    if payment_method:
        validate_payment_method(payment_method)
    b = _load_for_update(db, booking_id)
    if b.transaction_id == transaction_id and b.payment_status == PaymentStatus.COMPLETED.value:
        db.rollback()
        return b
    try:
        transition(b, S.CONFIRMED, now, transaction_id=transaction_id, payment_method=payment_method)
    except InvalidTransition:
        db.rollback()
        raise
    log_audit(db, actor_user_id=actor, action="booking.confirmed", entity_type="booking", entity_id=b.id,
              details={"transactionId": transaction_id})
    db.commit()
    db.refresh(b)
    log.info(f"Booking confirmed | id={b.id} txn={transaction_id}")
    return b


def update_payment_status(db: Session, booking_id: str, *, payment_status: str, payment_method: str | None = None,
                          transaction_id: str | None = None, actor: str = "system",
                          now: datetime | None = None) -> Booking:
    validate_payment_status(payment_status)
    if payment_method:
        validate_payment_method(payment_method)
    if payment_status == PaymentStatus.REFUNDED.value:
        raise ValidationError("Refunds are recorded by the refund operation", {"paymentStatus": payment_status})

    if payment_status == PaymentStatus.COMPLETED.value:
        txn = transaction_id or get_booking(db, booking_id).transaction_id
        return confirm_payment(db, booking_id, transaction_id=txn, payment_method=payment_method, actor=actor, now=now)

    b = _load_for_update(db, booking_id)
    if b.booking_status != S.PENDING.value:
        db.rollback()
        raise InvalidTransition(f"Payment status of a {b.booking_status} booking cannot change")
    b.payment_status = payment_status
    if payment_method:
        b.payment_method = payment_method
    if transaction_id:
        b.transaction_id = transaction_id
    log_audit(db, actor_user_id=actor, action="booking.payment_status", entity_type="booking", entity_id=b.id,
              details={"paymentStatus": payment_status})
    db.commit()
    db.refresh(b)
    return b


def _simple_transition(db: Session, booking_id: str, target: BookingStatus, action: str, actor: str,
                       now: datetime | None) -> Booking:
    now = now or utcnow()
    b = _load_for_update(db, booking_id)
    try:
        if b.refund_status == RefundStatus.PENDING.value:
            raise InvalidTransition("A refund for this booking is in progress")
        transition(b, target, now)
    except InvalidTransition:
        db.rollback()
        raise
    log_audit(db, actor_user_id=actor, action=action, entity_type="booking", entity_id=b.id)
    db.commit()
    db.refresh(b)
    log.info(f"Booking {target.value} | id={b.id}")
    return b


def check_in(db: Session, booking_id: str, *, actor: str = "system", now: datetime | None = None) -> Booking:
    return _simple_transition(db, booking_id, S.CHECKED_IN, "booking.checked_in", actor, now)


def complete(db: Session, booking_id: str, *, actor: str = "system", now: datetime | None = None) -> Booking:
    return _simple_transition(db, booking_id, S.COMPLETED, "booking.completed", actor, now)


def _refund_taken(b: Booking) -> bool:
    return (b.payment_status == PaymentStatus.REFUNDED.value
            or b.refund_status in (RefundStatus.PENDING.value, RefundStatus.PROCESSED.value))


def _cancel_locked(db: Session, b: Booking, *, refund: Decimal, reason: str | None, actor: str,
                   gateway, notes: dict | None, now: datetime) -> tuple[Booking, dict | None]:
    """Cancel a row-locked booking whose move to cancelled was already checked.

    A refund owed is issued through ``gateway`` between two short locked
    updates: the first marks the refund as in flight, which blocks another
    refund and any check-in or completion until it settles; the second records
    the cancellation. If the processor fails the booking keeps its status and
    the refund is marked failed.
    """
    booking_id = b.id
    result = None
    if refund > 0 and b.transaction_id:
        if gateway is None:
            db.rollback()
            raise RuntimeError("cancelling a paid booking needs a gateway to refund it")
        if _refund_taken(b):
            db.rollback()
            raise DuplicateRefund("A refund for this booking is already in progress")
        b.refund_status = RefundStatus.PENDING.value
        db.commit()

        payment_id = b.transaction_id
        try:
            result = gateway.refund(payment_id, amount=refund,
                                    notes={**(notes or {}), "bookingId": booking_id, "reason": reason or ""})
        except Exception:
            b = _load_for_update(db, booking_id)
            b.refund_status = RefundStatus.FAILED.value
            log_audit(db, actor_user_id=actor, action="booking.refund_failed", entity_type="booking",
                      entity_id=booking_id, details={"amount": str(refund)})
            db.commit()
            log.error(f"Refund failed | booking={booking_id} payment={payment_id} amount={refund}")
            raise
        b = _load_for_update(db, booking_id)

    refund_id = (result or {}).get("id")
    transition(b, S.CANCELLED, now, reason=reason, refund_amount=refund, refund_id=refund_id)
    log_audit(db, actor_user_id=actor, action="booking.cancelled", entity_type="booking",
              entity_id=b.id, details={"refund": str(refund), "refundId": refund_id, "reason": b.cancellation_reason})
    db.commit()
    db.refresh(b)
    log.info(f"Booking cancelled | id={b.id} refund={refund}")
    return b, result


def cancel_booking(db: Session, booking_id: str, *, user_id: str | None, reason: str | None = None,
                   gateway=None, now: datetime | None = None) -> tuple[Booking, Decimal]:
    """Cancel and refund per the time-based tiers."""
    now = now or utcnow()
    validate_reason(reason)

    b = get_booking(db, booking_id, user_id)
    b = _load_for_update(db, b.id)
    try:
        refund = refund_for_cancellation(b.booking_status, b.final_amount, b.visit_datetime, now)
        assert_transition(b.booking_status, S.CANCELLED)
    except Exception:
        db.rollback()
        raise

    b, _ = _cancel_locked(db, b, refund=refund, reason=reason, actor=user_id or "system",
                          gateway=gateway, notes=None, now=now)
    return b, refund


def refund_and_cancel(db: Session, booking_id: str, *, amount: Decimal | None = None, reason: str | None = None,
                      notes: dict | None = None, actor: str = "system", gateway=None,
                      now: datetime | None = None) -> tuple[Booking, dict]:
    """Staff refund of a booking's payment, full unless ``amount`` is given.

    The time-based tiers do not apply, but the booking is cancelled with the
    refund so its places are released and it can no longer be admitted.
    """
    now = now or utcnow()
    validate_reason(reason)

    b = _load_for_update(db, booking_id)
    try:
        if _refund_taken(b):
            raise DuplicateRefund("Payment has already been refunded")
        assert_transition(b.booking_status, S.CANCELLED)
        if not b.transaction_id or b.payment_status != PaymentStatus.COMPLETED.value:
            raise ValidationError("Booking has no captured payment to refund", {"bookingId": booking_id})
        final_amount = Decimal(b.final_amount).quantize(CENT)
        refund = final_amount if amount is None else Decimal(amount).quantize(CENT)
        if not Decimal("0") < refund <= final_amount:
            raise ValidationError(f"Refund amount must be between 0.01 and {final_amount}", {"amount": str(refund)})
    except Exception:
        db.rollback()
        raise

    return _cancel_locked(db, b, refund=refund, reason=reason or STAFF_REFUND_REASON, actor=actor,
                          gateway=gateway, notes=notes, now=now)


def owns_payment(db: Session, user_id: str, payment_id: str, order_id: str | None = None) -> bool:
    """True when ``payment_id`` (or its order) belongs to one of the user's bookings."""
    match = [Booking.transaction_id == payment_id]
    if order_id:
        match.append(Booking.payment_order_id == order_id)
    found = db.execute(
        select(Booking.id).where(Booking.user_id == user_id, or_(*match)).limit(1)
    ).first()
    return found is not None


def expire_stale_bookings(db: Session, now: datetime | None = None) -> int:
    """pending -> expired for bookings whose payment hold has lapsed."""
    now = now or utcnow()
    stale = db.execute(
        select(Booking).where(
            Booking.booking_status == S.PENDING.value,
            Booking.hold_expires_at.is_not(None),
            Booking.hold_expires_at < now,
        ).with_for_update(skip_locked=True)
    ).scalars().all()
    for b in stale:
        transition(b, S.EXPIRED, now)
        log_audit(db, actor_user_id="system", action="booking.expired", entity_type="booking", entity_id=b.id)
    db.commit()
    if stale:
        log.info(f"Expired {len(stale)} unpaid bookings")
    return len(stale)
