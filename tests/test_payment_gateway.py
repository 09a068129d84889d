from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import TEMPLE_ID
from templevisit.core.errors import (
    InvalidSignature, ValidationError, DuplicateRefund, InvalidTransition, PaymentNotFound, BookingNotPayable,
    NotCancellable,
)
from templevisit.models.audit_log import AuditLog
from templevisit.services import booking_service
from templevisit.services.capacity_service import committed_visitors
from templevisit.services.payment_gateway import expected_signature, to_minor, to_major


def test_minor_unit_conversion():
    assert to_minor(Decimal("1000.00")) == 100000
    assert to_minor(Decimal("10.005")) == 1001
    assert to_major(80000) == Decimal("800.00")


def test_signature_is_hmac_of_order_and_payment():
    import hashlib, hmac
    expected = hmac.new(b"s3cret", b"order_1|pay_1", hashlib.sha256).hexdigest()
    assert expected_signature("order_1", "pay_1", "s3cret") == expected


def test_create_order_requires_positive_amount(gateway):
    with pytest.raises(ValidationError):
        gateway.create_order(Decimal("0"))
    order = gateway.create_order(Decimal("250.50"), notes={"k": "v"})
    assert order.amount == Decimal("250.50")
    assert order.receipt.startswith("receipt_")
    assert gateway.processor.orders[order.id]["amount"] == 25050


def test_order_for_booking_charges_final_amount(db, make_booking, gateway, processor):
    b = make_booking()
    order = gateway.create_order_for_booking(db, b)
    assert processor.orders[order.id]["amount"] == 100000
    assert processor.orders[order.id]["notes"]["bookingId"] == b.id
    db.refresh(b)
    assert b.payment_order_id == order.id
    assert b.payment_status == "processing"


def test_verify_confirms_booking_once(db, make_booking, gateway, processor):
    b = make_booking()
    order = gateway.create_order_for_booking(db, b)
    payment_id, sig = processor.pay(order.id)

    first = gateway.verify_payment(db, order.id, payment_id, sig, booking_id=b.id)
    second = gateway.verify_payment(db, order.id, payment_id, sig, booking_id=b.id)
    assert first["verified"] and second["verified"]
    assert first["payment"]["amount"] == Decimal("1000.00")
    assert second["booking"].booking_status == "confirmed"
    assert db.query(AuditLog).filter_by(entity_id=b.id, action="booking.confirmed").count() == 1


def test_forged_signature_keeps_booking_pending(db, make_booking, gateway, processor):
    b = make_booking()
    order = gateway.create_order_for_booking(db, b)
    payment_id, sig = processor.pay(order.id)
    with pytest.raises(InvalidSignature):
        gateway.verify_payment(db, order.id, payment_id, "0" * 64, booking_id=b.id)
    db.refresh(b)
    assert b.booking_status == "pending"
    assert db.query(AuditLog).filter_by(action="payment.signature_invalid", entity_id=payment_id).count() == 1


def test_signature_for_other_order_rejected(db, make_booking, gateway, processor):
    b = make_booking()
    order = gateway.create_order_for_booking(db, b)
    other = gateway.create_order(Decimal("1.00"))
    payment_id, _ = processor.pay(other.id)
    # valid signature for the pair, but the payment belongs to another order
    sig = expected_signature(order.id, payment_id, gateway._secret)
    with pytest.raises(InvalidSignature):
        gateway.verify_payment(db, order.id, payment_id, sig, booking_id=b.id)
    db.refresh(b)
    assert b.booking_status == "pending"


def test_underpaid_order_does_not_confirm(db, make_booking, gateway, processor):
    b = make_booking()
    order = gateway.create_order(Decimal("1.00"))
    payment_id, sig = processor.pay(order.id)
    with pytest.raises(ValidationError):
        gateway.verify_payment(db, order.id, payment_id, sig, booking_id=b.id)
    db.refresh(b)
    assert b.booking_status == "pending"


def test_missing_fields_rejected(db, gateway):
    with pytest.raises(ValidationError) as e:
        gateway.verify_payment(db, "order_1", "", "")
    assert set(e.value.fields) == {"paymentId", "signature"}


def test_no_order_for_cancelled_booking(db, make_booking, gateway):
    b = make_booking()
    booking_service.cancel_booking(db, b.id, user_id="user-1")
    with pytest.raises(InvalidTransition):
        gateway.create_order_for_booking(db, b)


def test_refund_payment_only_once(db, make_booking, gateway, processor):
    b = make_booking()
    order = gateway.create_order_for_booking(db, b)
    payment_id, sig = processor.pay(order.id)
    gateway.verify_payment(db, order.id, payment_id, sig, booking_id=b.id)

    out = gateway.refund_payment(db, payment_id, amount=Decimal("400.00"), actor="staff-1")
    assert out["refund"]["amount"] == Decimal("400.00")
    db.refresh(b)
    assert b.payment_status == "refunded"
    with pytest.raises(DuplicateRefund):
        gateway.refund_payment(db, payment_id, actor="staff-1")
    assert len(processor.refunds) == 1


def test_status_of_unknown_payment(gateway):
    with pytest.raises(PaymentNotFound):
        gateway.get_status("pay_missing")


def test_staff_refund_cancels_the_booking(db, make_booking, gateway, processor):
    b = make_booking()
    order = gateway.create_order_for_booking(db, b)
    payment_id, sig = processor.pay(order.id)
    gateway.verify_payment(db, order.id, payment_id, sig, booking_id=b.id)

    out = gateway.refund_payment(db, payment_id, actor="staff-1")
    assert out["booking"].id == b.id
    db.refresh(b)
    assert b.booking_status == "cancelled"
    assert b.cancellation_reason == "Refunded by staff"
    assert b.refund_status == "processed" and b.refund_amount == Decimal("1000.00")
    assert b.refund_id == processor.refunds[0]["id"]

    with pytest.raises(InvalidTransition):
        booking_service.check_in(db, b.id, actor="staff-1")
    assert committed_visitors(db, TEMPLE_ID, b.visit_date, (b.slot_start, b.slot_end)) == 0
    with pytest.raises(NotCancellable):
        booking_service.cancel_booking(db, b.id, user_id="user-1", gateway=gateway,
                                       now=b.visit_datetime - timedelta(hours=72))
    assert len(processor.refunds) == 1


def test_staff_refund_rejects_amount_above_paid(db, make_booking, gateway, processor):
    b = make_booking()
    order = gateway.create_order_for_booking(db, b)
    payment_id, sig = processor.pay(order.id)
    gateway.verify_payment(db, order.id, payment_id, sig, booking_id=b.id)
    with pytest.raises(ValidationError):
        gateway.refund_payment(db, payment_id, amount=Decimal("1000.01"), actor="staff-1")
    db.refresh(b)
    assert b.booking_status == "confirmed" and b.refund_status is None
    assert processor.refunds == []


def test_payment_for_cancelled_booking_is_returned(db, make_booking, gateway, processor):
    b = make_booking()
    order = gateway.create_order_for_booking(db, b)
    booking_service.cancel_booking(db, b.id, user_id="user-1")
    payment_id, sig = processor.pay(order.id)

    with pytest.raises(BookingNotPayable):
        gateway.verify_payment(db, order.id, payment_id, sig, booking_id=b.id)
    assert [r["payment_id"] for r in processor.refunds] == [payment_id]
    assert processor.refunds[0]["amount"] == 100000
    assert db.query(AuditLog).filter_by(action="payment.returned", entity_id=payment_id).count() == 1
    db.refresh(b)
    assert b.booking_status == "cancelled" and b.transaction_id is None

    # a retried verify does not refund twice
    with pytest.raises(BookingNotPayable):
        gateway.verify_payment(db, order.id, payment_id, sig, booking_id=b.id)
    assert len(processor.refunds) == 1


def test_payment_after_hold_expired_is_returned(db, make_booking, gateway, processor):
    b = make_booking()
    order = gateway.create_order_for_booking(db, b)
    booking_service.expire_stale_bookings(db, now=datetime.now(timezone.utc) + timedelta(hours=1))
    payment_id, sig = processor.pay(order.id)
    with pytest.raises(BookingNotPayable):
        gateway.verify_payment(db, order.id, payment_id, sig, booking_id=b.id)
    assert len(processor.refunds) == 1
    db.refresh(b)
    assert b.booking_status == "expired"
