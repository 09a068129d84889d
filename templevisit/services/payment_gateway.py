"""Settlement through the external payment processor.

Amounts cross the processor boundary in minor units (paise) and are major
units everywhere else. A signature mismatch is terminal for that payment
attempt: it is audited, logged on the security channel and never confirms a
booking. Processor and network failures surface as GatewayError and can be
retried with the same order/payment ids.
"""
import hashlib
import hmac
import time
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.orm import Session

from templevisit.core.errors import InvalidSignature, ValidationError, InvalidTransition, BookingNotPayable
from templevisit.core.logging_config import get_logger
from templevisit.models.audit_log import AuditLog
from templevisit.models.booking import Booking
from templevisit.models.enums import BookingStatus, PaymentStatus
from templevisit.services import booking_service
from templevisit.services.audit_service import log_audit
from templevisit.services.razorpay_client import PaymentProcessor

log = get_logger("payment")
security_log = get_logger("security")

HUNDRED = Decimal(100)


def to_minor(amount: Decimal) -> int:
    return int((Decimal(amount) * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major(amount_minor) -> Decimal:
    return (Decimal(int(amount_minor or 0)) / HUNDRED).quantize(Decimal("0.01"))


def expected_signature(order_id: str, payment_id: str, secret: str) -> str:
    msg = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


def _payment_out(p: dict) -> dict:
    return {
        "id": p.get("id"),
        "status": p.get("status"),
        "amount": to_major(p.get("amount")),
        "currency": p.get("currency"),
        "order_id": p.get("order_id"),
        "method": p.get("method"),
        "captured": p.get("captured"),
        "created_at": p.get("created_at"),
    }


def _refund_out(r: dict) -> dict:
    return {
        "id": r.get("id"),
        "amount": to_major(r.get("amount")),
        "currency": r.get("currency"),
        "payment_id": r.get("payment_id"),
        "status": r.get("status"),
        "created_at": r.get("created_at"),
    }


@dataclass
class Order:
    id: str
    amount: Decimal
    currency: str
    receipt: str
    notes: dict = field(default_factory=dict)


class SettlementGateway:
    def __init__(self, processor: PaymentProcessor, key_secret: str):
        self.processor = processor
        self._secret = key_secret

    def create_order(self, amount: Decimal, currency: str = "INR", receipt: str | None = None,
                     notes: dict | None = None) -> Order:
        amount = Decimal(amount)
        if amount <= 0:
            raise ValidationError("Valid amount is required", {"amount": str(amount)})
        receipt = receipt or f"receipt_{int(time.time() * 1000)}"
        o = self.processor.create_order(amount=to_minor(amount), currency=currency, receipt=receipt, notes=notes or {})
        log.info(f"Order created | order={o.get('id')} amount={amount} {currency} receipt={receipt}")
        return Order(id=o["id"], amount=amount, currency=o.get("currency", currency),
                     receipt=o.get("receipt", receipt), notes=o.get("notes") or {})

    def create_order_for_booking(self, db: Session, booking: Booking, receipt: str | None = None,
                                 notes: dict | None = None) -> Order:
        """Order for a booking's final amount; the client never chooses the amount."""
        if booking.booking_status != BookingStatus.PENDING.value:
            raise InvalidTransition(f"Cannot take payment for a {booking.booking_status} booking")
        order = self.create_order(booking.final_amount, booking.currency,
                                  receipt or f"booking_{booking.booking_reference}",
                                  {**(notes or {}), "bookingId": booking.id})
        booking.payment_order_id = order.id
        booking.payment_status = PaymentStatus.PROCESSING.value
        db.commit()
        return order

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> None:
        expected = expected_signature(order_id, payment_id, self._secret)
        if not hmac.compare_digest(expected, signature or ""):
            raise InvalidSignature("Invalid payment signature")

    def verify_payment(self, db: Session, order_id: str, payment_id: str, signature: str,
                       booking_id: str | None = None, actor: str = "system") -> dict:
        if not (order_id and payment_id and signature):
            raise ValidationError("Order ID, Payment ID, and Signature are required",
                                  {k: "required" for k, v in (("orderId", order_id), ("paymentId", payment_id),
                                                              ("signature", signature)) if not v})
        try:
            self.verify_signature(order_id, payment_id, signature)
        except InvalidSignature:
            security_log.warning(f"Payment signature mismatch | order={order_id} payment={payment_id} "
                                 f"booking={booking_id} actor={actor}")
            log_audit(db, actor_user_id=actor, action="payment.signature_invalid", entity_type="payment",
                      entity_id=payment_id, details={"orderId": order_id, "bookingId": booking_id})
            db.commit()
            raise

        payment = self.processor.fetch_payment(payment_id)
        if payment.get("order_id") and payment["order_id"] != order_id:
            security_log.warning(f"Payment/order mismatch | order={order_id} payment={payment_id}")
            raise InvalidSignature("Payment does not belong to this order")

        booking = None
        if booking_id:
            booking = booking_service.get_booking(db, booking_id)
            if booking.payment_order_id and booking.payment_order_id != order_id:
                raise ValidationError("Payment order does not match booking", {"orderId": order_id})
            if booking.booking_status != BookingStatus.PENDING.value and booking.transaction_id != payment_id:
                self._return_payment(db, booking, payment_id, actor)
                raise BookingNotPayable(f"Booking is {booking.booking_status}; the payment has been refunded")
            paid = to_major(payment.get("amount"))
            if paid != Decimal(booking.final_amount).quantize(Decimal("0.01")):
                raise ValidationError("Paid amount does not match booking", {"amount": str(paid)})
            booking = booking_service.confirm_payment(db, booking_id, transaction_id=payment_id,
                                                      payment_method=_method(payment.get("method")), actor=actor)
        log.info(f"Payment verified | order={order_id} payment={payment_id} booking={booking_id}")
        return {"verified": True, "payment": _payment_out(payment), "booking": booking}

    def get_status(self, payment_id: str) -> dict:
        return _payment_out(self.processor.fetch_payment(payment_id))

    def refund(self, payment_id: str, amount: Decimal | None = None, notes: dict | None = None) -> dict:
        """Full refund when ``amount`` is omitted, otherwise partial."""
        if amount is not None and Decimal(amount) <= 0:
            raise ValidationError("Refund amount must be positive", {"amount": str(amount)})
        r = self.processor.refund(payment_id, amount=to_minor(amount) if amount is not None else None,
                                  notes=notes or {})
        log.info(f"Refund issued | payment={payment_id} refund={r.get('id')} amount={amount if amount is not None else 'full'}")
        return _refund_out(r)

    def _return_payment(self, db: Session, booking: Booking, payment_id: str, actor: str) -> None:
        """Refund in full a payment captured for a booking that can no longer take it. Runs once per payment."""
        done = db.execute(
            select(AuditLog.id).where(AuditLog.action == "payment.returned", AuditLog.entity_id == payment_id)
        ).first()
        if done:
            return
        refund = self.refund(payment_id, notes={"bookingId": booking.id, "reason": f"booking {booking.booking_status}"})
        log_audit(db, actor_user_id=actor, action="payment.returned", entity_type="payment", entity_id=payment_id,
                  details={"bookingId": booking.id, "bookingStatus": booking.booking_status,
                           "refundId": refund["id"], "amount": str(refund["amount"])})
        db.commit()
        log.warning(f"Payment for unpayable booking refunded | booking={booking.id} status={booking.booking_status} "
                    f"payment={payment_id} refund={refund['id']}")

    def refund_payment(self, db: Session, payment_id: str, amount: Decimal | None = None,
                       notes: dict | None = None, actor: str = "system") -> dict:
        """Refund endpoint.

        A payment that paid for a booking is refunded through that booking's
        cancellation, so the booking is released along with the money. Other
        payments are refunded directly.
        """
        booking_id = db.execute(select(Booking.id).where(Booking.transaction_id == payment_id)).scalars().first()
        payment = self.processor.fetch_payment(payment_id)

        booking = None
        if booking_id:
            booking, refund = booking_service.refund_and_cancel(db, booking_id, amount=amount, notes=notes,
                                                                actor=actor, gateway=self)
        else:
            refund = self.refund(payment_id, amount, notes)
            log_audit(db, actor_user_id=actor, action="payment.refunded", entity_type="payment", entity_id=payment_id,
                      details={"refundId": refund["id"], "amount": str(refund["amount"])})
            db.commit()
        return {"refund": refund, "payment": _payment_out(payment), "booking": booking}


def _method(value: str | None) -> str | None:
    # Razorpay reports emi/paylater/etc. which bookings don't model
    return value if value in ("card", "upi", "netbanking", "wallet") else None
