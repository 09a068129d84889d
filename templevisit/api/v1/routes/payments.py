from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from templevisit.api.deps import Caller, get_current_user, require_roles, get_payment_gateway, STAFF_ROLES
from templevisit.core.errors import ValidationError, PaymentNotFound
from templevisit.db.session import get_db
from templevisit.schemas.booking import BookingOut
from templevisit.schemas.payments import CreateOrderRequest, OrderOut, VerifyPaymentRequest, RefundRequest
from templevisit.services import booking_service
from templevisit.services.payment_gateway import SettlementGateway

router = APIRouter(prefix="/payments", tags=["payments"])


def _order_out(order) -> OrderOut:
    return OrderOut(orderId=order.id, amount=float(order.amount), currency=order.currency,
                    receipt=order.receipt, notes=order.notes)


@router.post("/create-order", response_model=OrderOut, status_code=201)
def create_order(
    body: CreateOrderRequest,
    db: Session = Depends(get_db),
    user: Caller = Depends(get_current_user),
    gateway: SettlementGateway = Depends(get_payment_gateway),
):
    if body.bookingId:
        booking = booking_service.get_booking(db, body.bookingId, user.id)
        order = gateway.create_order_for_booking(db, booking, receipt=body.receipt, notes=body.notes)
    else:
        if body.amount is None:
            raise ValidationError("Valid amount is required", {"amount": "required"})
        order = gateway.create_order(body.amount, body.currency, body.receipt, body.notes)
    return _order_out(order)


@router.post("/verify")
def verify_payment(
    body: VerifyPaymentRequest,
    db: Session = Depends(get_db),
    user: Caller = Depends(get_current_user),
    gateway: SettlementGateway = Depends(get_payment_gateway),
):
    if body.bookingId and user.role not in STAFF_ROLES:
        # ownership check; raises NotFound for someone else's booking
        booking_service.get_booking(db, body.bookingId, user.id)
    result = gateway.verify_payment(db, body.orderId, body.paymentId, body.signature,
                                    booking_id=body.bookingId, actor=user.id)
    booking = result["booking"]
    return {
        "verified": result["verified"],
        "payment": result["payment"],
        "booking": BookingOut.from_booking(booking).model_dump(mode="json") if booking else None,
    }


@router.get("/{payment_id}/status")
def payment_status(
    payment_id: str,
    db: Session = Depends(get_db),
    user: Caller = Depends(get_current_user),
    gateway: SettlementGateway = Depends(get_payment_gateway),
):
    status = gateway.get_status(payment_id)
    # customers only see payments made for their own bookings
    if user.role not in STAFF_ROLES and not booking_service.owns_payment(db, user.id, payment_id, status.get("order_id")):
        raise PaymentNotFound("Payment not found")
    return status


@router.post("/{payment_id}/refund")
def refund_payment(
    payment_id: str,
    body: RefundRequest | None = None,
    db: Session = Depends(get_db),
    user: Caller = Depends(require_roles(*STAFF_ROLES)),
    gateway: SettlementGateway = Depends(get_payment_gateway),
):
    body = body or RefundRequest()
    result = gateway.refund_payment(db, payment_id, amount=body.amount, notes=body.notes, actor=user.id)
    booking = result["booking"]
    return {
        "refund": result["refund"],
        "payment": result["payment"],
        "booking": BookingOut.from_booking(booking).model_dump(mode="json") if booking else None,
    }
