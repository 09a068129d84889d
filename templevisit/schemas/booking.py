from datetime import date, datetime
from pydantic import BaseModel
from typing import List, Optional

from templevisit.models.booking import Booking


class VisitorsIn(BaseModel):
    adults: int = 1
    children: int = 0
    seniors: int = 0


class ContactIn(BaseModel):
    name: str
    phone: str
    email: str  # plain str; format is checked by the validation layer
    specialRequests: Optional[str] = None


class BookingCreate(BaseModel):
    templeId: str
    date: str  # YYYY-MM-DD
    timeSlot: str  # slot start, HH:MM
    visitors: Optional[VisitorsIn] = None
    numberOfVisitors: Optional[int] = None  # shorthand: adults only
    contactInfo: ContactIn
    specialRequests: Optional[str] = None
    paymentMethod: str = "card"
    source: str = "web"

    def visitor_counts(self) -> tuple[int, int, int]:
        if self.visitors is not None:
            return self.visitors.adults, self.visitors.children, self.visitors.seniors
        return (self.numberOfVisitors if self.numberOfVisitors is not None else 1), 0, 0


class PaymentUpdate(BaseModel):
    paymentStatus: str
    paymentMethod: Optional[str] = None
    transactionId: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class TimeSlotOut(BaseModel):
    start: str
    end: str


class VisitorsOut(BaseModel):
    adults: int
    children: int
    seniors: int


class ContactOut(BaseModel):
    name: str
    phone: str
    email: str
    specialRequests: Optional[str] = None


class PaymentInfoOut(BaseModel):
    paymentMethod: str
    paymentStatus: str
    orderId: Optional[str] = None
    transactionId: Optional[str] = None
    paidAt: Optional[datetime] = None


class BookingOut(BaseModel):
    id: str
    bookingReference: str
    templeId: str
    userId: str
    visitDate: date
    formattedVisitDate: str
    timeSlot: TimeSlotOut
    visitors: VisitorsOut
    totalVisitors: int
    totalAmount: float
    serviceFee: float
    finalAmount: float
    currency: str
    contactInfo: ContactOut
    paymentInfo: PaymentInfoOut
    bookingStatus: str
    holdExpiresAt: Optional[datetime] = None
    qrCode: Optional[str] = None
    checkInTime: Optional[datetime] = None
    checkOutTime: Optional[datetime] = None
    cancellationReason: Optional[str] = None
    refundAmount: Optional[float] = None
    refundStatus: Optional[str] = None
    source: str = "web"
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_booking(cls, b: Booking) -> "BookingOut":
        return cls(
            id=b.id,
            bookingReference=b.booking_reference,
            templeId=b.temple_id,
            userId=b.user_id,
            visitDate=b.visit_date,
            formattedVisitDate=b.visit_date.strftime("%A, %d %B %Y"),
            timeSlot=TimeSlotOut(start=b.slot_start, end=b.slot_end),
            visitors=VisitorsOut(adults=b.adults, children=b.children, seniors=b.seniors),
            totalVisitors=b.total_visitors,
            totalAmount=float(b.total_amount or 0),
            serviceFee=float(b.service_fee or 0),
            finalAmount=float(b.final_amount or 0),
            currency=b.currency,
            contactInfo=ContactOut(name=b.contact_name, phone=b.contact_phone, email=b.contact_email,
                                   specialRequests=b.special_requests),
            paymentInfo=PaymentInfoOut(paymentMethod=b.payment_method, paymentStatus=b.payment_status,
                                       orderId=b.payment_order_id, transactionId=b.transaction_id, paidAt=b.paid_at),
            bookingStatus=b.booking_status,
            holdExpiresAt=b.hold_expires_at,
            qrCode=b.qr_code,
            checkInTime=b.check_in_time,
            checkOutTime=b.check_out_time,
            cancellationReason=b.cancellation_reason,
            refundAmount=float(b.refund_amount) if b.refund_amount is not None else None,
            refundStatus=b.refund_status,
            source=b.source,
            createdAt=b.created_at,
            updatedAt=b.updated_at,
        )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class BookingList(BaseModel):
    bookings: List[BookingOut]
    pagination: Pagination


class CancelOut(BaseModel):
    booking: BookingOut
    refundAmount: float


class SlotOut(BaseModel):
    time: str
    end: str
    available: bool
    remainingCapacity: int


class SlotsOut(BaseModel):
    templeId: str
    date: str  # YYYY-MM-DD
    capacity: int
    slots: List[SlotOut]
