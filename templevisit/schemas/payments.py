from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional


class CreateOrderRequest(BaseModel):
    # Ignored when bookingId is given; the booking's final amount is charged.
    amount: Optional[Decimal] = None
    currency: str = "INR"
    receipt: Optional[str] = None
    notes: dict = Field(default_factory=dict)
    bookingId: Optional[str] = None


class OrderOut(BaseModel):
    orderId: str
    amount: float
    currency: str
    receipt: str
    notes: dict = Field(default_factory=dict)


class VerifyPaymentRequest(BaseModel):
    orderId: str = ""
    paymentId: str = ""
    signature: str = ""
    bookingId: Optional[str] = None


class RefundRequest(BaseModel):
    amount: Optional[Decimal] = None
    notes: dict = Field(default_factory=dict)
