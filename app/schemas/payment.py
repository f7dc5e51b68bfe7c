import enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field
from datetime import datetime

from app.models.booking import BookingStatus, PaymentMethod

ORDER_REFERENCE_MAX = 64


class PaymentOutcome(str, enum.Enum):
    PAID = "PAID"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class ConfirmationCode(str, enum.Enum):
    APPLIED = "applied"
    ALREADY_PROCESSED = "already_processed"
    INVOICE_REPAIRED = "invoice_repaired"
    NOT_FOUND = "not_found"
    AMOUNT_MISMATCH = "amount_mismatch"


# Gateway callback (POST /payments/webhook, POST /payments/return)
class PaymentCallback(BaseModel):
    order_reference: str = Field(min_length=1, max_length=ORDER_REFERENCE_MAX)
    outcome: PaymentOutcome
    amount: Optional[int] = None
    method: Optional[PaymentMethod] = None
    gateway_detail: Dict[str, Any] = {}


class ConfirmationResult(BaseModel):
    accepted: bool
    result: ConfirmationCode
    booking_id: Optional[str] = None
    booking_status: Optional[BookingStatus] = None
    invoice_code: Optional[str] = None
    flagged: bool = False
    message: str


# Payment initiation (POST /payments/{booking_id}/initiate)
class PaymentInitiateRequest(BaseModel):
    method: PaymentMethod = PaymentMethod.VNPAY


class PaymentInitiateResponse(BaseModel):
    booking_id: str
    method: PaymentMethod
    order_reference: str
    amount: int
    currency: str
    expires_at: datetime


# Cash desk (POST /payments/cash)
class CashPaymentRequest(BaseModel):
    booking_id: str = Field(min_length=1)
