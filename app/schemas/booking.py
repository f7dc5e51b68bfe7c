from typing import Optional, List
from pydantic import BaseModel, Field, field_validator
from datetime import datetime

from app.models.booking import BookingStatus, PaymentMethod
from app.schemas.user import UserSummary


# Shape checks only; business rules live in the reservation validation pass.
class ComboSelection(BaseModel):
    combo_code: str
    quantity: int = 1


class PurchaserSnapshot(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


# Booking: Create (POST /bookings)
class BookingCreate(BaseModel):
    room: str
    showtime: datetime
    movie_ref: str
    seat_labels: List[str] = []
    combos: List[ComboSelection] = []
    purchaser: Optional[PurchaserSnapshot] = None

    @field_validator("combos", mode="before")
    @classmethod
    def parse_null_to_empty(cls, v):
        if v is None:
            return []
        return v


class BookingComboLine(BaseModel):
    combo_code: str
    name: str
    quantity: int
    unit_price: int
    line_total: int

    class Config:
        from_attributes = True


class InvoiceSummary(BaseModel):
    invoice_code: str
    amount: int
    payment_method: PaymentMethod
    payment_status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Booking: Full response (POST /bookings, GET /bookings/{id})
class Booking(BaseModel):
    booking_id: str
    status: BookingStatus
    room_code: str
    showtime_at: datetime
    movie_ref: str
    movie_title: str
    seat_labels: List[str]
    seat_subtotal: int
    combo_subtotal: int
    grand_total: int
    combos: List[BookingComboLine] = []
    purchaser_name: str
    purchaser_email: str
    purchaser_phone: Optional[str] = None
    expires_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Booking: Status query (GET /bookings/{id}/status)
class BookingStatusView(BaseModel):
    booking_id: str
    status: BookingStatus
    grand_total: int
    expires_at: Optional[datetime] = None
    hold_expired: bool = False
    seats_held: bool
    seat_labels: List[str]
    invoice: Optional[InvoiceSummary] = None
    message: str


# Booking: Cancel response (PATCH /bookings/{id}/cancel)
class BookingCancelResponse(BaseModel):
    booking_id: str
    status: BookingStatus
    cancelled: bool = Field(description="False when the booking was already resolved")
    resolved_at: Optional[datetime] = None


# Booking: Staff view (GET /admin/bookings)
class AdminBooking(Booking):
    gateway_order_code: Optional[int] = None
    payment_details: Optional[dict] = None
    user: Optional[UserSummary] = None
    invoice: Optional[InvoiceSummary] = None
