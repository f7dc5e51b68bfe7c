from app.schemas.common import PaginatedResponse, ErrorResponse, ValidationErrorResponse, SeatsUnavailableError
from app.schemas.user import User, UserSummary, TokenPayload
from app.schemas.seat import SeatMapResponse, SeatRow, SeatStatus
from app.schemas.booking import (
    Booking, AdminBooking, BookingCreate, BookingCancelResponse, BookingStatusView,
    ComboSelection, PurchaserSnapshot, InvoiceSummary,
)
from app.schemas.payment import (
    PaymentOutcome, PaymentCallback, ConfirmationResult, ConfirmationCode,
    PaymentInitiateRequest, PaymentInitiateResponse, CashPaymentRequest,
)
from app.schemas.notification import Notification
