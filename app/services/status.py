from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.exceptions import BookingNotFoundError
from app.models.booking import BookingStatus
from app.schemas.booking import BookingStatusView, InvoiceSummary
from app.services import invoices, ledger
from app.utils.clock import as_utc, utcnow


def get_booking_status(db: Session, booking_id: str, now: Optional[datetime] = None) -> BookingStatusView:
    """
    What the purchaser should see while polling after checkout.

    Read only. A pending booking past its deadline is reported as no
    longer holding seats even before the sweeper has released them.
    """
    now = as_utc(now) or utcnow()
    booking = ledger.get_booking(db, booking_id)
    if booking is None:
        raise BookingNotFoundError("Booking not found")

    status = booking.status
    expires_at = as_utc(booking.expires_at)
    hold_expired = status is BookingStatus.PENDING_PAYMENT and expires_at is not None and expires_at <= now
    seats_held = status is BookingStatus.PAID or (status is BookingStatus.PENDING_PAYMENT and not hold_expired)

    invoice = None
    if status is BookingStatus.PAID:
        row = invoices.get_invoice(db, booking_id)
        if row is not None:
            invoice = InvoiceSummary.model_validate(row)

    if status is BookingStatus.PAID:
        message = "Payment received. Your tickets are confirmed."
    elif hold_expired:
        message = "Your seat hold has expired and the seats are no longer reserved."
    elif status is BookingStatus.PENDING_PAYMENT:
        message = f"Seats are held until {expires_at.isoformat()}. Complete payment to confirm."
    elif status is BookingStatus.FAILED:
        message = "Payment failed. The seats have been released."
    else:
        message = "Booking cancelled. The seats have been released."

    return BookingStatusView(
        booking_id=booking.booking_id,
        status=status,
        grand_total=booking.grand_total,
        expires_at=expires_at,
        hold_expired=hold_expired,
        seats_held=seats_held,
        seat_labels=booking.seat_labels,
        invoice=invoice,
        message=message,
    )
