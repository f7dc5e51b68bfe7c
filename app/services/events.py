"""
Post-commit booking events.

Emitted only after a transition has been committed. Each event is written
as an in-app notification for the purchaser in its own transaction; if
that fails the error is logged and the booking is unaffected.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.models.notification import Notification

logger = logging.getLogger(__name__)

BOOKING_RESERVED = "booking_reserved"
BOOKING_PAID = "booking_paid"
BOOKING_CANCELLED = "booking_cancelled"
BOOKING_FAILED = "booking_failed"

_TEMPLATES = {
    BOOKING_RESERVED: (
        "Seats Reserved",
        "Seats {seats} for {movie} are held for you. Complete payment before {expires}.",
    ),
    BOOKING_PAID: (
        "Booking Confirmed",
        "Payment received for {movie}, seats {seats}. Ref: {booking_id}",
    ),
    BOOKING_CANCELLED: (
        "Booking Cancelled",
        "Your booking {booking_id} for {movie} has been cancelled and the seats were released.",
    ),
    BOOKING_FAILED: (
        "Payment Failed",
        "Payment for booking {booking_id} failed. Seats {seats} were released.",
    ),
}


def emit(db: Session, event: str, booking: Booking) -> bool:
    """Record ``event`` for the booking's purchaser. Never raises on storage errors."""
    title, template = _TEMPLATES[event]
    message = template.format(
        booking_id=booking.booking_id,
        movie=booking.movie_title,
        seats=", ".join(booking.seat_labels or []),
        expires=booking.expires_at.isoformat() if booking.expires_at else "-",
    )
    try:
        db.add(Notification(
            user_id=booking.user_id,
            title=title,
            message=message,
            type=event,
            reference_id=booking.booking_id,
        ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not record %s notification for booking %s", event, booking.booking_id)
        return False
    logger.debug("Emitted %s for booking %s", event, booking.booking_id)
    return True
