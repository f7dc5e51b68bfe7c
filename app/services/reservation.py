"""
Reservation: create a PENDING_PAYMENT booking and hold its seats.

This is the only code path that brings a booking into existence. The
booking row, its combo lines and its seat records are written in one
transaction, so a seat conflict leaves nothing behind.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from email_validator import validate_email, EmailNotValidError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import FieldError, ReservationValidationError
from app.models.booking import Booking, BookingCombo, BookingStatus
from app.models.user import User
from app.schemas.booking import BookingCreate, PurchaserSnapshot
from app.services import catalog, events, seat_map
from app.services.ledger import generate_booking_id
from app.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)

MAX_LABEL_LENGTH = 10
# Column widths of the purchaser snapshot on bookings
MAX_NAME_LENGTH = 255
MAX_EMAIL_LENGTH = 255
MAX_PHONE_LENGTH = 30


def normalise_labels(labels: List[str]) -> List[str]:
    return [label.strip().upper() for label in labels]


def purchaser_from_user(user: User, override: Optional[PurchaserSnapshot] = None) -> PurchaserSnapshot:
    """Snapshot the purchaser's contact details, preferring values typed at checkout."""
    override = override or PurchaserSnapshot()
    return PurchaserSnapshot(
        name=(override.name or user.full_name or "").strip() or None,
        email=(override.email or user.email or "").strip() or None,
        phone=(override.phone or user.phone or "").strip() or None,
    )


def validate_reservation(
    request: BookingCreate,
    purchaser: PurchaserSnapshot,
    max_seats: Optional[int] = None,
) -> List[FieldError]:
    """Business-rule checks on a reservation request. Returns every problem found."""
    max_seats = max_seats or settings.MAX_SEATS_PER_BOOKING
    errors: List[FieldError] = []

    if not request.room.strip():
        errors.append(FieldError("room", "Room is required"))
    if not request.movie_ref.strip():
        errors.append(FieldError("movie_ref", "Movie reference is required"))

    labels = normalise_labels(request.seat_labels)
    if not labels:
        errors.append(FieldError("seat_labels", "Select at least one seat"))
    elif len(labels) > max_seats:
        errors.append(FieldError("seat_labels", f"At most {max_seats} seats per booking"))
    if any(not label or len(label) > MAX_LABEL_LENGTH for label in labels):
        errors.append(FieldError("seat_labels", "Seat labels must be 1-10 characters"))
    duplicates = sorted({label for label in labels if label and labels.count(label) > 1})
    if duplicates:
        errors.append(FieldError("seat_labels", f"Duplicate seats: {', '.join(duplicates)}"))

    codes = [c.combo_code.strip() for c in request.combos]
    if len(set(codes)) != len(codes):
        errors.append(FieldError("combos", "Each combo may appear only once"))
    for index, combo in enumerate(request.combos):
        if not combo.combo_code.strip():
            errors.append(FieldError(f"combos[{index}].combo_code", "Combo code is required"))
        if combo.quantity < 1:
            errors.append(FieldError(f"combos[{index}].quantity", "Quantity must be at least 1"))

    if not purchaser.name:
        errors.append(FieldError("purchaser.name", "Purchaser name is required"))
    elif len(purchaser.name) > MAX_NAME_LENGTH:
        errors.append(FieldError("purchaser.name", f"Must be at most {MAX_NAME_LENGTH} characters"))
    if not purchaser.email:
        errors.append(FieldError("purchaser.email", "Purchaser email is required"))
    elif len(purchaser.email) > MAX_EMAIL_LENGTH:
        errors.append(FieldError("purchaser.email", f"Must be at most {MAX_EMAIL_LENGTH} characters"))
    else:
        try:
            validate_email(purchaser.email, check_deliverability=False)
        except EmailNotValidError as e:
            errors.append(FieldError("purchaser.email", str(e)))
    if purchaser.phone and len(purchaser.phone) > MAX_PHONE_LENGTH:
        errors.append(FieldError("purchaser.phone", f"Must be at most {MAX_PHONE_LENGTH} characters"))

    return errors


def create_booking(
    db: Session,
    request: BookingCreate,
    user_id,
    purchaser: PurchaserSnapshot,
    now: Optional[datetime] = None,
    hold_minutes: Optional[int] = None,
) -> Booking:
    """
    Reserve seats for a purchaser.

    Prices are read from the catalog now and frozen on the booking. The
    hold lasts ``hold_minutes`` (default ``settings.HOLD_MINUTES``).

    Raises ReservationValidationError, ShowtimeNotFoundError,
    UnknownSeatError, UnknownComboError or SeatConflictError.
    """
    now = as_utc(now) or utcnow()
    hold_minutes = hold_minutes or settings.HOLD_MINUTES

    errors = validate_reservation(request, purchaser)
    if errors:
        raise ReservationValidationError(errors)

    room_code = request.room.strip()
    labels = normalise_labels(request.seat_labels)
    selections = [(c.combo_code.strip(), c.quantity) for c in request.combos]

    showtime = catalog.resolve_showtime(db, room_code, request.showtime, request.movie_ref.strip(), now)
    seat_prices = catalog.quote_seats(db, room_code, labels)
    combo_quotes = catalog.quote_combos(db, selections, now.date())

    seat_subtotal = sum(seat_prices[label] for label in labels)
    combo_subtotal = sum(q.line_total for q in combo_quotes)
    showtime_at = as_utc(showtime.starts_at)

    booking = Booking(
        booking_id=generate_booking_id(),
        room_code=room_code,
        showtime_at=showtime_at,
        movie_ref=showtime.movie_ref,
        movie_title=showtime.movie_title,
        seat_labels=labels,
        seat_subtotal=seat_subtotal,
        combo_subtotal=combo_subtotal,
        grand_total=seat_subtotal + combo_subtotal,
        user_id=user_id,
        purchaser_name=purchaser.name,
        purchaser_email=purchaser.email,
        purchaser_phone=purchaser.phone,
        status=BookingStatus.PENDING_PAYMENT,
        expires_at=now + timedelta(minutes=hold_minutes),
        combos=[
            BookingCombo(
                combo_code=q.combo_code,
                name=q.name,
                quantity=q.quantity,
                unit_price=q.unit_price,
                line_total=q.line_total,
            )
            for q in combo_quotes
        ],
    )

    try:
        db.add(booking)
        db.flush()
        seat_map.claim_seats(db, booking.booking_id, room_code, showtime_at, labels)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to persist reservation for %s @ %s", room_code, showtime_at.isoformat())
        raise

    db.refresh(booking)
    logger.info(
        "Booking %s reserved %s in %s @ %s, total %d, hold until %s",
        booking.booking_id, labels, room_code, showtime_at.isoformat(),
        booking.grand_total, as_utc(booking.expires_at).isoformat(),
    )
    events.emit(db, events.BOOKING_RESERVED, booking)
    return booking
