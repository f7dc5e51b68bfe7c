from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session, selectinload

from app.db.session import get_db
from app.api.deps import get_current_user
from app.core.exceptions import BookingNotFoundError
from app.models.user import User
from app.models.booking import Booking, BookingStatus
from app.schemas.booking import (
    BookingCreate,
    Booking as BookingSchema,
    BookingCancelResponse,
    BookingStatusView,
)
from app.schemas.common import PaginatedResponse
from app.services import ledger, reconciliation, reservation
from app.services.status import get_booking_status

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _load_own_booking(db: Session, booking_id: str, user: User) -> Booking:
    booking = ledger.get_booking(db, booking_id)
    if booking is None or booking.user_id != user.id:
        raise BookingNotFoundError("Booking not found")
    return booking


# ---------------------------------------------------------------------------
# Create booking (seat selection -> pending payment)
# ---------------------------------------------------------------------------


@router.post("/", response_model=BookingSchema, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Hold the selected seats and create a PENDING_PAYMENT booking.

    Seats are held until ``expires_at``; pay before then or the hold is
    released by the expiry sweeper. Responds 409 with the taken seat labels
    when any requested seat is already held.
    """
    purchaser = reservation.purchaser_from_user(current_user, data.purchaser)
    return reservation.create_booking(db, data, current_user.id, purchaser)


# ---------------------------------------------------------------------------
# List / detail
# ---------------------------------------------------------------------------


@router.get("/", response_model=PaginatedResponse[BookingSchema])
def list_my_bookings(
    status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Return the current user's bookings, newest first."""
    query = db.query(Booking).filter(Booking.user_id == current_user.id)
    if status:
        query = query.filter(Booking.status == status)

    total = query.count()
    bookings = (
        query.options(selectinload(Booking.combos))
        .order_by(Booking.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return PaginatedResponse(
        data=[BookingSchema.model_validate(b) for b in bookings],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


@router.get("/{booking_id}", response_model=BookingSchema)
def get_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _load_own_booking(db, booking_id, current_user)


@router.get("/{booking_id}/status", response_model=BookingStatusView)
def get_status(
    booking_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Polled by the payment result page until the booking is resolved."""
    _load_own_booking(db, booking_id, current_user)
    return get_booking_status(db, booking_id)


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


@router.patch("/{booking_id}/cancel", response_model=BookingCancelResponse)
def cancel_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Cancel a pending booking and release its seats.
    Cancelling an already cancelled booking is a no-op; paid bookings respond 409.
    """
    _load_own_booking(db, booking_id, current_user)
    booking, cancelled = reconciliation.cancel_booking(db, booking_id, current_user)
    return BookingCancelResponse(
        booking_id=booking.booking_id,
        status=booking.status,
        cancelled=cancelled,
        resolved_at=booking.resolved_at,
    )
