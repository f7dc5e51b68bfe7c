from typing import Optional
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload, selectinload

from app.db.session import get_db
from app.api.deps import get_current_staff_user
from app.core.exceptions import BookingNotFoundError
from app.models.user import User
from app.models.booking import Booking, BookingStatus
from app.schemas.booking import AdminBooking, BookingCancelResponse, BookingStatusView
from app.schemas.common import PaginatedResponse
from app.services import reconciliation
from app.services.status import get_booking_status

router = APIRouter(prefix="/admin/bookings", tags=["Admin - Bookings"])


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _load_booking(db: Session, booking_id: str) -> Booking:
    booking = (
        db.query(Booking)
        .options(
            selectinload(Booking.combos),
            joinedload(Booking.user),
            joinedload(Booking.invoice),
        )
        .filter(Booking.booking_id == booking_id)
        .first()
    )
    if booking is None:
        raise BookingNotFoundError("Booking not found")
    return booking


@router.get("/", response_model=PaginatedResponse[AdminBooking])
def list_all_bookings(
    # --- Filters ---
    member_id: Optional[UUID] = Query(None, description="Filter by the booking user's id"),
    status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    movie: Optional[str] = Query(None, description="Filter by movie title (case-insensitive substring)"),
    room: Optional[str] = Query(None, description="Filter by room code"),
    start_date: Optional[date] = Query(None, description="Showtimes on or after this day (YYYY-MM-DD, UTC)"),
    end_date: Optional[date] = Query(None, description="Showtimes on or before this day (YYYY-MM-DD, UTC)"),
    # --- Pagination ---
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
):
    """
    Return bookings of every member, newest first.
    Supports filtering by member, status, movie title, room and showtime date range.
    """
    query = db.query(Booking)

    if member_id:
        query = query.filter(Booking.user_id == member_id)
    if status:
        query = query.filter(Booking.status == status)
    if movie:
        query = query.filter(Booking.movie_title.ilike(f"%{movie}%"))
    if room:
        query = query.filter(Booking.room_code == room.strip())
    if start_date:
        query = query.filter(Booking.showtime_at >= _day_start(start_date))
    if end_date:
        query = query.filter(Booking.showtime_at < _day_start(end_date + timedelta(days=1)))

    total = query.count()
    bookings = (
        query.options(
            selectinload(Booking.combos),
            joinedload(Booking.user),
            joinedload(Booking.invoice),
        )
        .order_by(Booking.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return PaginatedResponse(
        data=[AdminBooking.model_validate(b) for b in bookings],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


@router.get("/{booking_id}", response_model=AdminBooking)
def get_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
):
    return _load_booking(db, booking_id)


@router.get("/{booking_id}/status", response_model=BookingStatusView)
def get_status(
    booking_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
):
    return get_booking_status(db, booking_id)


@router.patch("/{booking_id}/cancel", response_model=BookingCancelResponse)
def cancel_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
):
    """Cancel any member's pending booking from the box office and release its seats."""
    booking, cancelled = reconciliation.cancel_booking(db, booking_id, current_user)
    return BookingCancelResponse(
        booking_id=booking.booking_id,
        status=booking.status,
        cancelled=cancelled,
        resolved_at=booking.resolved_at,
    )
