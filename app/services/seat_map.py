"""
Seat occupancy for (room, showtime) pairs.

Every held or sold seat is one ``occupied_seats`` row. The unique key on
(room_code, showtime_at, seat_label) is what makes a claim exclusive: a
booking's seats are inserted together and either all of them land or the
whole transaction is rolled back.
"""
import logging
import re
from datetime import datetime
from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import SeatConflictError
from app.models.booking import Booking, OccupiedSeat, RELEASED_STATUSES
from app.utils.clock import as_utc

logger = logging.getLogger(__name__)

_LABEL_RE = re.compile(r"^([A-Z]*)(\d*)$")


def seat_sort_key(label: str):
    """Sort 'A2' before 'A10'."""
    match = _LABEL_RE.match(label)
    if not match:
        return (label, 0)
    row, number = match.groups()
    return (row, int(number) if number else 0)


def _released_owners():
    return select(Booking.booking_id).where(Booking.status.in_(RELEASED_STATUSES))


def _purge_released_holders(db: Session, room_code: str, showtime_at: datetime, labels: List[str]) -> int:
    """Drop leftover rows for these seats whose owner is already cancelled or failed."""
    return (
        db.query(OccupiedSeat)
        .filter(
            OccupiedSeat.room_code == room_code,
            OccupiedSeat.showtime_at == showtime_at,
            OccupiedSeat.seat_label.in_(labels),
            OccupiedSeat.booking_id.in_(_released_owners()),
        )
        .delete(synchronize_session=False)
    )


def find_conflicts(db: Session, room_code: str, showtime_at: datetime, labels: Iterable[str]) -> List[str]:
    """Return which of ``labels`` are held by an active (pending or paid) booking."""
    rows = (
        db.query(OccupiedSeat.seat_label)
        .join(Booking, Booking.booking_id == OccupiedSeat.booking_id)
        .filter(
            OccupiedSeat.room_code == room_code,
            OccupiedSeat.showtime_at == as_utc(showtime_at),
            OccupiedSeat.seat_label.in_(list(labels)),
            Booking.status.notin_(RELEASED_STATUSES),
        )
        .all()
    )
    return sorted({r.seat_label for r in rows}, key=seat_sort_key)


def claim_seats(
    db: Session,
    booking_id: str,
    room_code: str,
    showtime_at: datetime,
    labels: List[str],
) -> None:
    """
    Hold every seat in ``labels`` for ``booking_id``, or none of them.

    Runs inside the caller's transaction and flushes. On a unique-key
    violation the session is rolled back (discarding anything else the
    caller added, including the booking row) and ``SeatConflictError`` is
    raised with the seats that are taken.
    """
    showtime_at = as_utc(showtime_at)
    purged = _purge_released_holders(db, room_code, showtime_at, labels)
    if purged:
        logger.info(
            "Purged %d stale seat record(s) in %s @ %s before claim by %s",
            purged, room_code, showtime_at.isoformat(), booking_id,
        )

    db.add_all([
        OccupiedSeat(
            room_code=room_code,
            showtime_at=showtime_at,
            seat_label=label,
            booking_id=booking_id,
        )
        for label in labels
    ])
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        taken = find_conflicts(db, room_code, showtime_at, labels)
        logger.info(
            "Seat claim for %s rejected in %s @ %s, taken: %s",
            booking_id, room_code, showtime_at.isoformat(), taken or labels,
        )
        raise SeatConflictError(taken or list(labels))


def release_seats(db: Session, booking_id: str) -> int:
    """
    Remove every seat record owned by ``booking_id``.

    Matches on the owner only, so it is safe to repeat after a partial
    failure. Does not commit.
    """
    released = (
        db.query(OccupiedSeat)
        .filter(OccupiedSeat.booking_id == booking_id)
        .delete(synchronize_session=False)
    )
    if released:
        logger.info("Released %d seat(s) held by booking %s", released, booking_id)
    return released


def release_orphaned_seats(db: Session) -> int:
    """Release seat records left behind by cancelled or failed bookings."""
    released = (
        db.query(OccupiedSeat)
        .filter(OccupiedSeat.booking_id.in_(_released_owners()))
        .delete(synchronize_session=False)
    )
    if released:
        logger.warning("Released %d orphaned seat record(s)", released)
    return released


def list_occupied_seats(db: Session, room_code: str, showtime_at: datetime) -> List[str]:
    """Seat labels currently unavailable for a room/showtime."""
    rows = (
        db.query(OccupiedSeat.seat_label)
        .join(Booking, Booking.booking_id == OccupiedSeat.booking_id)
        .filter(
            OccupiedSeat.room_code == room_code,
            OccupiedSeat.showtime_at == as_utc(showtime_at),
            Booking.status.notin_(RELEASED_STATUSES),
        )
        .all()
    )
    return sorted((r.seat_label for r in rows), key=seat_sort_key)
