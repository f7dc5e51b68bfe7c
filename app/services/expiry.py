"""
Expiry sweeper: cancel PENDING_PAYMENT bookings whose hold has run out.

Each booking is expired in its own transaction. A booking that a payment
callback resolves first is simply skipped, and a failure on one booking
is logged and retried on the next sweep without stopping the rest.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.booking import BookingStatus
from app.services import events, ledger, seat_map
from app.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    expired: List[str] = field(default_factory=list)
    seats_released: int = 0
    orphans_released: int = 0
    errors: int = 0


def expire_booking(db: Session, booking_id: str, now: datetime) -> Tuple[bool, int]:
    """Cancel one overdue booking and free its seats. Returns (won, seats released)."""
    won = ledger.transition_booking(
        db, booking_id, BookingStatus.CANCELLED, now=now, cancel_reason="expired",
    )
    # A booking resolved by someone else keeps whatever that resolution left.
    released = seat_map.release_seats(db, booking_id) if won else 0
    db.commit()
    return won, released


def sweep_expired_bookings(
    db: Session,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
) -> SweepReport:
    now = as_utc(now) or utcnow()
    batch_size = batch_size or settings.SWEEP_BATCH_SIZE
    report = SweepReport()

    for booking_id in ledger.list_expired_pending(db, now, batch_size):
        try:
            won, released = expire_booking(db, booking_id, now)
        except SQLAlchemyError:
            db.rollback()
            report.errors += 1
            logger.exception("Failed to expire booking %s", booking_id)
            continue
        report.seats_released += released
        if not won:
            logger.info("Booking %s was resolved before it could expire", booking_id)
            continue
        report.expired.append(booking_id)
        events.emit(db, events.BOOKING_CANCELLED, ledger.get_booking(db, booking_id))

    try:
        report.orphans_released = seat_map.release_orphaned_seats(db)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        report.errors += 1
        logger.exception("Failed to release orphaned seat records")

    if report.expired or report.orphans_released or report.errors:
        logger.info(
            "Expiry sweep: %d booking(s) expired, %d seat(s) released, %d orphan(s), %d error(s)",
            len(report.expired), report.seats_released, report.orphans_released, report.errors,
        )
    return report


def _sweep_once(session_factory: Callable[[], Session]) -> SweepReport:
    db = session_factory()
    try:
        return sweep_expired_bookings(db)
    finally:
        db.close()


async def run_sweeper(session_factory: Callable[[], Session], interval: Optional[float] = None) -> None:
    """Background task: sweep expired holds every ``interval`` seconds until cancelled."""
    interval = interval or settings.SWEEP_INTERVAL_SECONDS
    logger.info("Expiry sweeper started, interval %ss", interval)
    while True:
        try:
            await asyncio.to_thread(_sweep_once, session_factory)
        except Exception:
            logger.exception("Error during expired-booking sweep.")
        await asyncio.sleep(interval)
