import logging
import uuid
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.models.booking import Booking, BookingStatus
from app.models.counter import Counter
from app.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)

ORDER_CODE_COUNTER = "gateway_order_code"
ORDER_CODE_START = 100001


def generate_booking_id() -> str:
    return str(uuid.uuid4())


def _increment(db: Session, name: str) -> int:
    return (
        db.query(Counter)
        .filter(Counter.name == name)
        .update({Counter.seq: Counter.seq + 1}, synchronize_session=False)
    )


def next_counter_value(db: Session, name: str, start: int = 1) -> int:
    """
    Atomically advance the named counter and return the new value.

    The increment is a single UPDATE in the caller's transaction, so the
    row stays locked until commit and concurrent callers never read the
    same value.

    The first caller for a new counter inserts its row. If a concurrent
    caller inserted it first, the session is rolled back and the increment
    retried, so call this before making other changes in the transaction.
    """
    if not _increment(db, name):
        db.add(Counter(name=name, seq=start))
        try:
            db.flush()
            return start
        except IntegrityError:
            db.rollback()
            logger.info("Counter %s was created concurrently; retrying increment", name)
            if not _increment(db, name):
                raise
    return db.query(Counter.seq).filter(Counter.name == name).scalar()


def next_order_code(db: Session) -> int:
    return next_counter_value(db, ORDER_CODE_COUNTER, start=ORDER_CODE_START)


def get_booking(db: Session, booking_id: str) -> Optional[Booking]:
    return (
        db.query(Booking)
        .options(selectinload(Booking.combos))
        .filter(Booking.booking_id == booking_id)
        .first()
    )


def find_by_order_reference(db: Session, reference: Union[str, int]) -> Optional[Booking]:
    """
    Resolve a gateway order reference to its booking.

    A reference is either the booking id itself or the numeric order code
    assigned when a payment was initiated. Amounts are never used to match.
    """
    reference = str(reference).strip()
    if not reference:
        return None
    # isdigit() alone also accepts non-ASCII digits such as "²"
    if reference.isascii() and reference.isdigit():
        return db.query(Booking).filter(Booking.gateway_order_code == int(reference)).first()
    return db.query(Booking).filter(Booking.booking_id == reference).first()


def transition_booking(
    db: Session,
    booking_id: str,
    to_status: BookingStatus,
    now: Optional[datetime] = None,
    **fields,
) -> bool:
    """
    Move a booking out of PENDING_PAYMENT.

    The UPDATE is conditioned on the current status, so when the sweeper
    and a gateway callback race for the same booking exactly one of them
    matches the row. Returns True for the caller that won. Does not commit.
    """
    if to_status is BookingStatus.PENDING_PAYMENT:
        raise ValueError("Cannot transition a booking back to PENDING_PAYMENT")

    values = {
        "status": to_status,
        "expires_at": None,
        "resolved_at": as_utc(now) or utcnow(),
        **fields,
    }
    updated = (
        db.query(Booking)
        .filter(
            Booking.booking_id == booking_id,
            Booking.status == BookingStatus.PENDING_PAYMENT,
        )
        .update(values, synchronize_session="fetch")
    )
    if updated:
        logger.info("Booking %s -> %s", booking_id, to_status.value)
    return updated == 1


def list_expired_pending(db: Session, now: datetime, limit: int) -> List[str]:
    """Booking ids whose hold deadline has passed, oldest deadline first."""
    rows = (
        db.query(Booking.booking_id)
        .filter(
            Booking.status == BookingStatus.PENDING_PAYMENT,
            Booking.expires_at <= as_utc(now),
        )
        .order_by(Booking.expires_at)
        .limit(limit)
        .all()
    )
    return [r.booking_id for r in rows]
