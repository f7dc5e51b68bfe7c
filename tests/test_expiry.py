import asyncio
from datetime import timedelta

from sqlalchemy.exc import OperationalError

from app.models.booking import Booking, BookingStatus, OccupiedSeat
from app.models.notification import Notification
from app.services import expiry, ledger, seat_map
from app.utils.clock import utcnow

from tests.conftest import ROOM


def _expire(db, booking):
    db.query(Booking).filter(Booking.booking_id == booking.booking_id).update(
        {"expires_at": utcnow() - timedelta(minutes=1)}, synchronize_session=False,
    )
    db.commit()


def test_sweep_cancels_overdue_hold_and_frees_seat(db, reserve, showtime_at):
    # Scenario C
    booking = reserve(["B1"])
    _expire(db, booking)

    report = expiry.sweep_expired_bookings(db)

    assert report.expired == [booking.booking_id]
    assert report.seats_released == 1
    assert report.errors == 0
    expired = ledger.get_booking(db, booking.booking_id)
    assert expired.status is BookingStatus.CANCELLED
    assert expired.cancel_reason == "expired"
    assert db.query(OccupiedSeat).filter(OccupiedSeat.seat_label == "B1").count() == 0
    assert seat_map.list_occupied_seats(db, ROOM, showtime_at) == []


def test_expired_seat_is_claimable_right_after_sweep(db, reserve, other_user):
    booking = reserve(["B1"])
    _expire(db, booking)
    expiry.sweep_expired_bookings(db)

    again = reserve(["B1"], owner=other_user)
    assert again.status is BookingStatus.PENDING_PAYMENT


def test_sweep_leaves_live_holds_alone(db, reserve):
    booking = reserve(["B1"])
    report = expiry.sweep_expired_bookings(db)
    assert report.expired == []
    assert ledger.get_booking(db, booking.booking_id).status is BookingStatus.PENDING_PAYMENT


def test_sweep_uses_supplied_clock(db, reserve):
    booking = reserve(["B1"])
    report = expiry.sweep_expired_bookings(db, now=utcnow() + timedelta(minutes=21))
    assert report.expired == [booking.booking_id]


def test_sweep_skips_booking_resolved_concurrently(db, reserve, monkeypatch):
    booking = reserve(["B1"])
    _expire(db, booking)

    real_transition = ledger.transition_booking

    def paid_first(session, booking_id, to_status, now=None, **fields):
        # A gateway callback wins between the sweeper's select and its update
        real_transition(session, booking_id, BookingStatus.PAID, now=now)
        return real_transition(session, booking_id, to_status, now=now, **fields)

    monkeypatch.setattr(ledger, "transition_booking", paid_first)
    report = expiry.sweep_expired_bookings(db)

    assert report.expired == []
    assert ledger.get_booking(db, booking.booking_id).status is BookingStatus.PAID
    assert db.query(OccupiedSeat).count() == 1


def test_sweep_continues_after_a_failure(db, reserve, other_user, monkeypatch):
    first = reserve(["B1"])
    second = reserve(["B2"], owner=other_user)
    _expire(db, first)
    _expire(db, second)

    real_expire = expiry.expire_booking

    def flaky(session, booking_id, now):
        if booking_id == first.booking_id:
            raise OperationalError("UPDATE bookings", {}, Exception("database is locked"))
        return real_expire(session, booking_id, now)

    monkeypatch.setattr(expiry, "expire_booking", flaky)
    report = expiry.sweep_expired_bookings(db)

    assert report.errors == 1
    assert report.expired == [second.booking_id]
    assert ledger.get_booking(db, first.booking_id).status is BookingStatus.PENDING_PAYMENT

    # Retried on the next tick
    monkeypatch.setattr(expiry, "expire_booking", real_expire)
    assert expiry.sweep_expired_bookings(db).expired == [first.booking_id]


def test_sweep_releases_orphaned_records(db, reserve):
    booking = reserve(["B3"])
    ledger.transition_booking(db, booking.booking_id, BookingStatus.CANCELLED)
    db.commit()

    report = expiry.sweep_expired_bookings(db)
    assert report.orphans_released == 1
    assert db.query(OccupiedSeat).count() == 0


def test_sweep_emits_cancel_event(db, reserve):
    booking = reserve(["B1"])
    _expire(db, booking)
    expiry.sweep_expired_bookings(db)

    types = [n.type for n in db.query(Notification).filter(Notification.reference_id == booking.booking_id)]
    assert "booking_cancelled" in types


def test_run_sweeper_keeps_going_after_errors(session_factory, monkeypatch):
    calls = []

    def boom(session):
        calls.append(session)
        raise RuntimeError("boom")

    monkeypatch.setattr(expiry, "sweep_expired_bookings", boom)

    async def run():
        task = asyncio.create_task(expiry.run_sweeper(session_factory, interval=0.01))
        await asyncio.sleep(0.2)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    asyncio.run(run())
    assert len(calls) >= 2
