from datetime import timedelta

import pytest

from app.models.booking import BookingStatus
from app.services import ledger
from app.utils.clock import as_utc, utcnow


def test_order_codes_start_at_base_and_increase(db):
    codes = [ledger.next_order_code(db) for _ in range(3)]
    db.commit()
    assert codes == [100001, 100002, 100003]


def test_counters_are_independent(db):
    assert ledger.next_counter_value(db, "invoices") == 1
    assert ledger.next_counter_value(db, "invoices") == 2
    assert ledger.next_order_code(db) == 100001


def test_transition_only_from_pending(db, reserve):
    booking = reserve(["A1"])
    now = utcnow()

    assert ledger.transition_booking(db, booking.booking_id, BookingStatus.PAID, now=now) is True
    db.commit()
    # Terminal: every further transition loses
    for status in (BookingStatus.CANCELLED, BookingStatus.FAILED, BookingStatus.PAID):
        assert ledger.transition_booking(db, booking.booking_id, status) is False
    db.commit()

    refreshed = ledger.get_booking(db, booking.booking_id)
    assert refreshed.status is BookingStatus.PAID
    assert refreshed.expires_at is None
    assert as_utc(refreshed.resolved_at) == now


def test_transition_back_to_pending_is_refused(db, reserve):
    booking = reserve(["A1"])
    with pytest.raises(ValueError):
        ledger.transition_booking(db, booking.booking_id, BookingStatus.PENDING_PAYMENT)


def test_transition_unknown_booking(db):
    assert ledger.transition_booking(db, "missing", BookingStatus.CANCELLED) is False


def test_find_by_order_reference(db, reserve):
    booking = reserve(["A1"])
    booking.gateway_order_code = ledger.next_order_code(db)
    db.commit()

    assert ledger.find_by_order_reference(db, booking.booking_id).id == booking.id
    assert ledger.find_by_order_reference(db, str(booking.gateway_order_code)).id == booking.id
    assert ledger.find_by_order_reference(db, booking.gateway_order_code).id == booking.id
    assert ledger.find_by_order_reference(db, "999999") is None
    assert ledger.find_by_order_reference(db, "") is None


def test_list_expired_pending(db, reserve, other_user):
    now = utcnow()
    old = reserve(["A1"], now=now - timedelta(minutes=30))
    reserve(["A2"], owner=other_user, now=now)

    assert ledger.list_expired_pending(db, now, limit=10) == [old.booking_id]


def test_superscript_digits_are_not_order_codes(db, reserve):
    reserve(["A1"])
    assert ledger.find_by_order_reference(db, "²") is None
    assert ledger.find_by_order_reference(db, "١٢٣") is None


def test_counter_created_concurrently_is_retried(db, monkeypatch):
    assert ledger.next_order_code(db) == 100001
    db.commit()

    # First UPDATE misses as if the row did not exist yet; the insert then collides
    real_increment = ledger._increment
    calls = []

    def _first_misses(session, name):
        calls.append(name)
        if len(calls) == 1:
            return 0
        return real_increment(session, name)

    monkeypatch.setattr(ledger, "_increment", _first_misses)
    assert ledger.next_order_code(db) == 100002
    db.commit()
    assert len(calls) == 2
