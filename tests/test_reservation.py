from datetime import timedelta

import pytest

from app.core.exceptions import (
    ReservationValidationError,
    SeatConflictError,
    ShowtimeNotFoundError,
    UnknownComboError,
    UnknownSeatError,
)
from app.models.booking import Booking, BookingStatus, OccupiedSeat
from app.models.notification import Notification
from app.schemas.booking import ComboSelection, PurchaserSnapshot
from app.services import reservation, seat_map
from app.utils.clock import as_utc, utcnow

from tests.conftest import COMBO_CODE, COMBO_PRICE, ROOM, SEAT_PRICE, VIP_PRICE

PURCHASER = PurchaserSnapshot(name="An", email="an@example.com")


def fields(errors):
    return {e.field for e in errors}


# ---------------------------------------------------------------------------
# Validation pass
# ---------------------------------------------------------------------------


def test_valid_request_has_no_errors(make_request):
    assert reservation.validate_reservation(make_request(["A1", "a2"]), PURCHASER) == []


def test_empty_seat_list_is_rejected(make_request):
    errors = reservation.validate_reservation(make_request([]), PURCHASER)
    assert fields(errors) == {"seat_labels"}


def test_duplicate_seats_after_normalisation(make_request):
    errors = reservation.validate_reservation(make_request(["A1", " a1 "]), PURCHASER)
    assert any("Duplicate seats: A1" in e.message for e in errors)


def test_seat_limit(make_request):
    labels = [f"A{i}" for i in range(1, 5)]
    errors = reservation.validate_reservation(make_request(labels), PURCHASER, max_seats=3)
    assert fields(errors) == {"seat_labels"}


def test_combo_rules(make_request):
    combos = [
        ComboSelection(combo_code=COMBO_CODE, quantity=1),
        ComboSelection(combo_code=COMBO_CODE, quantity=0),
    ]
    errors = reservation.validate_reservation(make_request(["A1"], combos=combos), PURCHASER)
    assert "combos" in fields(errors)
    assert "combos[1].quantity" in fields(errors)


def test_purchaser_required(make_request):
    errors = reservation.validate_reservation(make_request(["A1"]), PurchaserSnapshot())
    assert fields(errors) == {"purchaser.name", "purchaser.email"}


def test_purchaser_email_format(make_request):
    errors = reservation.validate_reservation(
        make_request(["A1"]), PurchaserSnapshot(name="An", email="not-an-email"),
    )
    assert fields(errors) == {"purchaser.email"}


def test_purchaser_fields_fit_their_columns(make_request):
    too_long = PurchaserSnapshot(
        name="N" * 256,
        email="a" * 250 + "@example.com",
        phone="0" * 31,
    )
    errors = reservation.validate_reservation(make_request(["A1"]), too_long)
    assert fields(errors) == {"purchaser.name", "purchaser.email", "purchaser.phone"}

    fits = PurchaserSnapshot(name="N" * 255, email="an@example.com", phone="0" * 30)
    assert reservation.validate_reservation(make_request(["A1"]), fits) == []


def test_overlong_purchaser_creates_nothing(db, catalog, user, make_request):
    with pytest.raises(ReservationValidationError):
        reservation.create_booking(
            db, make_request(["A1"]), user.id, PurchaserSnapshot(name="N" * 300, email="an@example.com"),
        )
    assert db.query(Booking).count() == 0
    assert db.query(OccupiedSeat).count() == 0


def test_empty_room_and_movie(make_request):
    errors = reservation.validate_reservation(make_request(["A1"], room=" ", movie_ref=""), PURCHASER)
    assert {"room", "movie_ref"} <= fields(errors)


def test_purchaser_from_user_prefers_checkout_values(user):
    snapshot = reservation.purchaser_from_user(user, PurchaserSnapshot(name="Someone Else"))
    assert snapshot.name == "Someone Else"
    assert snapshot.email == user.email
    assert snapshot.phone == user.phone


# ---------------------------------------------------------------------------
# create_booking
# ---------------------------------------------------------------------------


def test_create_booking_holds_seats_and_snapshots_prices(db, reserve, showtime_at):
    before = utcnow()
    booking = reserve(
        ["a1", "C2"],
        combos=[ComboSelection(combo_code=COMBO_CODE, quantity=2)],
    )

    assert booking.status is BookingStatus.PENDING_PAYMENT
    assert booking.seat_labels == ["A1", "C2"]
    assert booking.seat_subtotal == SEAT_PRICE + VIP_PRICE
    assert booking.combo_subtotal == 2 * COMBO_PRICE
    assert booking.grand_total == SEAT_PRICE + VIP_PRICE + 2 * COMBO_PRICE
    assert len(booking.combos) == 1
    assert booking.combos[0].line_total == 2 * COMBO_PRICE

    expires_at = as_utc(booking.expires_at)
    assert before + timedelta(minutes=19) < expires_at <= utcnow() + timedelta(minutes=20)

    assert seat_map.list_occupied_seats(db, ROOM, showtime_at) == ["A1", "C2"]


def test_custom_hold_window(reserve):
    now = utcnow()
    booking = reserve(["A1"], now=now, hold_minutes=5)
    assert as_utc(booking.expires_at) == now + timedelta(minutes=5)


def test_reserved_event_is_recorded(db, reserve, user):
    booking = reserve(["A1"])
    notes = db.query(Notification).filter(Notification.reference_id == booking.booking_id).all()
    assert [n.type for n in notes] == ["booking_reserved"]
    assert notes[0].user_id == user.id


def test_invalid_request_raises_with_field_errors(reserve):
    with pytest.raises(ReservationValidationError) as exc:
        reserve([])
    assert [e.field for e in exc.value.errors] == ["seat_labels"]


def test_unknown_seat(db, reserve):
    with pytest.raises(UnknownSeatError) as exc:
        reserve(["A1", "Z9"])
    assert exc.value.labels == ["Z9"]
    assert db.query(Booking).count() == 0


def test_unknown_combo(db, reserve):
    with pytest.raises(UnknownComboError):
        reserve(["A1"], combos=[ComboSelection(combo_code="COMBO-999999")])
    assert db.query(OccupiedSeat).count() == 0


def test_unknown_showtime(db, catalog, user, make_request, showtime_at):
    request = make_request(["A1"], showtime=showtime_at + timedelta(hours=1))
    with pytest.raises(ShowtimeNotFoundError):
        reservation.create_booking(db, request, user.id, PURCHASER)


def test_wrong_movie_for_showtime(db, catalog, user, make_request):
    with pytest.raises(ShowtimeNotFoundError):
        reservation.create_booking(db, make_request(["A1"], movie_ref="MOV-2"), user.id, PURCHASER)


def test_showtime_already_started(db, catalog, user, make_request, showtime_at):
    with pytest.raises(ShowtimeNotFoundError):
        reservation.create_booking(
            db, make_request(["A1"]), user.id, PURCHASER, now=showtime_at + timedelta(minutes=1),
        )


def test_overlapping_claim_is_rejected_atomically(db, reserve, other_user, showtime_at):
    first = reserve(["A1", "A2"])

    with pytest.raises(SeatConflictError) as exc:
        reserve(["A2", "A3"], owner=other_user)
    assert exc.value.labels == ["A2"]

    # No partial hold on A3 and no booking row for the loser
    assert seat_map.list_occupied_seats(db, ROOM, showtime_at) == ["A1", "A2"]
    assert db.query(Booking).count() == 1
    assert db.query(OccupiedSeat).filter(OccupiedSeat.booking_id != first.booking_id).count() == 0


def test_disjoint_claims_both_succeed(db, reserve, other_user, showtime_at):
    reserve(["A1"])
    reserve(["A2"], owner=other_user)
    assert seat_map.list_occupied_seats(db, ROOM, showtime_at) == ["A1", "A2"]
