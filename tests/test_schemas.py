from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from app import schemas
from app.models.booking import PaymentMethod


def test_booking_create_defaults():
    req = schemas.BookingCreate(
        room="R1", showtime=datetime(2030, 1, 1, 19, 30, tzinfo=timezone.utc), movie_ref="MOV-1", combos=None,
    )
    assert req.seat_labels == []
    assert req.combos == []
    assert req.purchaser is None


def test_booking_create_requires_showtime():
    with pytest.raises(ValidationError):
        schemas.BookingCreate(room="R1", movie_ref="MOV-1")


def test_payment_callback_outcomes():
    cb = schemas.PaymentCallback(order_reference="100001", outcome="EXPIRED")
    assert cb.outcome is schemas.PaymentOutcome.EXPIRED
    assert cb.gateway_detail == {}
    with pytest.raises(ValidationError):
        schemas.PaymentCallback(order_reference="100001", outcome="REFUNDED")


def test_initiate_defaults_to_vnpay():
    assert schemas.PaymentInitiateRequest().method is PaymentMethod.VNPAY


def test_cash_request_needs_booking_id():
    with pytest.raises(ValidationError):
        schemas.CashPaymentRequest(booking_id="")


def test_payment_callback_reference_length():
    schemas.PaymentCallback(order_reference="r" * 64, outcome="PAID")
    for reference in ("", "r" * 65):
        with pytest.raises(ValidationError):
            schemas.PaymentCallback(order_reference=reference, outcome="PAID")
