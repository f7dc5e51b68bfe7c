"""
Payment reconciliation: apply gateway outcomes to bookings exactly once.

Callbacks arrive from gateway webhooks and from the user's browser after
the redirect back, in any order and possibly more than once. Every call
resolves the booking by its stored order reference and then either

* reports ``not_found`` (foreign or replayed traffic, never raised),
* reports ``already_processed`` for a booking that is already resolved,
  creating a missing invoice for a PAID booking if needed,
* refuses a PAID outcome whose amount differs from the booking total, or
* wins the conditional PENDING_PAYMENT transition and applies it.

Every attempt is written to the ``payment_events`` audit trail.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import BookingNotFoundError, BookingStateError
from app.models.booking import Booking, BookingStatus, PaymentMethod, RELEASED_STATUSES
from app.models.invoice import PaymentEvent
from app.models.user import User
from app.schemas.payment import (
    ORDER_REFERENCE_MAX,
    ConfirmationCode,
    ConfirmationResult,
    PaymentInitiateResponse,
    PaymentOutcome,
)
from app.services import events, invoices, ledger, seat_map
from app.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)

# outcome -> (booking status, cancel reason, event)
_UNSUCCESSFUL = {
    PaymentOutcome.FAILED: (BookingStatus.FAILED, None, events.BOOKING_FAILED),
    PaymentOutcome.CANCELLED: (BookingStatus.CANCELLED, "gateway_cancelled", events.BOOKING_CANCELLED),
    PaymentOutcome.EXPIRED: (BookingStatus.CANCELLED, "gateway_expired", events.BOOKING_CANCELLED),
}


def _record_event(
    db: Session,
    order_reference: str,
    booking_id: Optional[str],
    outcome: PaymentOutcome,
    amount: Optional[int],
    source: str,
    result: ConfirmationCode,
    gateway_detail: Optional[Dict[str, Any]],
) -> None:
    db.add(PaymentEvent(
        order_reference=str(order_reference)[:ORDER_REFERENCE_MAX],
        booking_id=booking_id,
        outcome=outcome.value,
        amount=amount,
        source=source,
        result=result.value,
        flagged=result is ConfirmationCode.AMOUNT_MISMATCH,
        gateway_detail=gateway_detail or None,
    ))


def _already_resolved(
    db: Session,
    booking: Booking,
    order_reference: str,
    outcome: PaymentOutcome,
    amount: Optional[int],
    method: Optional[PaymentMethod],
    source: str,
    gateway_detail: Dict[str, Any],
) -> ConfirmationResult:
    booking_id = booking.booking_id
    status = booking.status
    result = ConfirmationCode.ALREADY_PROCESSED
    invoice_code = None

    if status is BookingStatus.PAID:
        invoice = invoices.get_invoice(db, booking_id)
        if invoice is None:
            invoice = invoices.create_invoice(
                db,
                booking,
                booking.grand_total,
                booking.payment_method or method or PaymentMethod.VNPAY,
                booking.payment_details,
            )
            result = ConfirmationCode.INVOICE_REPAIRED
            logger.warning("Booking %s was PAID without an invoice; created %s", booking_id, invoice.invoice_code)
        invoice_code = invoice.invoice_code
    elif status in RELEASED_STATUSES:
        # Seats of a resolved booking may survive an interrupted release.
        seat_map.release_seats(db, booking_id)

    logger.info(
        "Booking %s already %s; ignoring %s from %s",
        booking_id, status.value, outcome.value, source,
    )
    _record_event(db, order_reference, booking_id, outcome, amount, source, result, gateway_detail)
    db.commit()
    return ConfirmationResult(
        accepted=True,
        result=result,
        booking_id=booking_id,
        booking_status=status,
        invoice_code=invoice_code,
        message=f"Booking already {status.value}",
    )


def _lost_race(db: Session, booking_id: str, *args) -> ConfirmationResult:
    """Another actor resolved the booking between our read and our update."""
    db.rollback()
    booking = ledger.get_booking(db, booking_id)
    logger.info("Booking %s was resolved concurrently (now %s)", booking_id, booking.status.value)
    return _already_resolved(db, booking, *args)


def confirm_payment(
    db: Session,
    order_reference: str,
    outcome: PaymentOutcome,
    amount: Optional[int] = None,
    gateway_detail: Optional[Dict[str, Any]] = None,
    method: Optional[PaymentMethod] = None,
    source: str = "webhook",
    now: Optional[datetime] = None,
) -> ConfirmationResult:
    """
    Apply a gateway outcome to the booking behind ``order_reference``.

    Safe to call repeatedly and concurrently with the expiry sweeper.
    Storage errors roll back and propagate so the gateway retries.
    """
    outcome = PaymentOutcome(outcome)
    gateway_detail = gateway_detail or {}
    now = as_utc(now) or utcnow()

    booking = ledger.find_by_order_reference(db, order_reference)
    if booking is None:
        logger.warning(
            "Payment %s from %s for unknown order reference %s (amount %s)",
            outcome.value, source, order_reference, amount,
        )
        _record_event(db, order_reference, None, outcome, amount, source,
                      ConfirmationCode.NOT_FOUND, gateway_detail)
        db.commit()
        return ConfirmationResult(
            accepted=False,
            result=ConfirmationCode.NOT_FOUND,
            message="Booking not found",
        )

    booking_id = booking.booking_id
    replay_args = (order_reference, outcome, amount, method, source, gateway_detail)

    try:
        if booking.status.is_terminal:
            return _already_resolved(db, booking, *replay_args)

        if outcome is PaymentOutcome.PAID:
            if amount is None or amount != booking.grand_total:
                logger.warning(
                    "Amount mismatch for booking %s: expected %d, gateway reported %s",
                    booking_id, booking.grand_total, amount,
                )
                _record_event(db, order_reference, booking_id, outcome, amount, source,
                              ConfirmationCode.AMOUNT_MISMATCH, gateway_detail)
                db.commit()
                return ConfirmationResult(
                    accepted=False,
                    result=ConfirmationCode.AMOUNT_MISMATCH,
                    booking_id=booking_id,
                    booking_status=booking.status,
                    flagged=True,
                    message="Amount does not match booking total",
                )

            method = method or booking.payment_method or PaymentMethod.VNPAY
            won = ledger.transition_booking(
                db, booking_id, BookingStatus.PAID, now=now,
                payment_method=method,
                payment_details=gateway_detail or None,
            )
            if not won:
                return _lost_race(db, booking_id, *replay_args)

            # Status flip and invoice commit together.
            invoice = invoices.add_invoice(db, booking, amount, method, gateway_detail)
            _record_event(db, order_reference, booking_id, outcome, amount, source,
                          ConfirmationCode.APPLIED, gateway_detail)
            db.commit()
            invoice_code = invoice.invoice_code
            logger.info("Booking %s PAID via %s, invoice %s", booking_id, method.value, invoice_code)
            event = events.BOOKING_PAID
        else:
            to_status, reason, event = _UNSUCCESSFUL[outcome]
            won = ledger.transition_booking(
                db, booking_id, to_status, now=now,
                cancel_reason=reason,
                payment_method=method or booking.payment_method,
                payment_details=gateway_detail or None,
            )
            if not won:
                return _lost_race(db, booking_id, *replay_args)
            seat_map.release_seats(db, booking_id)
            _record_event(db, order_reference, booking_id, outcome, amount, source,
                          ConfirmationCode.APPLIED, gateway_detail)
            db.commit()
            invoice_code = None
            logger.info("Booking %s %s after gateway %s", booking_id, to_status.value, outcome.value)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to apply %s for booking %s", outcome.value, booking_id)
        raise

    booking = ledger.get_booking(db, booking_id)
    events.emit(db, event, booking)
    return ConfirmationResult(
        accepted=True,
        result=ConfirmationCode.APPLIED,
        booking_id=booking_id,
        booking_status=booking.status,
        invoice_code=invoice_code,
        message=f"Booking {booking.status.value}",
    )


def pay_with_cash(db: Session, booking_id: str, cashier: User) -> ConfirmationResult:
    """Counter payment taken by staff: confirms the stored total as PAID."""
    booking = ledger.get_booking(db, booking_id)
    if booking is None:
        raise BookingNotFoundError("Booking not found")
    return confirm_payment(
        db,
        booking.booking_id,
        PaymentOutcome.PAID,
        amount=booking.grand_total,
        gateway_detail={"cashier_id": str(cashier.id), "cashier_email": cashier.email},
        method=PaymentMethod.CASH,
        source="cash",
    )


def _load_owned(db: Session, booking_id: str, user: User) -> Booking:
    booking = ledger.get_booking(db, booking_id)
    if booking is None or (booking.user_id != user.id and not user.is_staff):
        raise BookingNotFoundError("Booking not found")
    return booking


def initiate_payment(
    db: Session,
    booking_id: str,
    method: PaymentMethod,
    user: User,
    now: Optional[datetime] = None,
) -> PaymentInitiateResponse:
    """
    Prepare a pending booking for payment with ``method``.

    Returns the order reference the gateway must echo back: the booking id,
    or for PayOS a numeric order code assigned once from the counter.
    """
    now = as_utc(now) or utcnow()
    booking = _load_owned(db, booking_id, user)
    if booking.status is not BookingStatus.PENDING_PAYMENT:
        raise BookingStateError(f"Booking is already {booking.status.value}", booking.status.value)
    if as_utc(booking.expires_at) <= now:
        raise BookingStateError("The seat hold has expired", booking.status.value)

    values = {"payment_method": method}
    if method is PaymentMethod.PAYOS and booking.gateway_order_code is None:
        values["gateway_order_code"] = ledger.next_order_code(db)

    updated = (
        db.query(Booking)
        .filter(
            Booking.booking_id == booking_id,
            Booking.status == BookingStatus.PENDING_PAYMENT,
        )
        .update(values, synchronize_session="fetch")
    )
    if not updated:
        db.rollback()
        booking = ledger.get_booking(db, booking_id)
        raise BookingStateError(f"Booking is already {booking.status.value}", booking.status.value)
    db.commit()
    db.refresh(booking)

    if method is PaymentMethod.PAYOS:
        reference = str(booking.gateway_order_code)
    else:
        reference = booking.booking_id
    logger.info("Payment via %s initiated for booking %s (ref %s)", method.value, booking_id, reference)
    return PaymentInitiateResponse(
        booking_id=booking.booking_id,
        method=method,
        order_reference=reference,
        amount=booking.grand_total,
        currency=settings.CURRENCY,
        expires_at=as_utc(booking.expires_at),
    )


def cancel_booking(
    db: Session,
    booking_id: str,
    user: User,
    now: Optional[datetime] = None,
) -> Tuple[Booking, bool]:
    """
    Cancel the user's own pending booking and free its seats.

    Returns ``(booking, cancelled)``; ``cancelled`` is False when the booking
    was already cancelled. Paid or failed bookings raise BookingStateError.
    """
    booking = _load_owned(db, booking_id, user)
    if booking.status is BookingStatus.CANCELLED:
        return booking, False
    if booking.status.is_terminal:
        raise BookingStateError(
            f"Only pending bookings can be cancelled (current status: '{booking.status.value}')",
            booking.status.value,
        )

    try:
        won = ledger.transition_booking(
            db, booking_id, BookingStatus.CANCELLED, now=now, cancel_reason="user_cancelled",
        )
        if won:
            seat_map.release_seats(db, booking_id)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to cancel booking %s", booking_id)
        raise

    booking = ledger.get_booking(db, booking_id)
    if not won:
        if booking.status is not BookingStatus.CANCELLED:
            raise BookingStateError(f"Booking is already {booking.status.value}", booking.status.value)
        return booking, False
    events.emit(db, events.BOOKING_CANCELLED, booking)
    return booking, True
