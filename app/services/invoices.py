import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.booking import Booking, PaymentMethod
from app.models.invoice import Invoice
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


def build_invoice_code(booking_id: str) -> str:
    return f"INV-{utcnow().strftime('%Y%m%d%H%M%S')}-{booking_id.replace('-', '')[-4:].upper()}"


def get_invoice(db: Session, booking_id: str) -> Optional[Invoice]:
    return db.query(Invoice).filter(Invoice.booking_id == booking_id).first()


def add_invoice(
    db: Session,
    booking: Booking,
    amount: int,
    method: PaymentMethod,
    gateway_detail: Optional[Dict[str, Any]] = None,
) -> Invoice:
    """Stage an invoice for ``booking`` in the current transaction and flush it."""
    invoice = Invoice(
        invoice_code=build_invoice_code(booking.booking_id),
        booking_id=booking.booking_id,
        user_id=booking.user_id,
        purchaser_name=booking.purchaser_name,
        purchaser_email=booking.purchaser_email,
        amount=amount,
        payment_method=method,
        payment_status="success",
        gateway_details=gateway_detail or None,
    )
    db.add(invoice)
    db.flush()
    return invoice


def create_invoice(
    db: Session,
    booking: Booking,
    amount: int,
    method: PaymentMethod,
    gateway_detail: Optional[Dict[str, Any]] = None,
) -> Invoice:
    """
    Create the invoice for a paid booking on its own, committing.

    Idempotent: an existing invoice is returned unchanged, and losing a
    race on the unique booking reference returns the winner's row.
    """
    existing = get_invoice(db, booking.booking_id)
    if existing:
        return existing
    booking_id = booking.booking_id
    try:
        invoice = add_invoice(db, booking, amount, method, gateway_detail)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Invoice for booking %s was created concurrently", booking_id)
        return get_invoice(db, booking_id)
    logger.info("Invoice %s created for booking %s", invoice.invoice_code, booking_id)
    return invoice


def merge_gateway_details(db: Session, invoice: Invoice, detail: Dict[str, Any]) -> Invoice:
    """Attach extra gateway metadata; amount, method and booking never change."""
    if not detail:
        return invoice
    invoice.gateway_details = {**(invoice.gateway_details or {}), **detail}
    db.commit()
    db.refresh(invoice)
    return invoice
