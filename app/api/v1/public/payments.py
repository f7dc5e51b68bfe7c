from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_staff_user, get_current_user, verify_gateway_signature
from app.core.exceptions import BookingStateError
from app.models.booking import BookingStatus
from app.models.user import User
from app.schemas.payment import (
    CashPaymentRequest,
    ConfirmationResult,
    PaymentCallback,
    PaymentInitiateRequest,
    PaymentInitiateResponse,
)
from app.services import reconciliation

router = APIRouter(prefix="/payments", tags=["Payments"])


# ---------------------------------------------------------------------------
# Initiate (returns the order reference the gateway must echo back)
# ---------------------------------------------------------------------------


@router.post("/{booking_id}/initiate", response_model=PaymentInitiateResponse)
def initiate_payment(
    booking_id: str,
    data: PaymentInitiateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return reconciliation.initiate_payment(db, booking_id, data.method, current_user)


# ---------------------------------------------------------------------------
# Gateway callbacks
# ---------------------------------------------------------------------------


@router.post("/webhook", response_model=ConfirmationResult, dependencies=[Depends(verify_gateway_signature)])
def payment_webhook(data: PaymentCallback, db: Session = Depends(get_db)):
    """
    Server-to-server notification from the payment gateway, signed with
    HMAC-SHA256 over the raw body.
    Always answers 200 for unknown references and amount mismatches so the
    gateway stops retrying; ``accepted`` tells whether it was applied.
    """
    return reconciliation.confirm_payment(
        db,
        data.order_reference,
        data.outcome,
        amount=data.amount,
        gateway_detail=data.gateway_detail,
        method=data.method,
        source="webhook",
    )


@router.post("/return", response_model=ConfirmationResult, dependencies=[Depends(verify_gateway_signature)])
def payment_return(data: PaymentCallback, db: Session = Depends(get_db)):
    """Browser redirect back from the gateway; same rules as the webhook."""
    return reconciliation.confirm_payment(
        db,
        data.order_reference,
        data.outcome,
        amount=data.amount,
        gateway_detail=data.gateway_detail,
        method=data.method,
        source="return",
    )


# ---------------------------------------------------------------------------
# Cash desk (staff only)
# ---------------------------------------------------------------------------


@router.post("/cash", response_model=ConfirmationResult)
def pay_with_cash(
    data: CashPaymentRequest,
    db: Session = Depends(get_db),
    staff_user: User = Depends(get_current_staff_user),
):
    result = reconciliation.pay_with_cash(db, data.booking_id, staff_user)
    if result.booking_status is not BookingStatus.PAID:
        raise BookingStateError(
            f"Booking is {result.booking_status.value} and cannot be paid", result.booking_status.value,
        )
    return result
