import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, Integer, BigInteger, ForeignKey, JSON, Uuid, Enum
from app.db.session import Base
from app.models.booking import PaymentMethod

class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_code = Column(String(40), unique=True, nullable=False)
    booking_id = Column(String(36), ForeignKey("bookings.booking_id"), unique=True, nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    purchaser_name = Column(String(255), nullable=False)
    purchaser_email = Column(String(255), nullable=False)
    amount = Column(Integer, nullable=False)
    payment_method = Column(Enum(PaymentMethod, name="payment_method", native_enum=False, length=10),
                            nullable=False)
    payment_status = Column(String(20), nullable=False, default="success")
    gateway_details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

class PaymentEvent(Base):
    """Audit trail of every gateway outcome applied (or refused)."""

    __tablename__ = "payment_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_reference = Column(String(64), nullable=False, index=True)
    booking_id = Column(String(36), nullable=True, index=True)
    outcome = Column(String(20), nullable=False)
    amount = Column(BigInteger, nullable=True)
    source = Column(String(20), nullable=False) # webhook, return, cash
    result = Column(String(30), nullable=False) # applied, already_processed, not_found, amount_mismatch, invoice_repaired
    flagged = Column(Boolean, default=False, index=True)
    gateway_detail = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
