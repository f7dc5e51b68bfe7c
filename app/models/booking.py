import uuid
import enum
from sqlalchemy import (
    Column, String, DateTime, func, Integer, BigInteger, ForeignKey, Index, UniqueConstraint, JSON, Uuid, Enum,
)
from sqlalchemy.orm import relationship
from app.db.session import Base

class BookingStatus(str, enum.Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not BookingStatus.PENDING_PAYMENT

# Owners in these states no longer hold their seats
RELEASED_STATUSES = (BookingStatus.CANCELLED, BookingStatus.FAILED)

class PaymentMethod(str, enum.Enum):
    VNPAY = "VNPAY"
    PAYOS = "PAYOS"
    CASH = "CASH"

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_status_expires_at", "status", "expires_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id = Column(String(36), unique=True, nullable=False, index=True)
    gateway_order_code = Column(BigInteger, unique=True, nullable=True)

    # Show selection
    room_code = Column(String(20), nullable=False)
    showtime_at = Column(DateTime(timezone=True), nullable=False)
    movie_ref = Column(String(64), nullable=False)
    movie_title = Column(String(255), nullable=False)

    # Price snapshot, whole currency units
    seat_labels = Column(JSON, nullable=False)
    seat_subtotal = Column(Integer, nullable=False)
    combo_subtotal = Column(Integer, nullable=False, default=0)
    grand_total = Column(Integer, nullable=False)

    # Purchaser snapshot
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    purchaser_name = Column(String(255), nullable=False)
    purchaser_email = Column(String(255), nullable=False)
    purchaser_phone = Column(String(30), nullable=True)

    status = Column(Enum(BookingStatus, name="booking_status", native_enum=False, length=20),
                    nullable=False, default=BookingStatus.PENDING_PAYMENT)
    expires_at = Column(DateTime(timezone=True), nullable=True) # only while PENDING_PAYMENT
    cancel_reason = Column(String(30), nullable=True) # expired, gateway_cancelled, gateway_expired, user_cancelled
    payment_method = Column(Enum(PaymentMethod, name="payment_method", native_enum=False, length=10),
                            nullable=True)
    payment_details = Column(JSON, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    combos = relationship("BookingCombo", back_populates="booking", cascade="all, delete-orphan")
    invoice = relationship("Invoice", uselist=False, viewonly=True)
    user = relationship("User", viewonly=True)

class BookingCombo(Base):
    __tablename__ = "booking_combos"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_pk = Column(Uuid, ForeignKey("bookings.id"), nullable=False, index=True)
    combo_code = Column(String(20), nullable=False)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)
    line_total = Column(Integer, nullable=False)

    booking = relationship("Booking", back_populates="combos")

class OccupiedSeat(Base):
    """One seat held for one showtime by one booking."""

    __tablename__ = "occupied_seats"
    __table_args__ = (
        UniqueConstraint("room_code", "showtime_at", "seat_label", name="uq_occupied_seat"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    room_code = Column(String(20), nullable=False)
    showtime_at = Column(DateTime(timezone=True), nullable=False)
    seat_label = Column(String(10), nullable=False)
    booking_id = Column(String(36), ForeignKey("bookings.booking_id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
