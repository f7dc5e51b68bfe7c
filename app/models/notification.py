import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship
from app.db.session import Base

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False) # booking_reserved, booking_paid, booking_cancelled, booking_failed
    is_read = Column(Boolean, default=False)
    reference_id = Column(String(64), nullable=True) # booking_id
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")
