import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from app.db.session import Base

class Showtime(Base):
    __tablename__ = "showtimes"
    __table_args__ = (UniqueConstraint("room_code", "starts_at", name="uq_showtime_room_start"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    room_code = Column(String(20), ForeignKey("rooms.room_code"), nullable=False, index=True)
    starts_at = Column(DateTime(timezone=True), nullable=False, index=True)
    movie_ref = Column(String(64), nullable=False, index=True)
    movie_title = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)

    room = relationship("Room", back_populates="showtimes")
