import uuid
import enum
from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, UniqueConstraint, Uuid, Enum
from sqlalchemy.orm import relationship
from app.db.session import Base

class RoomType(str, enum.Enum):
    TWO_D = "2D"
    THREE_D = "3D"
    IMAX = "IMAX"

class SeatType(str, enum.Enum):
    NORMAL = "Normal"
    VIP = "VIP"

class Room(Base):
    __tablename__ = "rooms"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    room_code = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    room_type = Column(Enum(RoomType, name="room_type", native_enum=False,
                            values_callable=lambda e: [m.value for m in e]),
                       nullable=False, default=RoomType.TWO_D)
    is_active = Column(Boolean, default=True)

    seats = relationship("RoomSeat", back_populates="room", cascade="all, delete-orphan")
    showtimes = relationship("Showtime", back_populates="room")

class RoomSeat(Base):
    __tablename__ = "room_seats"
    __table_args__ = (UniqueConstraint("room_code", "label", name="uq_room_seat_label"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    room_code = Column(String(20), ForeignKey("rooms.room_code"), nullable=False, index=True)
    label = Column(String(10), nullable=False)
    row_no = Column(Integer, nullable=False)
    col_no = Column(Integer, nullable=False)
    seat_type = Column(Enum(SeatType, name="seat_type", native_enum=False,
                            values_callable=lambda e: [m.value for m in e]),
                       nullable=False, default=SeatType.NORMAL)
    price = Column(Integer, nullable=False) # whole currency units

    room = relationship("Room", back_populates="seats")
