from typing import List
from pydantic import BaseModel
from datetime import datetime

from app.models.room import SeatType


# --- Seat Map (seat selection screen) ---

class SeatStatus(BaseModel):
    label: str
    column: int
    seat_type: SeatType
    price: int
    status: str  # available, occupied


class SeatRow(BaseModel):
    row: int
    seats: List[SeatStatus]


class SeatMapResponse(BaseModel):
    room: str
    showtime: datetime
    movie_ref: str
    occupied: List[str]
    rows: List[SeatRow]
