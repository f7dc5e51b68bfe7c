from datetime import datetime
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.room import Room, RoomSeat
from app.models.showtime import Showtime
from app.schemas.seat import SeatMapResponse, SeatRow, SeatStatus
from app.services.seat_map import list_occupied_seats
from app.utils.clock import as_utc

router = APIRouter(prefix="/showtimes", tags=["Showtimes"])


# ---------------------------------------------------------------------------
# Public: seat map (seat selection screen)
# ---------------------------------------------------------------------------


@router.get("/seat-map", response_model=SeatMapResponse)
def get_seat_map(
    room: str = Query(..., description="Room code"),
    showtime: datetime = Query(..., description="Showtime start (ISO 8601)"),
    db: Session = Depends(get_db),
):
    """
    Returns the room layout for a showtime grouped by row, with every seat
    marked available or occupied. Seats of pending and paid bookings are
    occupied. Does not require authentication.
    """
    starts_at = as_utc(showtime)
    slot = (
        db.query(Showtime)
        .join(Showtime.room)
        .filter(
            Showtime.room_code == room,
            Showtime.starts_at == starts_at,
            Showtime.is_active == True,  # noqa: E712
            Room.is_active == True,  # noqa: E712
        )
        .first()
    )
    if not slot:
        raise HTTPException(status_code=404, detail="Showtime not found")

    occupied = list_occupied_seats(db, room, starts_at)
    taken = set(occupied)

    seats = (
        db.query(RoomSeat)
        .filter(RoomSeat.room_code == room)
        .order_by(RoomSeat.row_no, RoomSeat.col_no)
        .all()
    )

    rows: Dict[int, List[SeatStatus]] = {}
    for seat in seats:
        rows.setdefault(seat.row_no, []).append(
            SeatStatus(
                label=seat.label,
                column=seat.col_no,
                seat_type=seat.seat_type,
                price=seat.price,
                status="occupied" if seat.label in taken else "available",
            )
        )

    return SeatMapResponse(
        room=room,
        showtime=starts_at,
        movie_ref=slot.movie_ref,
        occupied=occupied,
        rows=[SeatRow(row=row_no, seats=row_seats) for row_no, row_seats in rows.items()],
    )
