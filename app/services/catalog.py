"""Read-only lookups against the room/showtime/combo catalog."""
from datetime import date, datetime
from typing import Dict, List, NamedTuple, Sequence, Tuple

from sqlalchemy.orm import Session

from app.core.exceptions import ShowtimeNotFoundError, UnknownComboError, UnknownSeatError
from app.models.combo import Combo
from app.models.room import Room, RoomSeat
from app.models.showtime import Showtime
from app.utils.clock import as_utc


class ComboQuote(NamedTuple):
    combo_code: str
    name: str
    quantity: int
    unit_price: int

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


def resolve_showtime(
    db: Session,
    room_code: str,
    showtime_at: datetime,
    movie_ref: str,
    now: datetime,
) -> Showtime:
    """Find the active, not yet started showtime for this room, instant and movie."""
    showtime = (
        db.query(Showtime)
        .join(Showtime.room)
        .filter(
            Showtime.room_code == room_code,
            Showtime.starts_at == as_utc(showtime_at),
            Showtime.is_active == True,  # noqa: E712
            Room.is_active == True,  # noqa: E712
        )
        .first()
    )
    if not showtime or showtime.movie_ref != movie_ref:
        raise ShowtimeNotFoundError(
            f"No showtime for movie {movie_ref} in room {room_code} at {as_utc(showtime_at).isoformat()}"
        )
    if as_utc(showtime.starts_at) <= as_utc(now):
        raise ShowtimeNotFoundError("This showtime has already started")
    return showtime


def quote_seats(db: Session, room_code: str, labels: Sequence[str]) -> Dict[str, int]:
    """Current price of each requested seat in the room layout."""
    rows = (
        db.query(RoomSeat.label, RoomSeat.price)
        .filter(RoomSeat.room_code == room_code, RoomSeat.label.in_(list(labels)))
        .all()
    )
    prices = {r.label: r.price for r in rows}
    missing = [label for label in labels if label not in prices]
    if missing:
        raise UnknownSeatError(missing)
    return prices


def quote_combos(db: Session, selections: Sequence[Tuple[str, int]], on_date: date) -> List[ComboQuote]:
    """Price combo selections; a combo must be on sale on ``on_date``."""
    if not selections:
        return []
    codes = [code for code, _ in selections]
    combos = {
        c.combo_code: c
        for c in db.query(Combo).filter(
            Combo.combo_code.in_(codes),
            Combo.is_active == True,  # noqa: E712
            Combo.is_deleted == False,  # noqa: E712
            Combo.start_date <= on_date,
            Combo.end_date >= on_date,
        ).all()
    }
    missing = [code for code in codes if code not in combos]
    if missing:
        raise UnknownComboError(missing)
    return [
        ComboQuote(
            combo_code=code,
            name=combos[code].name,
            quantity=quantity,
            unit_price=combos[code].price,
        )
        for code, quantity in selections
    ]
