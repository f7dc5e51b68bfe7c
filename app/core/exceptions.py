from typing import List, Optional


class BookingError(Exception):
    """Base class for errors raised by the booking core."""

    code = "booking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FieldError:
    __slots__ = ("field", "message")

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message

    def as_dict(self) -> dict:
        return {"field": self.field, "message": self.message}

    def __repr__(self) -> str:
        return f"FieldError({self.field!r}, {self.message!r})"


class ReservationValidationError(BookingError):
    code = "validation_error"

    def __init__(self, errors: List[FieldError]):
        super().__init__("Reservation request is invalid")
        self.errors = errors


class ShowtimeNotFoundError(BookingError):
    code = "showtime_not_found"


class UnknownSeatError(ReservationValidationError):
    def __init__(self, labels: List[str]):
        super().__init__([FieldError("seat_labels", f"Unknown seat {label}") for label in labels])
        self.labels = labels


class UnknownComboError(ReservationValidationError):
    def __init__(self, combo_codes: List[str]):
        super().__init__(
            [FieldError("combos", f"Combo {code} is not available") for code in combo_codes]
        )
        self.combo_codes = combo_codes


class SeatConflictError(BookingError):
    """One or more requested seats are held by another active booking."""

    code = "seats_unavailable"

    def __init__(self, labels: List[str], message: Optional[str] = None):
        super().__init__(message or f"Seats already taken: {', '.join(labels)}")
        self.labels = labels


class BookingNotFoundError(BookingError):
    code = "booking_not_found"


class BookingStateError(BookingError):
    code = "invalid_booking_state"

    def __init__(self, message: str, status: str):
        super().__init__(message)
        self.status = status
