from typing import Any, Callable, Coroutine, Dict, Type

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.responses import Response

from app.core.exceptions import (
    BookingError,
    BookingNotFoundError,
    BookingStateError,
    ReservationValidationError,
    SeatConflictError,
    ShowtimeNotFoundError,
)
from app.schemas.common import (
    ErrorResponse,
    FieldErrorDetail,
    SeatsUnavailableError,
    ValidationErrorResponse,
)

ExceptionHandler = Callable[[Request, Exception], Coroutine[Any, Any, Response]]

_STATUS_CODES: Dict[Type[BookingError], int] = {
    ShowtimeNotFoundError: status.HTTP_404_NOT_FOUND,
    BookingNotFoundError: status.HTTP_404_NOT_FOUND,
    BookingStateError: status.HTTP_409_CONFLICT,
}


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    body = ValidationErrorResponse(
        error=exc.code,
        message=exc.message,
        fields=[FieldErrorDetail(**e.as_dict()) for e in exc.errors],
    )
    return JSONResponse(status_code=422, content=body.model_dump())


async def seat_conflict_handler(request: Request, exc: Exception) -> JSONResponse:
    body = SeatsUnavailableError(error=exc.code, message=exc.message, unavailable_seat_ids=exc.labels)
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=body.model_dump())


async def booking_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = _STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    body = ErrorResponse(error=exc.code, message=exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


EXCEPTION_HANDLERS: Dict[Type[Exception], ExceptionHandler] = {
    ReservationValidationError: validation_error_handler,
    SeatConflictError: seat_conflict_handler,
    BookingError: booking_error_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
