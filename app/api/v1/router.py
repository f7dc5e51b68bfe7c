from fastapi import APIRouter

# Public: seat map
from app.api.v1.public.showtimes import router as showtimes_router

# Public: bookings
from app.api.v1.public.bookings import router as bookings_router

# Public: payments (initiate, gateway callbacks, cash desk)
from app.api.v1.public.payments import router as payments_router

# Public: user profile & notifications
from app.api.v1.public.me import router as me_router

# Admin: box office booking management
from app.api.v1.admin.bookings import router as admin_bookings_router

api_router = APIRouter()

# --- Public: seat map ---
api_router.include_router(showtimes_router)

# --- Public: bookings ---
api_router.include_router(bookings_router)

# --- Public: payments ---
api_router.include_router(payments_router)

# --- Public: profile & notifications ---
api_router.include_router(me_router)

# --- Admin: bookings ---
api_router.include_router(admin_bookings_router)
