from app.models.user import User
from app.models.room import Room, RoomSeat, RoomType, SeatType
from app.models.showtime import Showtime
from app.models.combo import Combo
from app.models.booking import Booking, BookingCombo, OccupiedSeat, BookingStatus, PaymentMethod
from app.models.invoice import Invoice, PaymentEvent
from app.models.counter import Counter
from app.models.notification import Notification
