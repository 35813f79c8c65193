from .base import Deadline, Store
from .books import BookStore
from .bookings import BookingStore
from .users import UserStore
from .sessions import SessionStore
