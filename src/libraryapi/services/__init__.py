from .booking import BookingEngine, MIN_BORROW_DAYS, MAX_BORROW_DAYS
from .catalog import BookCatalogService
from .users import UserService
