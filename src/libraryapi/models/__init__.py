from .base import UserBase, BookBase, Role, BookingStatus, utcnow
from .tables import User, Book, Booking, LoginSession
from .payloads import (
    RegisterPayload,
    LoginPayload,
    LoginResp,
    UserInfoResp,
    UserPatch,
    BookAddPayload,
    BookPatch,
    BorrowPayload,
)
