"""Borrow/return rules and booking status transitions.

A booking is created ACTIVE by :meth:`BookingEngine.borrow`, may be moved to
OVERDUE by :meth:`BookingEngine.update_overdue` once its due date has passed,
and ends RETURNED through :meth:`BookingEngine.return_booking`. A RETURNED
booking is never touched again.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from ..errors import NotFound, Conflict, AlreadyReturned, InvalidArgument
from ..models import Booking, BookingStatus, utcnow
from ..stores import BookStore, BookingStore, UserStore, Deadline


MIN_BORROW_DAYS = 1
MAX_BORROW_DAYS = 30

RETURNABLE = (BookingStatus.ACTIVE, BookingStatus.OVERDUE)


class BookingEngine:
    def __init__(
        self,
        users: UserStore,
        books: BookStore,
        bookings: BookingStore,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ):
        self.users = users
        self.books = books
        self.bookings = bookings
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def borrow(
        self,
        user_id: uuid.UUID,
        book_id: uuid.UUID,
        borrow_days: int,
        deadline: Deadline | None = None,
    ) -> Booking:
        if not self.users.exists(user_id, deadline):
            raise NotFound("user not found")
        self.books.get(book_id, deadline)
        if self.bookings.get_active(user_id, book_id, deadline) is not None:
            raise Conflict("you already have an active booking for this book")
        if (
            isinstance(borrow_days, bool)
            or not isinstance(borrow_days, int)
            or not MIN_BORROW_DAYS <= borrow_days <= MAX_BORROW_DAYS
        ):
            raise InvalidArgument(
                f"borrow days must be between {MIN_BORROW_DAYS} and {MAX_BORROW_DAYS}"
            )

        now = self.clock()
        booking = Booking(
            user_id=user_id,
            book_id=book_id,
            borrowed_at=now,
            due_date=now + timedelta(days=borrow_days),
            status=BookingStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        booking = self.bookings.insert(booking, deadline)
        self.logger.info(
            "user %s borrowed book %s until %s (booking %s)",
            user_id,
            book_id,
            booking.due_date.isoformat(),
            booking.id,
        )
        return booking

    def return_booking(
        self, booking_id: uuid.UUID, deadline: Deadline | None = None
    ) -> Booking:
        booking = self.bookings.get(booking_id, deadline)
        if booking.status == BookingStatus.RETURNED:
            raise AlreadyReturned("book already returned")

        returned = self.bookings.conditional_update(
            booking_id,
            allowed_from=RETURNABLE,
            status=BookingStatus.RETURNED,
            returned_at=self.clock(),
            deadline=deadline,
        )
        if returned is None:
            # lost to a concurrent return between the read and the write
            self.bookings.get(booking_id, deadline)
            raise AlreadyReturned("book already returned")
        if booking.status == BookingStatus.OVERDUE:
            self.logger.info("booking %s returned late", booking_id)
        else:
            self.logger.info("booking %s returned", booking_id)
        return returned

    def update_overdue(self, deadline: Deadline | None = None) -> int:
        """Flip every ACTIVE booking past its due date to OVERDUE.

        Safe to rerun: bookings already OVERDUE or RETURNED do not match.
        Errors propagate to the caller, which owns the retry policy.
        """
        count = self.bookings.bulk_transition(
            BookingStatus.OVERDUE,
            where_status=BookingStatus.ACTIVE,
            due_before=self.clock(),
            deadline=deadline,
        )
        if count:
            self.logger.info("marked %d bookings overdue", count)
        return count

    def get_by_user(
        self,
        user_id: uuid.UUID,
        limit: int,
        offset: int,
        deadline: Deadline | None = None,
    ) -> list[Booking]:
        return self.bookings.list_by_user(user_id, limit, offset, deadline)

    def get_by_id(
        self, booking_id: uuid.UUID, deadline: Deadline | None = None
    ) -> Booking:
        return self.bookings.get(booking_id, deadline)

    def list(
        self, limit: int, offset: int, deadline: Deadline | None = None
    ) -> list[Booking]:
        return self.bookings.list(limit, offset, deadline)
