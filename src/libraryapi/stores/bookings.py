import uuid
from collections.abc import Collection
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from ..errors import NotFound, Conflict
from ..models import Booking, BookingStatus, utcnow
from .base import Store, Deadline


ACTIVE_INDEX = "uq_booking_active_user_book"


def _is_active_duplicate(e: IntegrityError) -> bool:
    message = str(e.orig)
    # postgres names the index, sqlite lists the columns
    return ACTIVE_INDEX in message or (
        "UNIQUE constraint failed" in message and "booking.user_id" in message
    )


class BookingStore(Store):
    def insert(self, booking: Booking, deadline: Deadline | None = None) -> Booking:
        with self._call("booking insert", deadline):
            self.dbsession.add(booking)
            try:
                self.dbsession.commit()
            except IntegrityError as e:
                if not _is_active_duplicate(e):
                    raise
                self.dbsession.rollback()
                raise Conflict(
                    "you already have an active booking for this book"
                ) from e
            self.dbsession.refresh(booking)
        return booking

    def get(self, booking_id: uuid.UUID, deadline: Deadline | None = None) -> Booking:
        with self._call("booking lookup", deadline):
            booking = self.dbsession.exec(
                select(Booking)
                .where(Booking.id == booking_id)
                .execution_options(populate_existing=True)
            ).one_or_none()
        if booking is None:
            raise NotFound("booking not found")
        return booking

    def get_active(
        self,
        user_id: uuid.UUID,
        book_id: uuid.UUID,
        deadline: Deadline | None = None,
    ) -> Booking | None:
        with self._call("active booking lookup", deadline):
            return self.dbsession.exec(
                select(Booking).where(
                    Booking.user_id == user_id,
                    Booking.book_id == book_id,
                    Booking.status == BookingStatus.ACTIVE,
                )
            ).one_or_none()

    def conditional_update(
        self,
        booking_id: uuid.UUID,
        *,
        allowed_from: Collection[BookingStatus],
        status: BookingStatus,
        returned_at: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> Booking | None:
        """Move a booking to ``status`` if its current status is in ``allowed_from``.

        Returns the updated booking, or None when the guard did not match.
        """
        values = {"status": status, "updated_at": utcnow()}
        if returned_at is not None:
            values["returned_at"] = returned_at
        stmt = (
            update(Booking)
            .where(
                col(Booking.id) == booking_id,
                col(Booking.status).in_(list(allowed_from)),
            )
            .values(**values)
        )
        with self._call("booking update", deadline):
            result = self.dbsession.connection().execute(stmt)
            self.dbsession.commit()
        if not result.rowcount:
            return None
        # committed, so read back without the deadline
        return self.get(booking_id)

    def bulk_transition(
        self,
        new_status: BookingStatus,
        *,
        where_status: BookingStatus,
        due_before: datetime,
        deadline: Deadline | None = None,
    ) -> int:
        stmt = (
            update(Booking)
            .where(
                col(Booking.status) == where_status,
                col(Booking.due_date) < due_before,
            )
            .values(status=new_status, updated_at=utcnow())
        )
        with self._call("booking bulk transition", deadline):
            result = self.dbsession.connection().execute(stmt)
            self.dbsession.commit()
        return result.rowcount

    def list_by_user(
        self,
        user_id: uuid.UUID,
        limit: int,
        offset: int,
        deadline: Deadline | None = None,
    ) -> list[Booking]:
        with self._call("booking list", deadline):
            return list(
                self.dbsession.exec(
                    select(Booking)
                    .where(Booking.user_id == user_id)
                    .offset(offset)
                    .limit(limit)
                    .order_by(col(Booking.borrowed_at).desc())
                ).all()
            )

    def list(
        self, limit: int, offset: int, deadline: Deadline | None = None
    ) -> list[Booking]:
        with self._call("booking list", deadline):
            return list(
                self.dbsession.exec(
                    select(Booking)
                    .offset(offset)
                    .limit(limit)
                    .order_by(col(Booking.borrowed_at).desc())
                ).all()
            )
