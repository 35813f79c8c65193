import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel

from .base import UserBase, BookBase, Role, BookingStatus, utcnow


def timestamp(**kwargs):
    # naive UTC, see utcnow()
    return Field(sa_type=DateTime(), **kwargs)


class User(UserBase, table=True):
    __table_args__ = (
        UniqueConstraint("username", name="uq_user_username"),
        UniqueConstraint("email", name="uq_user_email"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    password_hash: str
    role: Role = Field(default=Role.USER)
    created_at: datetime = timestamp(default_factory=utcnow)
    updated_at: datetime = timestamp(default_factory=utcnow)


class Book(BookBase, table=True):
    __table_args__ = (UniqueConstraint("isbn", name="uq_book_isbn"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    version: int = Field(default=1)
    created_at: datetime = timestamp(default_factory=utcnow)
    updated_at: datetime = timestamp(default_factory=utcnow)


class Booking(SQLModel, table=True):
    __table_args__ = (
        # at most one ACTIVE booking per (user, book)
        Index(
            "uq_booking_active_user_book",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True, ondelete="CASCADE")
    book_id: uuid.UUID = Field(foreign_key="book.id", index=True, ondelete="CASCADE")
    borrowed_at: datetime = timestamp()
    due_date: datetime = timestamp(index=True)
    returned_at: datetime | None = timestamp(default=None)
    status: BookingStatus = Field(default=BookingStatus.ACTIVE, index=True)
    created_at: datetime = timestamp(default_factory=utcnow)
    updated_at: datetime = timestamp(default_factory=utcnow)


class LoginSession(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True, ondelete="CASCADE")
    expire_at: float
