from datetime import datetime, timezone
from enum import Enum
from typing import Annotated

from pydantic import StringConstraints, field_validator
from sqlmodel import Field, SQLModel


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

Username = Annotated[
    str,
    StringConstraints(
        strip_whitespace=True,
        pattern=r"^[a-zA-Z0-9_\-]+$",
        max_length=50,
        min_length=3,
    ),
]
Email = Annotated[
    str,
    StringConstraints(
        strip_whitespace=True, to_lower=True, pattern=EMAIL_PATTERN, max_length=254
    ),
]
Title = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)
]


def utcnow() -> datetime:
    # stored naive so values read back from SQLite compare with it
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_isbn(v):
    if isinstance(v, str):
        v = v.replace("-", "").replace(" ", "").strip().upper()
        if not v:
            return None
        if len(v) == 13 and v.isdigit():
            return v
        if len(v) == 10 and v[:9].isdigit() and (v[9].isdigit() or v[9] == "X"):
            return v
        raise ValueError("ISBN should be a 10 or 13-digit number")
    return v


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class BookingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    OVERDUE = "OVERDUE"


class UserBase(SQLModel):
    username: Username
    email: Email


class BookBase(SQLModel):
    title: Title
    author: Title
    published_year: int | None = Field(default=None, ge=0, le=9999)
    isbn: str | None = None

    @field_validator("isbn", mode="before")
    @classmethod
    def validate_isbn(cls, v):
        return normalize_isbn(v)
