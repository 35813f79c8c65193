import uuid
from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, Field, StringConstraints, field_validator

from .base import UserBase, BookBase, Role, Email, Title, normalize_isbn


Password = Annotated[str, StringConstraints(min_length=8, max_length=128)]


class RegisterPayload(UserBase):
    password: Password  # plaintext


class LoginPayload(BaseModel):
    username: str
    password: str


class LoginResp(BaseModel):
    token: uuid.UUID
    expires_at: datetime


class UserInfoResp(UserBase):
    id: uuid.UUID
    role: Role
    created_at: datetime
    updated_at: datetime


class UserPatch(BaseModel):
    email: Email | None = None


class BookAddPayload(BookBase):
    pass


class BookPatch(BaseModel):
    title: Title | None = None
    author: Title | None = None
    published_year: int | None = Field(default=None, ge=0, le=9999)
    isbn: str | None = None
    # version the client read; omitted means "whatever is stored now"
    version: int | None = Field(default=None, ge=1)

    @field_validator("isbn", mode="before")
    @classmethod
    def validate_isbn(cls, v):
        return normalize_isbn(v)

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True, exclude={"version"})


class BorrowPayload(BaseModel):
    book_id: uuid.UUID
    borrow_days: int
