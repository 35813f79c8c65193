from datetime import datetime, timedelta

import pytest
from sqlmodel import Session

from libraryapi.config import Settings
from libraryapi.db import create_db_engine, create_db_and_tables
from libraryapi.models import User, Book
from libraryapi.services import BookingEngine, BookCatalogService
from libraryapi.errors import Timeout
from libraryapi.stores import BookStore, BookingStore, UserStore, Deadline


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'library.db'}",
        request_timeout=5,
        admin_username="root",
        admin_email="root@example.com",
        admin_password="rootpassword",
    )


@pytest.fixture
def db_engine(settings):
    db_engine = create_db_engine(settings)
    create_db_and_tables(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def dbsession(db_engine):
    with Session(db_engine) as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 9, 30))


@pytest.fixture
def user(dbsession):
    return UserStore(dbsession).insert(
        User(username="alice", email="alice@example.com", password_hash="x")
    )


@pytest.fixture
def other_user(dbsession):
    return UserStore(dbsession).insert(
        User(username="bob", email="bob@example.com", password_hash="x")
    )


@pytest.fixture
def book(dbsession):
    return BookStore(dbsession).insert(
        Book(title="The Go Programming Language", author="Donovan", isbn="9780134190440")
    )


@pytest.fixture
def booking_engine(dbsession, clock):
    return BookingEngine(
        UserStore(dbsession), BookStore(dbsession), BookingStore(dbsession), clock=clock
    )


@pytest.fixture
def catalog(dbsession):
    return BookCatalogService(BookStore(dbsession))


class CountdownDeadline(Deadline):
    """Deadline that lets ``checks`` store calls through, then expires."""

    def __init__(self, checks: int):
        super().__init__(float("inf"))
        self.checks = checks

    def check(self, what: str):
        if self.checks <= 0:
            raise Timeout(f"deadline exceeded before {what}")
        self.checks -= 1


@pytest.fixture
def countdown():
    return CountdownDeadline
