import logging
import time
from contextlib import contextmanager

from sqlalchemy import exc as sa_exc
from sqlmodel import Session

from ..errors import LibraryError, Timeout, Internal


LOCK_TIMEOUT_MARKERS = (
    "database is locked",
    "lock timeout",
    "canceling statement due to statement timeout",
)


class Deadline:
    """Point in (monotonic) time after which no further store call may start."""

    def __init__(self, expires_at: float):
        self.expires_at = expires_at

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + seconds)

    def remaining(self) -> float:
        return self.expires_at - time.monotonic()

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def check(self, what: str):
        if self.expired:
            raise Timeout(f"deadline exceeded before {what}")


class Store:
    def __init__(self, dbsession: Session, logger: logging.Logger | None = None):
        self.dbsession = dbsession
        self.logger = logger or logging.getLogger(__name__)

    @contextmanager
    def _call(self, what: str, deadline: Deadline | None = None):
        if deadline is not None:
            deadline.check(what)
        try:
            yield
        except LibraryError:
            raise
        except sa_exc.TimeoutError as e:
            self.dbsession.rollback()
            raise Timeout(f"{what} timed out") from e
        except sa_exc.OperationalError as e:
            self.dbsession.rollback()
            if any(m in str(e).lower() for m in LOCK_TIMEOUT_MARKERS):
                raise Timeout(f"{what} timed out") from e
            self.logger.error("%s failed: %s", what, e)
            raise Internal(f"{what} failed") from e
        except sa_exc.SQLAlchemyError as e:
            self.dbsession.rollback()
            self.logger.error("%s failed: %s", what, e)
            raise Internal(f"{what} failed") from e
