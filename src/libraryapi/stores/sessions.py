import uuid

from sqlalchemy import delete
from sqlmodel import col, select

from ..models import LoginSession
from .base import Store, Deadline


class SessionStore(Store):
    def create(
        self, user_id: uuid.UUID, expire_at: float, deadline: Deadline | None = None
    ) -> LoginSession:
        login_session = LoginSession(user_id=user_id, expire_at=expire_at)
        with self._call("session insert", deadline):
            self.dbsession.add(login_session)
            self.dbsession.commit()
            self.dbsession.refresh(login_session)
        return login_session

    def get(
        self, session_id: uuid.UUID, deadline: Deadline | None = None
    ) -> LoginSession | None:
        with self._call("session lookup", deadline):
            return self.dbsession.exec(
                select(LoginSession).where(LoginSession.id == session_id)
            ).one_or_none()

    def delete(self, login_session: LoginSession, deadline: Deadline | None = None):
        with self._call("session delete", deadline):
            self.dbsession.delete(login_session)
            self.dbsession.commit()

    def purge_expired(self, now: float, deadline: Deadline | None = None) -> int:
        with self._call("session purge", deadline):
            result = self.dbsession.connection().execute(
                delete(LoginSession).where(col(LoginSession.expire_at) <= now)
            )
            self.dbsession.commit()
        return result.rowcount
