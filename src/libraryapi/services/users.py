import logging
import time
import uuid

from passlib.hash import argon2

from ..errors import Unauthenticated
from ..models import User, Role, LoginSession, RegisterPayload, UserPatch
from ..stores import UserStore, SessionStore, Deadline


class UserService:
    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        session_ttl: int,
        logger: logging.Logger | None = None,
    ):
        self.users = users
        self.sessions = sessions
        self.session_ttl = session_ttl
        self.logger = logger or logging.getLogger(__name__)

    def register(
        self,
        payload: RegisterPayload,
        role: Role = Role.USER,
        deadline: Deadline | None = None,
    ) -> User:
        user = User.model_validate(
            payload,
            update={"password_hash": argon2.hash(payload.password), "role": role},
        )
        user = self.users.insert(user, deadline)
        self.logger.info("registered %s %s", role.value, user.username)
        return user

    def register_admin(
        self, payload: RegisterPayload, deadline: Deadline | None = None
    ) -> User:
        return self.register(payload, role=Role.ADMIN, deadline=deadline)

    def ensure_admin(self, username: str, email: str, password: str) -> User:
        if user := self.users.get_by_username(username):
            return user
        return self.register_admin(
            RegisterPayload(username=username, email=email, password=password)
        )

    def authenticate(
        self, username: str, password: str, deadline: Deadline | None = None
    ) -> User:
        if user := self.users.get_by_username(username, deadline):
            if argon2.verify(password, user.password_hash):
                return user
        raise Unauthenticated("invalid username or password")

    def login(
        self, username: str, password: str, deadline: Deadline | None = None
    ) -> LoginSession:
        user = self.authenticate(username, password, deadline)
        return self.sessions.create(user.id, time.time() + self.session_ttl, deadline)

    def logout(self, login_session: LoginSession, deadline: Deadline | None = None):
        self.sessions.delete(login_session, deadline)

    def resolve_session(
        self, session_id: uuid.UUID, deadline: Deadline | None = None
    ) -> tuple[LoginSession, User]:
        if sess := self.sessions.get(session_id, deadline):
            if sess.expire_at > time.time():
                return sess, self.users.get(sess.user_id, deadline)
            self.sessions.delete(sess, deadline)
        raise Unauthenticated("session invalid or expired")

    def purge_expired_sessions(self, deadline: Deadline | None = None) -> int:
        count = self.sessions.purge_expired(time.time(), deadline)
        if count:
            self.logger.info("cleared %d expired sessions", count)
        return count

    def get_by_id(self, user_id: uuid.UUID, deadline: Deadline | None = None) -> User:
        return self.users.get(user_id, deadline)

    def update(
        self, user_id: uuid.UUID, patch: UserPatch, deadline: Deadline | None = None
    ) -> User:
        return self.users.update(user_id, patch, deadline)

    def delete(self, user_id: uuid.UUID, deadline: Deadline | None = None):
        self.users.delete(user_id, deadline)
        self.logger.info("user %s deleted", user_id)

    def list(
        self, limit: int, offset: int, deadline: Deadline | None = None
    ) -> list[User]:
        return self.users.list(limit, offset, deadline)
