import uuid

from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from ..errors import NotFound, Conflict
from ..models import User, UserPatch, utcnow
from .base import Store, Deadline


class UserStore(Store):
    def _taken(
        self, user_id: uuid.UUID, username: str, email: str
    ) -> Conflict | None:
        others = select(User.id).where(User.id != user_id)
        if self.dbsession.exec(others.where(User.username == username)).first():
            return Conflict("username already exists")
        if self.dbsession.exec(others.where(User.email == email)).first():
            return Conflict("email already exists")
        return None

    def _duplicate(self, user_id: uuid.UUID, username: str, email: str) -> Conflict:
        # lost a race with a concurrent writer after _taken passed
        self.dbsession.rollback()
        return self._taken(user_id, username, email) or Conflict(
            "username or email already exists"
        )

    def insert(self, user: User, deadline: Deadline | None = None) -> User:
        with self._call("user insert", deadline):
            key = (user.id, user.username, user.email)
            if conflict := self._taken(*key):
                raise conflict
            self.dbsession.add(user)
            try:
                self.dbsession.commit()
            except IntegrityError as e:
                raise self._duplicate(*key) from e
            self.dbsession.refresh(user)
        return user

    def exists(self, user_id: uuid.UUID, deadline: Deadline | None = None) -> bool:
        with self._call("user lookup", deadline):
            return (
                self.dbsession.exec(select(User.id).where(User.id == user_id)).first()
                is not None
            )

    def get(self, user_id: uuid.UUID, deadline: Deadline | None = None) -> User:
        with self._call("user lookup", deadline):
            user = self.dbsession.get(User, user_id)
        if user is None:
            raise NotFound("user not found")
        return user

    def get_by_username(
        self, username: str, deadline: Deadline | None = None
    ) -> User | None:
        with self._call("user lookup", deadline):
            return self.dbsession.exec(
                select(User).where(User.username == username)
            ).one_or_none()

    def update(
        self, user_id: uuid.UUID, patch: UserPatch, deadline: Deadline | None = None
    ) -> User:
        user = self.get(user_id, deadline)
        changes = patch.model_dump(exclude_none=True)
        with self._call("user update", deadline):
            key = (user.id, user.username, changes.get("email", user.email))
            if conflict := self._taken(*key):
                raise conflict
            for k, v in changes.items():
                setattr(user, k, v)
            user.updated_at = utcnow()
            self.dbsession.add(user)
            try:
                self.dbsession.commit()
            except IntegrityError as e:
                raise self._duplicate(*key) from e
            self.dbsession.refresh(user)
        return user

    def delete(self, user_id: uuid.UUID, deadline: Deadline | None = None):
        user = self.get(user_id, deadline)
        with self._call("user delete", deadline):
            self.dbsession.delete(user)
            self.dbsession.commit()

    def list(
        self, limit: int, offset: int, deadline: Deadline | None = None
    ) -> list[User]:
        with self._call("user list", deadline):
            return list(
                self.dbsession.exec(
                    select(User)
                    .offset(offset)
                    .limit(limit)
                    .order_by(col(User.created_at).desc())
                ).all()
            )
