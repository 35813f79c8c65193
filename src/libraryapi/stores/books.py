import uuid

from sqlalchemy import delete, update
from sqlmodel import col, select

from ..errors import NotFound
from ..models import Book, BookPatch, utcnow
from .base import Store, Deadline


class BookStore(Store):
    """Book rows, guarded by an integer ``version`` for optimistic locking."""

    def insert(self, book: Book, deadline: Deadline | None = None) -> Book:
        with self._call("book insert", deadline):
            now = utcnow()
            book.version = 1
            book.created_at = now
            book.updated_at = now
            self.dbsession.add(book)
            self.dbsession.commit()
            self.dbsession.refresh(book)
        return book

    def get(self, book_id: uuid.UUID, deadline: Deadline | None = None) -> Book:
        with self._call("book lookup", deadline):
            book = self.dbsession.exec(
                select(Book)
                .where(Book.id == book_id)
                .execution_options(populate_existing=True)
            ).one_or_none()
        if book is None:
            raise NotFound("book not found")
        return book

    def read_version(self, book_id: uuid.UUID, deadline: Deadline | None = None) -> int:
        with self._call("book version read", deadline):
            version = self.dbsession.exec(
                select(Book.version).where(Book.id == book_id)
            ).one_or_none()
        if version is None:
            raise NotFound("book not found")
        return version

    def conditional_update(
        self,
        book_id: uuid.UUID,
        expected_version: int,
        patch: BookPatch,
        deadline: Deadline | None = None,
    ) -> int:
        """Apply ``patch`` only if the stored version is still ``expected_version``.

        Returns the number of rows written: 1 on success, 0 when the row is gone
        or another writer bumped the version first.
        """
        stmt = (
            update(Book)
            .where(col(Book.id) == book_id, col(Book.version) == expected_version)
            .values(
                **patch.changes(),
                updated_at=utcnow(),
                version=expected_version + 1,
            )
        )
        with self._call("book update", deadline):
            result = self.dbsession.connection().execute(stmt)
            self.dbsession.commit()
        return result.rowcount

    def delete(self, book_id: uuid.UUID, deadline: Deadline | None = None):
        with self._call("book delete", deadline):
            result = self.dbsession.connection().execute(
                delete(Book).where(col(Book.id) == book_id)
            )
            self.dbsession.commit()
        if not result.rowcount:
            raise NotFound("book not found")

    def list(
        self, limit: int, offset: int, deadline: Deadline | None = None
    ) -> list[Book]:
        with self._call("book list", deadline):
            return list(
                self.dbsession.exec(
                    select(Book)
                    .offset(offset)
                    .limit(limit)
                    .order_by(col(Book.created_at).desc())
                ).all()
            )
