import logging
import uuid

from ..errors import Conflict, InvalidArgument
from ..models import Book, BookAddPayload, BookPatch
from ..stores import BookStore, Deadline


class BookCatalogService:
    def __init__(self, books: BookStore, logger: logging.Logger | None = None):
        self.books = books
        self.logger = logger or logging.getLogger(__name__)

    def create(self, payload: BookAddPayload, deadline: Deadline | None = None) -> Book:
        book = self.books.insert(Book.model_validate(payload), deadline)
        self.logger.info("book %s created: %r", book.id, book.title)
        return book

    def update(
        self, book_id: uuid.UUID, patch: BookPatch, deadline: Deadline | None = None
    ) -> Book:
        """Optimistically update a book.

        The stored version is read first, then the write only lands if that
        version is still current (or, when the patch carries the version the
        client read, if that one is). Losing the race raises ``Conflict``; the
        caller has to re-read before trying again.
        """
        current = self.books.read_version(book_id, deadline)
        if not patch.changes():
            raise InvalidArgument("no fields to update")
        expected = patch.version if patch.version is not None else current
        if not self.books.conditional_update(book_id, expected, patch, deadline):
            self.logger.info(
                "update of book %s rejected: expected version %d, stored %d",
                book_id,
                expected,
                current,
            )
            raise Conflict("book was modified by another request, refetch and retry")
        # committed, so read back without the deadline
        return self.books.get(book_id)

    def delete(self, book_id: uuid.UUID, deadline: Deadline | None = None):
        self.books.delete(book_id, deadline)
        self.logger.info("book %s deleted", book_id)

    def get_by_id(self, book_id: uuid.UUID, deadline: Deadline | None = None) -> Book:
        return self.books.get(book_id, deadline)

    def list(
        self, limit: int, offset: int, deadline: Deadline | None = None
    ) -> list[Book]:
        return self.books.list(limit, offset, deadline)
