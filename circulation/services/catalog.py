"""Catalog operations and the book availability ledger.

Availability flips (``mark_available`` / ``mark_unavailable``) are called by
the loan lifecycle engine while it holds the store lock; nothing else should
toggle a book's ``available`` flag.
"""
from typing import List, Optional

from circulation.core.errors import BookNotFound, ValidationError
from circulation.core.logging import get_logger
from circulation.domain.book import Book, new_book
from circulation.infrastructure.store import EntityStore

logger = get_logger(__name__)


class BookService:
    """Reads and writes catalog entries in the entity store."""

    def __init__(self, store: EntityStore):
        self.store = store

    def add_book(
        self,
        isbn: str,
        title: str,
        author: str,
        publisher: Optional[str] = None,
        year: Optional[int] = None,
    ) -> Book:
        """Register a new, available book.

        Raises:
            ValidationError: If isbn, title or author is empty
            DuplicateKey: If the ISBN is already catalogued
        """
        book = self.store.books.insert(new_book(isbn, title, author, publisher, year))
        logger.info(f"Book added: {book.title}", extra={"isbn": book.isbn})
        return book

    def get_book(self, isbn: str) -> Optional[Book]:
        """Look up a book by ISBN.

        Returns:
            The book, or None if the ISBN is not catalogued
        """
        return self.store.books.find_by_key(isbn)

    def require_book(self, isbn: str) -> Book:
        """Like ``get_book`` but for books that must exist.

        Raises:
            BookNotFound: If the ISBN is not catalogued
        """
        book = self.get_book(isbn)
        if book is None:
            raise BookNotFound(isbn)
        return book

    def list_books(self) -> List[Book]:
        """All books in the order they were catalogued."""
        return self.store.books.find_all()

    def available_books(self) -> List[Book]:
        """Books currently on the shelf."""
        return [book for book in self.store.books.find_all() if book.available]

    def search_by_title(self, keyword: str) -> List[Book]:
        """Case-insensitive substring match on the title.

        Args:
            keyword: Text to look for; surrounding whitespace is ignored

        Raises:
            ValidationError: If ``keyword`` is empty or blank
        """
        term = _search_term(keyword, "title")
        return [book for book in self.store.books.find_all() if term in book.title.lower()]

    def search_by_author(self, keyword: str) -> List[Book]:
        """Case-insensitive substring match on the author.

        Raises:
            ValidationError: If ``keyword`` is empty or blank
        """
        term = _search_term(keyword, "author")
        return [book for book in self.store.books.find_all() if term in book.author.lower()]

    def is_available(self, isbn: str) -> bool:
        """False for unknown ISBNs as well as for books on loan."""
        book = self.get_book(isbn)
        return book is not None and book.available

    def mark_unavailable(self, isbn: str) -> Book:
        """Take a book off the shelf (it has been lent).

        Raises:
            BookNotFound: If the ISBN is not catalogued
        """
        return self._set_availability(isbn, False)

    def mark_available(self, isbn: str) -> Book:
        """Put a book back on the shelf (it has been returned)."""
        return self._set_availability(isbn, True)

    def _set_availability(self, isbn: str, available: bool) -> Book:
        with self.store.lock:
            book = self.require_book(isbn)
            updated = self.store.books.replace(book.with_availability(available))
        logger.debug(f"Book availability set to {available}", extra={"isbn": isbn})
        return updated


def _search_term(keyword: str, field: str) -> str:
    if keyword is None or not keyword.strip():
        raise ValidationError(f"Search {field} must not be empty")
    return keyword.strip().lower()
