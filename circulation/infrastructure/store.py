"""In-memory entity store for books, users and loans.

One ``EntityStore`` is built at process start and handed to every service
that needs it. It owns three keyed collections and the lock that lets the
loan lifecycle engine apply multi-entity changes as a single critical
section. Nothing here spans keys transactionally: keeping book availability
consistent with loans is the engine's job.

Example:
    >>> store = EntityStore()
    >>> store.books.insert(book)
    >>> store.books.find_by_key(book.isbn)
"""
import itertools
import threading
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from circulation.core.errors import BookNotFound, DuplicateKey, LoanNotFound, NotFound, UserNotFound
from circulation.core.logging import get_logger
from circulation.domain.book import Book
from circulation.domain.loan import Loan
from circulation.domain.user import User

logger = get_logger(__name__)

R = TypeVar("R", Book, User, Loan)

LOAN_ID_PREFIX = "L"
LOAN_ID_WIDTH = 3


class KeyedCollection(Generic[R]):
    """Ordered key -> record mapping for one entity kind.

    Records expose their natural key through a ``key`` property. All
    operations run under the owning store's lock, so a reader never sees a
    half-applied ``replace``.
    """

    def __init__(
        self,
        kind: str,
        lock: threading.RLock,
        not_found: Optional[Callable[[str], NotFound]] = None,
    ):
        """Initialize an empty collection.

        Args:
            kind: Entity name used in errors and logs ("Book", "User", "Loan")
            lock: Lock shared with the owning store
            not_found: Factory for the ``NotFound`` subclass raised by ``replace``
        """
        self.kind = kind
        self._lock = lock
        self._records: Dict[str, R] = {}
        self._not_found = not_found or (lambda key: NotFound(key, kind=kind))

    def insert(self, record: R) -> R:
        """Add a record.

        Raises:
            DuplicateKey: If a record with the same key is already stored
        """
        with self._lock:
            if record.key in self._records:
                raise DuplicateKey(self.kind, record.key)
            self._records[record.key] = record
        logger.debug(f"{self.kind} inserted: {record.key}")
        return record

    def find_by_key(self, key: str) -> Optional[R]:
        """Return the record stored under ``key``, or None."""
        with self._lock:
            record = self._records.get(key)
        if record is None:
            logger.debug(f"{self.kind} miss: {key}")
        return record

    def find_all(self) -> List[R]:
        """Snapshot of every record in insertion order."""
        with self._lock:
            return list(self._records.values())

    def replace(self, record: R) -> R:
        """Swap the stored record for ``record``, keeping its position.

        Raises:
            NotFound: If nothing is stored under ``record.key``
        """
        with self._lock:
            if record.key not in self._records:
                raise self._not_found(record.key)
            self._records[record.key] = record
        logger.debug(f"{self.kind} replaced: {record.key}")
        return record

    def remove(self, key: str) -> bool:
        """Delete the record under ``key``.

        Returns:
            True if a record was removed, False if none was stored
        """
        with self._lock:
            removed = self._records.pop(key, None) is not None
        if removed:
            logger.debug(f"{self.kind} removed: {key}")
        return removed

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._records

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class LoanIdSequence:
    """Process-lifetime loan id generator: ``L001``, ``L002``, ... ``L1000``.

    Ids are never reused, even after ``EntityStore.reset``.
    """

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next_id(self) -> str:
        """Reserve and return the next loan id."""
        with self._lock:
            number = next(self._counter)
        return f"{LOAN_ID_PREFIX}{number:0{LOAN_ID_WIDTH}d}"


class EntityStore:
    """Authoritative registry of books, users and loans for one process."""

    def __init__(self):
        # Re-entrant: the engine holds it across several collection calls
        self.lock = threading.RLock()
        self.books: KeyedCollection[Book] = KeyedCollection("Book", self.lock, BookNotFound)
        self.users: KeyedCollection[User] = KeyedCollection("User", self.lock, UserNotFound)
        self.loans: KeyedCollection[Loan] = KeyedCollection("Loan", self.lock, LoanNotFound)
        self.loan_ids = LoanIdSequence()

        logger.info("EntityStore initialized")

    def reset(self) -> None:
        """Drop every record. The loan id sequence keeps counting."""
        with self.lock:
            self.books.clear()
            self.users.clear()
            self.loans.clear()
        logger.info("EntityStore reset")
