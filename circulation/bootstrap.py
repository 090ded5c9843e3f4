"""Process-start wiring for the circulation core.

``create_library()`` builds one ``EntityStore`` and hands it to every
service; there is no module-level store. The returned ``Library`` is the
facade the HTTP layer (or any other caller) talks to.
"""
from datetime import date
from typing import Callable, List, Optional, TextIO

from circulation.core.config import settings
from circulation.core.logging import get_logger
from circulation.domain.book import Book
from circulation.domain.loan import Loan, LoanView
from circulation.domain.user import User
from circulation.infrastructure.fixtures import seed_store
from circulation.infrastructure.store import EntityStore
from circulation.services.catalog import BookService
from circulation.services.loans import LoanService
from circulation.services.notifications import (
    LoanEventDispatcher,
    NotificationChannel,
    NotificationService,
)
from circulation.services.users import UserService

logger = get_logger(__name__)


class Library:
    """Facade over the catalog, user registry, loan engine and notifier."""

    def __init__(
        self,
        store: EntityStore,
        books: BookService,
        users: UserService,
        loans: LoanService,
        dispatcher: LoanEventDispatcher,
        notifier: NotificationService,
    ):
        self.store = store
        self.books = books
        self.users = users
        self.loans = loans
        self.dispatcher = dispatcher
        self.notifier = notifier

    # Loan lifecycle
    def create_loan(self, user_id: str, isbn: str) -> Loan:
        return self.loans.create_loan(user_id, isbn)

    def return_book(self, loan_id: str) -> Loan:
        return self.loans.return_book(loan_id)

    # Queries
    def all_loans(self) -> List[LoanView]:
        return self.loans.all_loans()

    def active_loans(self) -> List[LoanView]:
        return self.loans.active_loans()

    def overdue_loans(self) -> List[LoanView]:
        return self.loans.overdue_loans()

    def active_loans_for_user(self, user_id: str) -> List[LoanView]:
        return self.loans.active_loans_for_user(user_id)

    def list_books(self) -> List[Book]:
        return self.books.list_books()

    def search_books(self, title: Optional[str] = None, author: Optional[str] = None) -> List[Book]:
        """Books matching every given keyword; the whole catalog if none is given.

        Raises:
            ValidationError: If a keyword is given but blank
        """
        if title is None and author is None:
            return self.books.list_books()
        if title is not None:
            books = self.books.search_by_title(title)
            if author is not None:
                matches = {book.isbn for book in self.books.search_by_author(author)}
                books = [book for book in books if book.isbn in matches]
            return books
        return self.books.search_by_author(author)

    def list_users(self) -> List[User]:
        return self.users.list_users()

    # Notifications
    def set_notification_channel(self, name: str) -> NotificationChannel:
        return self.notifier.set_channel(name)

    @property
    def notification_channel(self) -> NotificationChannel:
        return self.notifier.channel


def create_library(
    seed: Optional[bool] = None,
    clock: Optional[Callable[[], date]] = None,
    channel: Optional[str] = None,
    isolate_failures: Optional[bool] = None,
    loan_period_days: Optional[int] = None,
    stream: Optional[TextIO] = None,
) -> Library:
    """Build a fully wired ``Library``.

    Every argument left as None falls back to ``settings``.

    Args:
        seed: Load the fixture books and users
        clock: "Today" provider for the loan engine
        channel: Initial notification channel name
        isolate_failures: Keep delivering to later subscribers when one fails
        loan_period_days: Days until a loan is due
        stream: Text stream notices are written to (stdout if None)

    Raises:
        UnknownChannel: If ``channel`` is not a registered channel name
    """
    seed = settings.seed_fixtures if seed is None else seed
    if isolate_failures is None:
        isolate_failures = settings.isolate_subscriber_failures

    store = EntityStore()
    if seed:
        seed_store(store)

    books = BookService(store)
    users = UserService(store)
    dispatcher = LoanEventDispatcher(isolate_failures=isolate_failures)
    notifier = NotificationService(users, channel=channel, stream=stream)
    dispatcher.subscribe(notifier)
    loans = LoanService(
        store,
        books,
        users,
        dispatcher,
        loan_period_days=loan_period_days,
        clock=clock,
    )

    logger.info(
        f"Library ready (channel={notifier.channel.value}, isolate_failures={isolate_failures})"
    )
    return Library(store, books, users, loans, dispatcher, notifier)
