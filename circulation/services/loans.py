"""Loan lifecycle engine.

Creates and closes loans while keeping every book's ``available`` flag in
step with the loan ledger:

    book.available is False  <=>  exactly one loan on that isbn has no return_date

Each mutating operation validates, assigns ids and writes both entities
inside one critical section on the store lock, then publishes a lifecycle
event once the lock is released. Notification never runs under the lock, and
a failing subscriber cannot undo a committed loan.

Loan states: Active -> Returned (terminal). "Overdue" is a read-time view of
an active loan whose due date has passed.
"""
from datetime import date, timedelta
from typing import Callable, List, Optional

from circulation.core.config import settings
from circulation.core.errors import (
    AlreadyReturned,
    BookUnavailable,
    LoanNotFound,
    UserNotFound,
    ValidationError,
)
from circulation.core.logging import get_logger
from circulation.domain.events import LoanEvent, LoanEventType
from circulation.domain.loan import Loan, LoanView
from circulation.infrastructure.store import EntityStore
from circulation.services.catalog import BookService
from circulation.services.notifications import LoanEventDispatcher
from circulation.services.users import UserService
from circulation.utils.formatting import format_date

logger = get_logger(__name__)

UNKNOWN_BOOK_TITLE = "Unknown book"

LOAN_CREATED_TEMPLATE = (
    "📚 Loan created!\n"
    "Book: {title}\n"
    "Borrower: {borrower}\n"
    "Due date: {due_date}"
)
LOAN_RETURNED_TEMPLATE = (
    "✅ Book returned!\n"
    "Book: {title}\n"
    "Borrower: {borrower}"
)


class LoanService:
    """Owns loan creation, return and loan queries."""

    def __init__(
        self,
        store: EntityStore,
        books: BookService,
        users: UserService,
        dispatcher: LoanEventDispatcher,
        loan_period_days: Optional[int] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        """Initialize the engine.

        Args:
            store: Shared entity store (its lock guards every mutation)
            books: Catalog service used for availability checks and flips
            users: User lookups (existence, display name)
            dispatcher: Receives ``LoanCreated`` / ``LoanReturned`` events
            loan_period_days: Days until a new loan is due (settings default: 14)
            clock: Returns "today"; injectable for overdue tests

        Raises:
            ValidationError: If ``loan_period_days`` is zero or negative
        """
        if loan_period_days is None:
            loan_period_days = settings.loan_period_days
        if loan_period_days <= 0:
            raise ValidationError(
                f"Loan period must be a positive number of days, got {loan_period_days}",
                loan_period_days=loan_period_days,
            )

        self.store = store
        self.books = books
        self.users = users
        self.dispatcher = dispatcher
        self.loan_period = timedelta(days=loan_period_days)
        self.clock = clock or date.today

    # -----------------
    # LIFECYCLE
    # -----------------

    def create_loan(self, user_id: str, isbn: str) -> Loan:
        """Lend a book to a user.

        Raises:
            UserNotFound: If ``user_id`` is not registered
            BookUnavailable: If the book is unknown or already on loan
        """
        with self.store.lock:
            if not self.users.user_exists(user_id):
                raise UserNotFound(user_id)
            if not self.books.is_available(isbn):
                raise BookUnavailable(isbn)

            loan_date = self.clock()
            loan = Loan(
                loan_id=self.store.loan_ids.next_id(),
                user_id=user_id,
                isbn=isbn,
                loan_date=loan_date,
                due_date=loan_date + self.loan_period,
            )
            self.store.loans.insert(loan)
            book = self.books.mark_unavailable(isbn)
            borrower = self.users.user_display_name(user_id)

        logger.info(
            f"Loan {loan.loan_id} created, due {loan.due_date.isoformat()}",
            extra={"loan_id": loan.loan_id, "user_id": user_id, "isbn": isbn}
        )

        message = LOAN_CREATED_TEMPLATE.format(
            title=book.title,
            borrower=borrower,
            due_date=format_date(loan.due_date),
        )
        self.dispatcher.publish(LoanEvent(
            kind=LoanEventType.LOAN_CREATED,
            loan_id=loan.loan_id,
            user_id=user_id,
            isbn=isbn,
            message=message,
        ))
        return loan

    def return_book(self, loan_id: str) -> Loan:
        """Close an active loan and make its book available again.

        Raises:
            LoanNotFound: If ``loan_id`` is unknown
            AlreadyReturned: If the loan was already closed
        """
        with self.store.lock:
            loan = self.get_loan(loan_id)
            if loan.returned:
                raise AlreadyReturned(loan_id)

            loan = self.store.loans.replace(loan.mark_returned(self.clock()))
            # The book may have been withdrawn from the catalog while on loan
            book = self.books.get_book(loan.isbn)
            if book is not None:
                book = self.books.mark_available(loan.isbn)
            borrower = self.users.user_display_name(loan.user_id)

        logger.info(
            f"Loan {loan.loan_id} returned",
            extra={"loan_id": loan.loan_id, "user_id": loan.user_id, "isbn": loan.isbn}
        )

        message = LOAN_RETURNED_TEMPLATE.format(
            title=book.title if book else UNKNOWN_BOOK_TITLE,
            borrower=borrower,
        )
        self.dispatcher.publish(LoanEvent(
            kind=LoanEventType.LOAN_RETURNED,
            loan_id=loan.loan_id,
            user_id=loan.user_id,
            isbn=loan.isbn,
            message=message,
        ))
        return loan

    # -----------------
    # QUERIES
    # -----------------

    def get_loan(self, loan_id: str) -> Loan:
        """Fetch one loan.

        Raises:
            LoanNotFound: If ``loan_id`` is unknown
        """
        loan = self.store.loans.find_by_key(loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)
        return loan

    def all_loans(self) -> List[LoanView]:
        """Every loan ever created, oldest first."""
        return self._views(self.store.loans.find_all())

    def active_loans(self) -> List[LoanView]:
        """Loans not yet returned, overdue ones included."""
        return self._views(loan for loan in self.store.loans.find_all() if not loan.returned)

    def overdue_loans(self) -> List[LoanView]:
        """Active loans whose due date is before today."""
        today = self.clock()
        return self._views(
            (loan for loan in self.store.loans.find_all() if loan.is_overdue(today)),
            today=today,
        )

    def active_loans_for_user(self, user_id: str) -> List[LoanView]:
        """Active loans of one user; empty for unknown ids."""
        return self._views(
            loan for loan in self.store.loans.find_all()
            if not loan.returned and loan.user_id == user_id
        )

    def _views(self, loans, today: Optional[date] = None) -> List[LoanView]:
        today = today or self.clock()
        views = []
        for loan in loans:
            book = self.books.get_book(loan.isbn)
            views.append(LoanView(
                loan_id=loan.loan_id,
                user_id=loan.user_id,
                user_name=self.users.user_display_name(loan.user_id),
                isbn=loan.isbn,
                book_title=book.title if book else UNKNOWN_BOOK_TITLE,
                loan_date=loan.loan_date,
                due_date=loan.due_date,
                return_date=loan.return_date,
                status=loan.status(today),
            ))
        return views
