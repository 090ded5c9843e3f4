"""Tests for the loan lifecycle engine."""
import threading
from datetime import date, timedelta
from unittest.mock import Mock

import pytest

from circulation.bootstrap import create_library
from circulation.core.errors import (
    AlreadyReturned,
    BookUnavailable,
    LoanNotFound,
    UserNotFound,
    ValidationError,
)
from circulation.domain.loan import LoanStatus
from circulation.services.notifications import NotificationChannel

ORWELL = "978-0-547-92822-7"
PETIT_PRINCE = "978-2-07-036822-8"
MISERABLES = "978-2-253-00249-1"


def book(library, isbn):
    return library.store.books.find_by_key(isbn)


class TestCreateLoan:
    """createLoan preconditions and effects."""

    def test_create_loan_marks_book_unavailable(self, library, check_invariant):
        loan = library.create_loan("U001", ORWELL)

        assert loan.loan_id == "L001"
        assert loan.return_date is None
        assert book(library, ORWELL).available is False
        assert library.store.loans.find_by_key("L001") == loan
        check_invariant(library)

    def test_due_date_is_fourteen_days_after_loan_date(self, library, clock):
        loan = library.create_loan("U001", ORWELL)

        assert loan.loan_date == clock.today
        assert loan.due_date == loan.loan_date + timedelta(days=14)
        assert loan.due_date == date(2024, 3, 15)

    def test_second_loan_on_same_book_rejected(self, library, check_invariant):
        library.create_loan("U001", ORWELL)

        with pytest.raises(BookUnavailable):
            library.create_loan("U002", ORWELL)

        assert len(library.store.loans) == 1
        check_invariant(library)

    def test_unknown_isbn_is_unavailable(self, library):
        with pytest.raises(BookUnavailable) as exc_info:
            library.create_loan("U001", "000-0-000-00000-0")

        assert exc_info.value.isbn == "000-0-000-00000-0"
        assert len(library.store.loans) == 0

    def test_unknown_user_changes_nothing(self, library, check_invariant):
        with pytest.raises(UserNotFound):
            library.create_loan("U999", ORWELL)

        assert len(library.store.loans) == 0
        assert book(library, ORWELL).available is True
        check_invariant(library)

    def test_user_checked_before_book(self, library):
        library.create_loan("U001", ORWELL)

        with pytest.raises(UserNotFound):
            library.create_loan("U999", ORWELL)

    def test_failed_attempts_do_not_consume_ids(self, library):
        library.create_loan("U001", ORWELL)
        with pytest.raises(BookUnavailable):
            library.create_loan("U002", ORWELL)

        assert library.create_loan("U002", PETIT_PRINCE).loan_id == "L002"

    def test_ids_strictly_increase_and_are_never_reused(self, library):
        ids = []
        for _ in range(3):
            loan = library.create_loan("U001", ORWELL)
            ids.append(loan.loan_id)
            library.return_book(loan.loan_id)

        assert ids == ["L001", "L002", "L003"]
        assert len(set(ids)) == len(ids)

    def test_created_event_reaches_subscribers(self, library):
        subscriber = Mock()
        library.dispatcher.subscribe(subscriber)

        library.create_loan("U001", ORWELL)

        subscriber.on_loan_event.assert_called_once()
        user_id, isbn, message = subscriber.on_loan_event.call_args.args
        assert (user_id, isbn) == ("U001", ORWELL)
        assert "Book: 1984" in message
        assert "Borrower: Jean Dupont" in message
        assert "Due date: 15/03/2024" in message


class TestReturnBook:
    """returnBook preconditions and effects."""

    def test_return_restores_availability(self, library, clock, check_invariant):
        library.create_loan("U001", ORWELL)
        clock.advance(3)

        loan = library.return_book("L001")

        assert loan.return_date == date(2024, 3, 4)
        assert book(library, ORWELL).available is True
        assert library.store.loans.find_by_key("L001").returned
        check_invariant(library)

    def test_second_return_rejected_without_touching_book(self, library, check_invariant):
        library.create_loan("U001", ORWELL)
        library.return_book("L001")
        library.create_loan("U002", ORWELL)

        with pytest.raises(AlreadyReturned):
            library.return_book("L001")

        # U002's loan still holds the book
        assert book(library, ORWELL).available is False
        check_invariant(library)

    def test_unknown_loan(self, library):
        with pytest.raises(LoanNotFound):
            library.return_book("L999")

    def test_returned_event_message(self, library):
        library.create_loan("U002", PETIT_PRINCE)
        subscriber = Mock()
        library.dispatcher.subscribe(subscriber)

        library.return_book("L001")

        user_id, isbn, message = subscriber.on_loan_event.call_args.args
        assert (user_id, isbn) == ("U002", PETIT_PRINCE)
        assert "Book: Le Petit Prince" in message
        assert "Borrower: Marie Martin" in message

    def test_return_after_book_withdrawn(self, library):
        library.create_loan("U001", ORWELL)
        library.store.books.remove(ORWELL)

        loan = library.return_book("L001")

        assert loan.returned
        assert "Unknown book" in library.notifier.deliveries[-1].message


class TestScenario:
    """Walk-through: borrow, double borrow, return, double return."""

    def test_full_cycle(self, library, check_invariant):
        library.create_loan("U001", ORWELL)
        assert book(library, ORWELL).available is False

        with pytest.raises(BookUnavailable):
            library.create_loan("U001", ORWELL)

        library.return_book("L001")
        assert book(library, ORWELL).available is True
        assert library.store.loans.find_by_key("L001").return_date is not None

        with pytest.raises(AlreadyReturned):
            library.return_book("L001")
        assert book(library, ORWELL).available is True
        check_invariant(library)


class TestQueries:
    """Read-only loan projections."""

    def test_empty_ledger(self, library):
        assert library.all_loans() == []
        assert library.active_loans() == []
        assert library.overdue_loans() == []
        assert library.active_loans_for_user("U001") == []

    def test_active_and_all(self, library):
        library.create_loan("U001", ORWELL)
        library.create_loan("U002", PETIT_PRINCE)
        library.return_book("L001")

        assert [v.loan_id for v in library.all_loans()] == ["L001", "L002"]
        assert [v.loan_id for v in library.active_loans()] == ["L002"]

    def test_views_join_user_and_book(self, library):
        library.create_loan("U003", MISERABLES)

        view = library.all_loans()[0]
        assert view.user_name == "Pierre Durand"
        assert view.book_title == "Les Misérables"
        assert view.status == LoanStatus.ACTIVE
        assert view.return_date is None

    def test_active_loans_for_user(self, library):
        library.create_loan("U001", ORWELL)
        library.create_loan("U002", PETIT_PRINCE)
        library.create_loan("U001", MISERABLES)
        library.return_book("L003")

        assert [v.loan_id for v in library.active_loans_for_user("U001")] == ["L001"]
        assert library.active_loans_for_user("U404") == []

    def test_overdue_window(self, library, clock):
        library.create_loan("U001", ORWELL)

        clock.advance(14)
        assert library.overdue_loans() == []

        clock.advance(1)
        overdue = library.overdue_loans()
        assert [v.loan_id for v in overdue] == ["L001"]
        assert overdue[0].status == LoanStatus.OVERDUE

    def test_late_return_clears_overdue(self, library, clock):
        library.create_loan("U001", ORWELL)
        clock.advance(60)
        assert len(library.overdue_loans()) == 1

        library.return_book("L001")

        assert library.overdue_loans() == []
        assert library.all_loans()[0].status == LoanStatus.RETURNED

    def test_get_loan(self, library):
        library.create_loan("U001", ORWELL)

        assert library.loans.get_loan("L001").isbn == ORWELL
        with pytest.raises(LoanNotFound):
            library.loans.get_loan("L002")


class TestNotificationsFromLifecycle:
    """Lifecycle events routed through the notification bridge."""

    def test_console_by_default(self, library, notices):
        library.create_loan("U001", ORWELL)

        delivery = library.notifier.deliveries[-1]
        assert delivery.channel == NotificationChannel.CONSOLE
        assert delivery.recipient == "jean.dupont@email.com"
        assert "NOTIFICATION" in notices.getvalue()

    def test_email_channel_used_after_switch(self, library, notices):
        library.create_loan("U001", ORWELL)
        library.set_notification_channel("email")

        library.return_book("L001")

        first, second = library.notifier.deliveries
        assert first.channel == NotificationChannel.CONSOLE
        assert second.channel == NotificationChannel.EMAIL
        assert "Subject : Library notification" in second.rendered
        assert "EMAIL" not in first.rendered


class TestSubscriberFailures:
    """A failing subscriber after the store mutation has committed."""

    def failing_subscriber(self):
        subscriber = Mock()
        subscriber.on_loan_event.side_effect = RuntimeError("channel down")
        return subscriber

    def test_isolated_mode_keeps_delivering(self, library):
        failing = self.failing_subscriber()
        after = Mock()
        library.dispatcher.subscribe(failing)
        library.dispatcher.subscribe(after)

        loan = library.create_loan("U001", ORWELL)

        assert loan.loan_id == "L001"
        after.on_loan_event.assert_called_once()
        assert len(library.notifier.deliveries) == 1

    def test_legacy_mode_propagates_and_skips_later_subscribers(self, legacy_library, check_invariant):
        failing = self.failing_subscriber()
        after = Mock()
        legacy_library.dispatcher.subscribe(failing)
        legacy_library.dispatcher.subscribe(after)

        with pytest.raises(RuntimeError, match="channel down"):
            legacy_library.create_loan("U001", ORWELL)

        after.on_loan_event.assert_not_called()
        # The loan itself was committed before notification
        assert legacy_library.store.loans.find_by_key("L001") is not None
        assert book(legacy_library, ORWELL).available is False
        check_invariant(legacy_library)


class TestLoanPeriod:
    """Loan period overrides are validated like the LOAN_PERIOD_DAYS setting."""

    def test_custom_period(self, clock, notices):
        library = create_library(seed=True, clock=clock, loan_period_days=7, stream=notices)

        loan = library.create_loan("U001", ORWELL)

        assert loan.due_date == date(2024, 3, 8)

    @pytest.mark.parametrize("days", [0, -5])
    def test_non_positive_period_rejected(self, clock, notices, days):
        with pytest.raises(ValidationError) as exc_info:
            create_library(seed=True, clock=clock, loan_period_days=days, stream=notices)

        assert exc_info.value.details == {"loan_period_days": days}


def run_concurrently(count, target):
    """Start ``count`` threads that call ``target(i)`` at the same moment.

    Returns:
        List of (outcome, value) tuples, one per thread
    """
    barrier = threading.Barrier(count)
    results = []

    def worker(i):
        barrier.wait()
        try:
            results.append(("ok", target(i)))
        except BookUnavailable as exc:
            results.append(("unavailable", exc))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(results) == count
    return results


class TestConcurrency:
    """Loan operations racing from several threads, as under FastAPI's thread pool."""

    def test_only_one_borrower_wins_a_book(self, library, check_invariant):
        users = ["U001", "U002", "U003"]

        results = run_concurrently(20, lambda i: library.create_loan(users[i % 3], ORWELL))

        outcomes = [outcome for outcome, _ in results]
        assert outcomes.count("ok") == 1
        assert outcomes.count("unavailable") == 19
        assert len(library.store.loans) == 1
        assert book(library, ORWELL).available is False
        check_invariant(library)

    def test_distinct_books_get_unique_contiguous_ids(self, library, check_invariant):
        isbns = [f"979-0-0000-{i:04d}-0" for i in range(12)]
        for i, isbn in enumerate(isbns):
            library.books.add_book(isbn, f"Volume {i}", "Anonymous")

        results = run_concurrently(len(isbns), lambda i: library.create_loan("U001", isbns[i]))

        assert all(outcome == "ok" for outcome, _ in results)
        ids = sorted(loan.loan_id for _, loan in results)
        assert ids == [f"L{n:03d}" for n in range(1, 13)]
        check_invariant(library)

    def test_borrow_and_return_race(self, library, check_invariant):
        library.create_loan("U001", ORWELL)

        def step(i):
            if i == 0:
                return library.return_book("L001")
            return library.create_loan("U002", PETIT_PRINCE)

        results = run_concurrently(6, step)

        assert [outcome for outcome, _ in results].count("ok") == 2
        assert book(library, ORWELL).available is True
        assert book(library, PETIT_PRINCE).available is False
        check_invariant(library)
