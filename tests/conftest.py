"""Pytest configuration and shared fixtures."""
import io
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from circulation.bootstrap import create_library
from circulation.infrastructure.store import EntityStore


class FakeClock:
    """Controllable "today" for the loan engine."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today

    def advance(self, days: int) -> None:
        self.today += timedelta(days=days)


@pytest.fixture
def clock():
    """Clock frozen on 1 March 2024."""
    return FakeClock(date(2024, 3, 1))


@pytest.fixture
def notices():
    """Captures everything the notification channels print."""
    return io.StringIO()


@pytest.fixture
def library(clock, notices):
    """Seeded library with three books (1984, Le Petit Prince, Les Misérables)
    and three users (U001-U003), console notifications and isolated subscribers."""
    return create_library(
        seed=True,
        clock=clock,
        channel="console",
        isolate_failures=True,
        loan_period_days=14,
        stream=notices,
    )


@pytest.fixture
def legacy_library(clock, notices):
    """Same as ``library`` but subscriber failures propagate to the caller."""
    return create_library(
        seed=True,
        clock=clock,
        channel="console",
        isolate_failures=False,
        loan_period_days=14,
        stream=notices,
    )


@pytest.fixture
def store():
    """Empty entity store."""
    return EntityStore()


@pytest.fixture
def test_client(library):
    """FastAPI test client bound to the ``library`` fixture."""
    from main import create_app
    return TestClient(create_app(library))


def assert_availability_matches_loans(library):
    """Every book is unavailable iff exactly one active loan references it."""
    active = [loan.isbn for loan in library.store.loans.find_all() if not loan.returned]
    assert len(active) == len(set(active)), "two active loans on one isbn"
    for book in library.store.books.find_all():
        assert book.available == (book.isbn not in active), book.isbn


@pytest.fixture
def check_invariant():
    return assert_availability_matches_loans
