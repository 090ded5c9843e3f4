"""Domain models for loans and their read projections."""
from datetime import date
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class LoanStatus(str, Enum):
    """Status label derived from a loan on read; never stored."""
    ACTIVE = "Active"
    RETURNED = "Returned"
    OVERDUE = "Overdue"


class Loan(BaseModel):
    """A borrowing record linking one user to one book.

    Created only by the lifecycle engine and mutated exactly once, when the
    book comes back (``return_date`` goes from None to a date). Loans are
    never deleted.

    Attributes:
        loan_id: Sequential identifier (``L001``, ``L002``, ...)
        user_id: Borrower key
        isbn: Borrowed book key
        loan_date: Day the loan was created
        due_date: ``loan_date`` plus the loan period
        return_date: Day the book came back, None while active
    """
    loan_id: str
    user_id: str
    isbn: str
    loan_date: date
    due_date: date
    return_date: Optional[date] = None

    class Config:
        frozen = True

    @property
    def key(self) -> str:
        return self.loan_id

    @property
    def returned(self) -> bool:
        return self.return_date is not None

    def is_overdue(self, today: Optional[date] = None) -> bool:
        """True when still out and ``today`` is past the due date."""
        today = today or date.today()
        return not self.returned and today > self.due_date

    def status(self, today: Optional[date] = None) -> LoanStatus:
        if self.returned:
            return LoanStatus.RETURNED
        if self.is_overdue(today):
            return LoanStatus.OVERDUE
        return LoanStatus.ACTIVE

    def mark_returned(self, on: date) -> "Loan":
        return self.model_copy(update={"return_date": on})


class LoanView(BaseModel):
    """Read projection of a loan joined with its borrower and book."""
    loan_id: str
    user_id: str
    user_name: str
    isbn: str
    book_title: str
    loan_date: date
    due_date: date
    return_date: Optional[date] = None
    status: LoanStatus
