"""Loan lifecycle events handed to the notification dispatcher."""
from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, Field


class LoanEventType(str, Enum):
    LOAN_CREATED = "LoanCreated"
    LOAN_RETURNED = "LoanReturned"


class LoanEvent(BaseModel):
    """One lifecycle transition, with the human-readable message to deliver."""
    kind: LoanEventType
    loan_id: str
    user_id: str
    isbn: str
    message: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        frozen = True
