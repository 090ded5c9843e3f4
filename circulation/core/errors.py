"""Domain error taxonomy for the circulation core.

Every error is deterministic and caller-triggerable: retrying the same call
against the same state fails the same way. Each class carries a stable
``error_code`` and the HTTP status the API layer answers with.
"""
from typing import Any, Dict, Optional


class CirculationError(Exception):
    """Base class for all circulation domain errors."""

    error_code = "circulation_error"
    http_status = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for API responses."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "type": self.__class__.__name__,
                **({"details": self.details} if self.details else {}),
            }
        }


class DuplicateKey(CirculationError):
    """A record with the same natural key is already stored."""

    error_code = "duplicate_key"
    http_status = 409

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} already exists: {key}", kind=kind, key=key)
        self.kind = kind
        self.key = key


# ============================================================================
# NOT FOUND
# ============================================================================

class NotFound(CirculationError):
    """No record stored under the requested key."""

    error_code = "not_found"
    http_status = 404
    kind = "Record"

    def __init__(self, key: str, kind: Optional[str] = None):
        kind = kind or self.kind
        super().__init__(f"{kind} not found: {key}", key=key)
        self.key = key


class UserNotFound(NotFound):
    error_code = "user_not_found"
    kind = "User"


class BookNotFound(NotFound):
    error_code = "book_not_found"
    kind = "Book"


class LoanNotFound(NotFound):
    error_code = "loan_not_found"
    kind = "Loan"


# ============================================================================
# INVALID STATE
# ============================================================================

class InvalidState(CirculationError):
    """The record exists but its current state forbids the operation."""

    error_code = "invalid_state"
    http_status = 409


class BookUnavailable(InvalidState):
    """The book is unknown or already on an active loan."""

    error_code = "book_unavailable"

    def __init__(self, isbn: str):
        super().__init__(f"Book is not available: {isbn}", isbn=isbn)
        self.isbn = isbn


class AlreadyReturned(InvalidState):
    """The loan has already been returned; returned loans cannot be reopened."""

    error_code = "already_returned"

    def __init__(self, loan_id: str):
        super().__init__(f"Loan has already been returned: {loan_id}", loan_id=loan_id)
        self.loan_id = loan_id


# ============================================================================
# INPUT
# ============================================================================

class ValidationError(CirculationError):
    """Malformed input to a creation operation (empty required field, bad email)."""

    error_code = "validation_error"
    http_status = 422

    @classmethod
    def from_schema_errors(cls, kind: str, errors: list) -> "ValidationError":
        """Collapse pydantic's per-field error list into one domain error."""
        problems = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in errors
        ]
        return cls(f"Invalid {kind}: {'; '.join(problems)}", fields=problems)


class UnknownChannel(CirculationError):
    """Notification channel name outside the supported set."""

    error_code = "unknown_channel"
    http_status = 400

    def __init__(self, name: str, available: tuple):
        super().__init__(
            f"Unknown notification channel: {name!r}. Available channels: {', '.join(available)}",
            name=name,
            available=list(available),
        )
        self.name = name
