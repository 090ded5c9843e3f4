"""FastAPI routes for the circulation service.

Thin translation layer: parse the request, call the ``Library`` facade, map
domain errors to HTTP statuses. Endpoints are plain ``def`` so FastAPI runs
them on its thread pool; the core's store lock keeps concurrent loan
operations consistent.
"""
from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from circulation.bootstrap import Library
from circulation.core.errors import BookNotFound, CirculationError
from circulation.core.logging import get_logger, LogTimer
from circulation.domain.book import Book
from circulation.domain.loan import Loan, LoanView
from circulation.domain.user import User
from circulation.services.notifications import available_channels

logger = get_logger(__name__)
router = APIRouter()


def get_library(request: Request) -> Library:
    """Dependency returning the library built at app startup."""
    return request.app.state.library


def _http_error(exc: CirculationError) -> HTTPException:
    return HTTPException(status_code=exc.http_status, detail=exc.to_dict()["error"])


# -----------------
# REQUEST MODELS
# -----------------

class BookCreate(BaseModel):
    isbn: str
    title: str
    author: str
    publisher: Optional[str] = None
    year: Optional[int] = None


class UserCreate(BaseModel):
    user_id: str
    first_name: str = ""
    last_name: str = ""
    email: str


class LoanCreate(BaseModel):
    user_id: str
    isbn: str


class ChannelUpdate(BaseModel):
    name: str


class LoanFilter(str, Enum):
    ALL = "all"
    ACTIVE = "active"
    OVERDUE = "overdue"


# -----------------
# BOOKS
# -----------------

@router.get("/books", response_model=List[Book])
def list_books(
    available: bool = False,
    title: Optional[str] = None,
    author: Optional[str] = None,
    library: Library = Depends(get_library),
):
    """List the catalog, optionally narrowed down.

    Filters combine: ``title`` and ``author`` are case-insensitive substring
    searches, ``available`` keeps only books currently on the shelf.

    Example:
        GET /books?author=orwell&available=true
    """
    try:
        books = library.search_books(title=title, author=author)
    except CirculationError as exc:
        raise _http_error(exc)
    if available:
        books = [book for book in books if book.available]
    return books


@router.get("/books/{isbn}", response_model=Book)
def get_book(isbn: str, library: Library = Depends(get_library)):
    book = library.books.get_book(isbn)
    if book is None:
        raise _http_error(BookNotFound(isbn))
    return book


@router.post("/books", response_model=Book, status_code=201)
def add_book(req: BookCreate, library: Library = Depends(get_library)):
    with LogTimer(logger, f"add_book:{req.isbn}"):
        try:
            return library.books.add_book(req.isbn, req.title, req.author, req.publisher, req.year)
        except CirculationError as exc:
            raise _http_error(exc)


# -----------------
# USERS
# -----------------

@router.get("/users", response_model=List[User])
def list_users(library: Library = Depends(get_library)):
    return library.list_users()


@router.post("/users", response_model=User, status_code=201)
def register_user(req: UserCreate, library: Library = Depends(get_library)):
    with LogTimer(logger, f"register_user:{req.user_id}"):
        try:
            return library.users.register_user(req.user_id, req.first_name, req.last_name, req.email)
        except CirculationError as exc:
            raise _http_error(exc)


@router.get("/users/{user_id}/loans", response_model=List[LoanView])
def user_loans(user_id: str, library: Library = Depends(get_library)):
    """Active loans of one user ("my loans")."""
    return library.active_loans_for_user(user_id)


# -----------------
# LOANS
# -----------------

@router.get("/loans", response_model=List[LoanView])
def list_loans(
    state: LoanFilter = Query(LoanFilter.ALL, alias="status"),
    library: Library = Depends(get_library),
):
    if state == LoanFilter.ACTIVE:
        return library.active_loans()
    if state == LoanFilter.OVERDUE:
        return library.overdue_loans()
    return library.all_loans()


@router.post("/loans", response_model=Loan, status_code=201)
def create_loan(req: LoanCreate, library: Library = Depends(get_library)):
    """Lend a book.

    Example:
        POST /loans
        {"user_id": "U001", "isbn": "978-0-547-92822-7"}
    """
    with LogTimer(logger, f"create_loan:{req.user_id}:{req.isbn}"):
        try:
            return library.create_loan(req.user_id, req.isbn)
        except CirculationError as exc:
            raise _http_error(exc)


@router.post("/loans/{loan_id}/return", response_model=Loan)
def return_book(loan_id: str, library: Library = Depends(get_library)):
    with LogTimer(logger, f"return_book:{loan_id}"):
        try:
            return library.return_book(loan_id)
        except CirculationError as exc:
            raise _http_error(exc)


# -----------------
# NOTIFICATIONS
# -----------------

@router.get("/notifications/channel")
def get_channel(library: Library = Depends(get_library)):
    return {
        "channel": library.notification_channel.value,
        "available": list(available_channels()),
    }


@router.put("/notifications/channel")
def set_channel(req: ChannelUpdate, library: Library = Depends(get_library)):
    try:
        channel = library.set_notification_channel(req.name)
    except CirculationError as exc:
        raise _http_error(exc)
    return {"channel": channel.value}
