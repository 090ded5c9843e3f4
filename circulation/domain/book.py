"""Domain model for catalog books."""
from typing import Optional
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from circulation.core.errors import ValidationError

UNKNOWN_PUBLISHER = "Unknown"


class Book(BaseModel):
    """A catalog entry, keyed by ISBN.

    Books are immutable value records: the only field that ever changes is
    ``available``, and it changes by replacing the stored record with a copy
    (see ``with_availability``).

    Attributes:
        isbn: Unique, immutable catalog key
        title: Book title
        author: Author display name
        publisher: Publisher name (defaults to ``UNKNOWN_PUBLISHER``)
        year: Publication year (0 when unknown)
        available: False while the book is on an active loan
    """
    isbn: str = Field(min_length=1)
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    publisher: str = UNKNOWN_PUBLISHER
    year: int = Field(default=0, ge=0)
    available: bool = True

    class Config:
        frozen = True
        str_strip_whitespace = True
        json_schema_extra = {
            "example": {
                "isbn": "978-0-547-92822-7",
                "title": "1984",
                "author": "George Orwell",
                "publisher": "Gallimard",
                "year": 1949,
                "available": True
            }
        }

    @property
    def key(self) -> str:
        return self.isbn

    def with_availability(self, available: bool) -> "Book":
        return self.model_copy(update={"available": available})


def new_book(
    isbn: str,
    title: str,
    author: str,
    publisher: Optional[str] = None,
    year: Optional[int] = None,
    available: bool = True,
) -> Book:
    """Build a ``Book``, applying defaults for the optional fields.

    Blank or missing ``publisher`` falls back to ``UNKNOWN_PUBLISHER`` and a
    missing ``year`` to 0.

    Raises:
        ValidationError: If a required field is empty or ``year`` is negative
    """
    fields = {
        "isbn": isbn,
        "title": title,
        "author": author,
        "available": available,
    }
    if publisher is not None and publisher.strip():
        fields["publisher"] = publisher
    if year is not None:
        fields["year"] = year

    try:
        return Book(**fields)
    except SchemaError as exc:
        raise ValidationError.from_schema_errors("Book", exc.errors()) from exc
