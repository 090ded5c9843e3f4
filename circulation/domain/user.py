"""Domain model for registered library users."""
from pydantic import BaseModel, EmailStr, Field
from pydantic import ValidationError as SchemaError

from circulation.core.errors import ValidationError


class User(BaseModel):
    """A registered borrower.

    Authentication data (passwords, sessions) lives outside the circulation
    core; this record only answers "who is this user and how do we reach them".

    Attributes:
        user_id: Unique, immutable key
        first_name: Given name
        last_name: Family name
        email: Contact address used as the notification recipient
    """
    user_id: str = Field(min_length=1)
    first_name: str = ""
    last_name: str = ""
    email: EmailStr

    class Config:
        frozen = True
        str_strip_whitespace = True
        json_schema_extra = {
            "example": {
                "user_id": "U001",
                "first_name": "Jean",
                "last_name": "Dupont",
                "email": "jean.dupont@email.com"
            }
        }

    @property
    def key(self) -> str:
        return self.user_id

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.user_id


def new_user(user_id: str, first_name: str, last_name: str, email: str) -> User:
    """Build a ``User``.

    Raises:
        ValidationError: If ``user_id`` is empty or ``email`` is malformed
    """
    try:
        return User(user_id=user_id, first_name=first_name, last_name=last_name, email=email)
    except SchemaError as exc:
        raise ValidationError.from_schema_errors("User", exc.errors()) from exc
