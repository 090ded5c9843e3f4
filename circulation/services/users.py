"""User registration and the lookups the circulation core depends on."""
from typing import List, Optional

from circulation.core.logging import get_logger
from circulation.domain.user import User, new_user
from circulation.infrastructure.store import EntityStore

logger = get_logger(__name__)

UNKNOWN_USER_NAME = "Unknown user"


class UserService:
    """Answers "does this user exist, what is their name, where do we write"."""

    def __init__(self, store: EntityStore):
        self.store = store

    def register_user(self, user_id: str, first_name: str, last_name: str, email: str) -> User:
        """Add a user.

        Raises:
            ValidationError: If ``user_id`` is empty or ``email`` is malformed
            DuplicateKey: If ``user_id`` is taken
        """
        user = self.store.users.insert(new_user(user_id, first_name, last_name, email))
        logger.info(f"User registered: {user.full_name}", extra={"user_id": user.user_id})
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        """Look up a user by id.

        Returns:
            The user, or None if ``user_id`` is not registered
        """
        return self.store.users.find_by_key(user_id)

    def list_users(self) -> List[User]:
        """All users in registration order."""
        return self.store.users.find_all()

    def user_exists(self, user_id: str) -> bool:
        return self.store.users.exists(user_id)

    def user_display_name(self, user_id: str) -> str:
        """Name shown in notices and loan listings.

        Returns:
            "First Last", the user id when both names are blank, or
            ``UNKNOWN_USER_NAME`` for an unregistered id
        """
        user = self.get_user(user_id)
        return user.full_name if user else UNKNOWN_USER_NAME

    def user_email(self, user_id: str) -> Optional[str]:
        """Address notices are written to, or None for an unregistered id."""
        user = self.get_user(user_id)
        return str(user.email) if user else None
