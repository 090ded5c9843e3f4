"""Seed data loaded into a fresh store at process start."""
from typing import List

from circulation.core.logging import get_logger
from circulation.domain.book import Book, new_book
from circulation.domain.user import User, new_user
from circulation.infrastructure.store import EntityStore

logger = get_logger(__name__)


def fixture_books() -> List[Book]:
    return [
        new_book("978-0-547-92822-7", "1984", "George Orwell", "Gallimard", 1949),
        new_book("978-2-07-036822-8", "Le Petit Prince", "Antoine de Saint-Exupéry", "Gallimard", 1943),
        new_book("978-2-253-00249-1", "Les Misérables", "Victor Hugo", "Le Livre de Poche", 1862),
    ]


def fixture_users() -> List[User]:
    return [
        new_user("U001", "Jean", "Dupont", "jean.dupont@email.com"),
        new_user("U002", "Marie", "Martin", "marie.martin@email.com"),
        new_user("U003", "Pierre", "Durand", "pierre.durand@email.com"),
    ]


def seed_store(store: EntityStore) -> EntityStore:
    """Insert the fixture books and users into ``store``.

    Raises:
        DuplicateKey: If the store already holds one of the fixture keys
    """
    books = fixture_books()
    users = fixture_users()
    for book in books:
        store.books.insert(book)
    for user in users:
        store.users.insert(user)

    logger.info(f"Seeded store with {len(books)} books and {len(users)} users")
    return store
