"""
In-memory view of the book collection plus the user-facing mutations.

The cache is refreshed from the local store after syncs that changed data.
"""

import threading
import uuid
from dataclasses import replace
from datetime import timedelta
from typing import Optional, List, Any

from booksync.db.store import LocalBookStore
from booksync.sync.conflict import parse_timestamp
from booksync.sync.engine import SyncEngine
from booksync.sync.models import (
    BookRecord,
    BookStatus,
    SyncStatus,
    format_timestamp,
    utc_now_iso,
)
from booksync.utils.logging import get_logger

logger = get_logger(__name__)

# Managed by the collection or the sync engine, never by callers
PROTECTED_FIELDS = {"id", "created_at", "updated_at", "sync_status", "owner_user_id"}


class BookCollection:
    """
    Cached list of books and the operations that change them.

    ``sync_user_id`` is set while a user is signed in; mutations then mark
    books pending and deletions go through the sync engine.
    """

    def __init__(self, store: LocalBookStore, engine: Optional[SyncEngine] = None):
        self.store = store
        self.engine = engine
        self.sync_user_id: Optional[str] = None
        self._lock = threading.Lock()
        self._books: List[BookRecord] = []

    @property
    def books(self) -> List[BookRecord]:
        with self._lock:
            return list(self._books)

    def set_books(self, books: List[BookRecord]) -> None:
        with self._lock:
            self._books = list(books)

    def reload(self) -> List[BookRecord]:
        """Replace the cache with the current contents of the local store."""
        books = self.store.get_all()
        self.set_books(books)
        return books

    def get(self, book_id: str) -> Optional[BookRecord]:
        return next((book for book in self.books if book.id == book_id), None)

    def _mutation_status(self) -> Optional[SyncStatus]:
        return SyncStatus.PENDING if self.sync_user_id else None

    def add_book(self, title: str, authors: Optional[List[str]] = None, **fields: Any) -> BookRecord:
        """
        Register a new book.

        Args:
            title: Book title
            authors: Author names
            **fields: Any other BookRecord field

        Returns:
            The stored book
        """
        protected = PROTECTED_FIELDS.intersection(fields)
        if protected:
            raise ValueError(f"Cannot set managed fields: {', '.join(sorted(protected))}")

        now = utc_now_iso()
        book = BookRecord(
            id=str(uuid.uuid4()),
            title=title,
            authors=list(authors or []),
            created_at=now,
            updated_at=now,
            sync_status=self._mutation_status(),
            **fields
        )
        self.store.upsert(book)

        with self._lock:
            self._books.insert(0, book)

        logger.info("Added book", book_id=book.id, title=title)
        return book

    def update_book(self, book_id: str, **changes: Any) -> BookRecord:
        """
        Edit a book.

        Raises:
            KeyError: If the book does not exist
            ValueError: If a managed field is changed
        """
        protected = PROTECTED_FIELDS.intersection(changes)
        if protected:
            raise ValueError(f"Cannot change managed fields: {', '.join(sorted(protected))}")

        existing = self.store.get(book_id)
        if existing is None:
            raise KeyError(book_id)

        updated_at = utc_now_iso()
        previous = parse_timestamp(existing.updated_at)
        if parse_timestamp(updated_at) <= previous:
            # updated_at must strictly advance, even if the clock did not
            updated_at = format_timestamp(previous + timedelta(milliseconds=1))

        book = replace(
            existing,
            updated_at=updated_at,
            sync_status=self._mutation_status(),
            **changes
        )
        self.store.update(book)

        with self._lock:
            self._books = [book if b.id == book_id else b for b in self._books]

        return book

    def update_status(self, book_id: str, status: BookStatus) -> BookRecord:
        """Change the reading status, stamping start and completion dates."""
        status = BookStatus(status)
        existing = self.store.get(book_id)
        if existing is None:
            raise KeyError(book_id)

        changes = {"status": status}
        if status == BookStatus.READING and not existing.start_date:
            changes["start_date"] = utc_now_iso()
        if status == BookStatus.COMPLETED:
            changes["completed_date"] = utc_now_iso()

        return self.update_book(book_id, **changes)

    def delete_book(self, book_id: str) -> None:
        """Delete a book; remote deletion is best effort."""
        if self.sync_user_id and self.engine is not None:
            self.engine.delete_with_sync(book_id)
        else:
            self.store.delete(book_id)

        with self._lock:
            self._books = [book for book in self._books if book.id != book_id]

        logger.info("Deleted book", book_id=book_id)
