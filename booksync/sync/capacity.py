"""
Cloud capacity allocation.

Free-tier accounts may keep a limited number of books in the remote store.
The oldest books (by creation time) get the available slots.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Set

from booksync.sync.conflict import parse_timestamp
from booksync.sync.models import BookRecord, SyncStatus

FREE_CLOUD_SYNC_LIMIT = 50


@dataclass
class CloudCapacity:
    """Read-only projection of cloud capacity for the current collection."""
    is_premium: bool
    limit: Optional[int]  # None means unbounded
    count: int
    can_sync_more: bool

    def to_dict(self) -> dict:
        return {
            "is_premium": self.is_premium,
            "limit": self.limit,
            "count": self.count,
            "can_sync_more": self.can_sync_more,
        }


def get_sync_eligible_ids(
    books: Iterable[BookRecord],
    is_premium: bool = False,
    limit: int = FREE_CLOUD_SYNC_LIMIT,
) -> Set[str]:
    """
    Return the ids of books allowed to occupy remote storage.

    Args:
        books: Local books
        is_premium: Premium accounts have no limit
        limit: Free-tier limit

    Returns:
        Set of eligible book ids
    """
    candidates = sorted(
        (book for book in books if book.sync_status != SyncStatus.PENDING_DELETE),
        key=lambda book: (parse_timestamp(book.created_at), book.id),
    )

    if not is_premium:
        candidates = candidates[:max(limit, 0)]

    return {book.id for book in candidates}


def get_cloud_capacity(
    books: Iterable[BookRecord],
    is_premium: bool = False,
    limit: int = FREE_CLOUD_SYNC_LIMIT,
) -> CloudCapacity:
    """Compute the capacity metrics exposed to consumers."""
    count = len(get_sync_eligible_ids(books, is_premium, limit))
    effective_limit = None if is_premium else limit

    return CloudCapacity(
        is_premium=is_premium,
        limit=effective_limit,
        count=count,
        can_sync_more=effective_limit is None or count < effective_limit,
    )
