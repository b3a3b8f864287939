"""
Remote book store client.

Talks to a PostgREST endpoint (as exposed by Supabase) holding a ``books``
table. Row-level security on the backend scopes every query to the
signed-in identity.
"""

from typing import Optional, List, Dict, Any

from booksync.api.base import BaseClient, APIError
from booksync.sync.models import BookRecord, SyncStatus
from booksync.utils.logging import get_logger

logger = get_logger(__name__)

BOOKS_ENDPOINT = "/rest/v1/books"

# Never a real id; used to express "every row" to PostgREST
NIL_UUID = "00000000-0000-0000-0000-000000000000"


def book_to_remote(book: BookRecord, owner_user_id: str) -> Dict[str, Any]:
    """Convert a local book to a remote row."""
    return {
        "id": book.id,
        "owner_user_id": owner_user_id,
        "isbn": book.isbn,
        "title": book.title,
        "authors": list(book.authors),
        "publisher": book.publisher,
        "published_date": book.published_date,
        "description": book.description,
        "page_count": book.page_count,
        "thumbnail_url": book.thumbnail_url,
        "categories": list(book.categories or []),
        "status": book.status.value,
        "priority": book.priority.value,
        "condition": book.condition.value if book.condition else "new",
        "purchase_date": book.purchase_date,
        "purchase_place": book.purchase_place,
        "purchase_price": book.purchase_price,
        "purchase_reason": book.purchase_reason,
        "tags": list(book.tags),
        "notes": book.notes,
        "start_date": book.start_date,
        "completed_date": book.completed_date,
        "current_page": book.current_page,
        "created_at": book.created_at,
        "updated_at": book.updated_at,
    }


def remote_to_book(data: Dict[str, Any]) -> BookRecord:
    """Convert a remote row to a local book, marked as synced."""
    return BookRecord(
        id=data["id"],
        isbn=data.get("isbn"),
        title=data["title"],
        authors=list(data.get("authors") or []),
        publisher=data.get("publisher"),
        published_date=data.get("published_date"),
        description=data.get("description"),
        page_count=data.get("page_count"),
        thumbnail_url=data.get("thumbnail_url"),
        categories=list(data.get("categories") or []),
        status=data.get("status") or "unread",
        priority=data.get("priority") or "medium",
        condition=data.get("condition") or "new",
        purchase_date=data.get("purchase_date"),
        purchase_place=data.get("purchase_place"),
        purchase_price=data.get("purchase_price"),
        purchase_reason=data.get("purchase_reason"),
        tags=list(data.get("tags") or []),
        notes=data.get("notes"),
        start_date=data.get("start_date"),
        completed_date=data.get("completed_date"),
        current_page=data.get("current_page"),
        created_at=data["created_at"],
        updated_at=data["updated_at"],
        sync_status=SyncStatus.SYNCED,
        owner_user_id=data.get("owner_user_id"),
    )


class RemoteBookClient(BaseClient):
    """
    Client for the remote books table.

    The client never retries; the sync engine decides when to try again.
    """

    def __init__(self, base_url: str, api_key: str, timeout: int = 30):
        """
        Initialize remote client.

        Args:
            base_url: Project URL (e.g., https://xyz.supabase.co)
            api_key: Publishable API key
            timeout: Request timeout in seconds
        """
        super().__init__(base_url, timeout=timeout, max_retries=0)
        self.api_key = api_key

        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    def set_access_token(self, access_token: Optional[str]) -> None:
        """Act on behalf of a signed-in user, or anonymously when None."""
        self.session.headers["Authorization"] = f"Bearer {access_token or self.api_key}"

    def is_reachable(self) -> bool:
        """
        Probe the backend.

        Any HTTP response counts as reachable; only transport failures
        (connection refused, DNS, timeout) mean offline.
        """
        try:
            self.get(BOOKS_ENDPOINT, params={"select": "id", "limit": 1})
            return True
        except APIError as e:
            if e.is_transport_error:
                logger.debug("Remote store unreachable", error=str(e))
                return False
            return True

    def fetch_all(self) -> List[BookRecord]:
        """
        Get every book of the current user, newest first.

        Returns:
            List of books
        """
        rows = self.get(
            BOOKS_ENDPOINT,
            params={"select": "*", "order": "created_at.desc"}
        )
        return [remote_to_book(row) for row in rows]

    def fetch_updated_since(self, since: str) -> List[BookRecord]:
        """
        Get books updated at or after a timestamp, oldest change first.

        Args:
            since: ISO-8601 timestamp
        """
        rows = self.get(
            BOOKS_ENDPOINT,
            params={
                "select": "*",
                "updated_at": f"gte.{since}",
                "order": "updated_at.asc",
            }
        )
        return [remote_to_book(row) for row in rows]

    def fetch_one(self, book_id: str) -> Optional[BookRecord]:
        """Get a single book, or None when it does not exist remotely."""
        rows = self.get(
            BOOKS_ENDPOINT,
            params={"select": "*", "id": f"eq.{book_id}"}
        )
        if not rows:
            return None
        return remote_to_book(rows[0])

    def upsert_many(self, books: List[BookRecord], owner_user_id: str) -> None:
        """
        Insert or update books in one request, keyed by id.

        Args:
            books: Books to upload
            owner_user_id: Identity the rows belong to
        """
        if not books:
            return

        self.post(
            BOOKS_ENDPOINT,
            params={"on_conflict": "id"},
            json=[book_to_remote(book, owner_user_id) for book in books],
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )
        logger.debug("Upserted books to remote", count=len(books))

    def delete_one(self, book_id: str) -> None:
        """Delete a single book."""
        self.delete(BOOKS_ENDPOINT, params={"id": f"eq.{book_id}"})

    def delete_all(self) -> None:
        """Delete every book of the current user."""
        self.delete(BOOKS_ENDPOINT, params={"id": f"neq.{NIL_UUID}"})
