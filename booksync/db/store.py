"""
Local book store backed by SQLAlchemy.

This is the durable owner of record state. Tombstoned books
(sync_status = pending_delete) are invisible to every read except
``get_pending_delete``.
"""

from typing import Optional, List, Iterable, Dict, Any

from sqlalchemy import or_

from booksync.db.database import Database
from booksync.db.models import BookRow, SyncRun
from booksync.sync.models import (
    BookRecord,
    SyncResult,
    SyncStatus,
    NEEDS_SYNC_STATUSES,
    utc_now_iso,
)
from booksync.utils.logging import get_logger

logger = get_logger(__name__)

BOOK_FIELDS = (
    "isbn", "title", "authors", "publisher", "published_date", "description",
    "page_count", "thumbnail_url", "categories", "status", "priority", "condition",
    "purchase_date", "purchase_place", "purchase_price", "purchase_reason",
    "tags", "notes", "start_date", "completed_date", "current_page",
    "created_at", "updated_at", "sync_status", "owner_user_id",
)


def _plain(value):
    """Enum members are stored by value."""
    return getattr(value, "value", value)


def book_to_values(book: BookRecord) -> Dict[str, Any]:
    """Column values for a book, excluding the primary key."""
    values = {name: _plain(getattr(book, name)) for name in BOOK_FIELDS}
    values["authors"] = list(book.authors or [])
    values["categories"] = list(book.categories or [])
    values["tags"] = list(book.tags or [])
    return values


def row_to_book(row: BookRow) -> BookRecord:
    """Convert a database row to a BookRecord."""
    return BookRecord(
        id=row.id,
        isbn=row.isbn,
        title=row.title,
        authors=list(row.authors or []),
        publisher=row.publisher,
        published_date=row.published_date,
        description=row.description,
        page_count=row.page_count,
        thumbnail_url=row.thumbnail_url,
        categories=list(row.categories or []),
        status=row.status,
        priority=row.priority,
        condition=row.condition,
        purchase_date=row.purchase_date,
        purchase_place=row.purchase_place,
        purchase_price=row.purchase_price,
        purchase_reason=row.purchase_reason,
        tags=list(row.tags or []),
        notes=row.notes,
        start_date=row.start_date,
        completed_date=row.completed_date,
        current_page=row.current_page,
        created_at=row.created_at,
        updated_at=row.updated_at,
        sync_status=row.sync_status,
        owner_user_id=row.owner_user_id,
    )


def _visible():
    return or_(
        BookRow.sync_status.is_(None),
        BookRow.sync_status != SyncStatus.PENDING_DELETE.value,
    )


class LocalBookStore:
    """
    Keyed table of books on this device.
    """

    def __init__(self, database: Database):
        self.database = database

    def get_all(self) -> List[BookRecord]:
        """All visible books, newest first."""
        with self.database.session() as session:
            rows = session.query(BookRow).filter(_visible()).order_by(
                BookRow.created_at.desc()
            ).all()
            return [row_to_book(row) for row in rows]

    def get(self, book_id: str) -> Optional[BookRecord]:
        """A visible book by id, or None."""
        with self.database.session() as session:
            row = session.query(BookRow).filter(
                BookRow.id == book_id, _visible()
            ).first()
            return row_to_book(row) if row else None

    def upsert(self, book: BookRecord) -> None:
        """Insert or update a book by id."""
        with self.database.session() as session:
            session.merge(BookRow(id=book.id, **book_to_values(book)))

    def update(self, book: BookRecord) -> None:
        """
        Update an existing book by id.

        ``created_at`` is never rewritten. Updating an unknown id is a no-op.
        """
        values = book_to_values(book)
        values.pop("created_at")

        with self.database.session() as session:
            updated = session.query(BookRow).filter(BookRow.id == book.id).update(
                values, synchronize_session=False
            )
            if not updated:
                logger.warning("Update for unknown book ignored", book_id=book.id)

    def delete(self, book_id: str) -> None:
        """Remove a book (or its tombstone) permanently."""
        with self.database.session() as session:
            session.query(BookRow).filter(BookRow.id == book_id).delete(
                synchronize_session=False
            )

    def get_records_needing_sync(self) -> List[BookRecord]:
        """Books that are pending, errored or local-only, oldest change first."""
        statuses = [status.value for status in NEEDS_SYNC_STATUSES]
        with self.database.session() as session:
            rows = session.query(BookRow).filter(
                BookRow.sync_status.in_(statuses)
            ).order_by(BookRow.updated_at.asc()).all()
            return [row_to_book(row) for row in rows]

    def set_sync_status(
        self,
        book_id: str,
        status: SyncStatus,
        owner_user_id: Optional[str] = None
    ) -> None:
        """Set the sync status of one book, optionally claiming ownership."""
        self.set_sync_status_many([book_id], status, owner_user_id)

    def set_sync_status_many(
        self,
        book_ids: Iterable[str],
        status: SyncStatus,
        owner_user_id: Optional[str] = None
    ) -> None:
        """Set the sync status of several books in one statement."""
        ids = list(book_ids)
        if not ids:
            return

        values = {"sync_status": _plain(status)}
        if owner_user_id:
            values["owner_user_id"] = owner_user_id

        with self.database.session() as session:
            session.query(BookRow).filter(BookRow.id.in_(ids)).update(
                values, synchronize_session=False
            )

    def mark_pending_delete(self, book_id: str) -> None:
        """Turn a book into a tombstone awaiting remote deletion."""
        with self.database.session() as session:
            session.query(BookRow).filter(BookRow.id == book_id).update(
                {
                    "sync_status": SyncStatus.PENDING_DELETE.value,
                    "updated_at": utc_now_iso(),
                },
                synchronize_session=False,
            )

    def get_pending_delete(self) -> List[BookRecord]:
        """Tombstones awaiting remote deletion."""
        with self.database.session() as session:
            rows = session.query(BookRow).filter(
                BookRow.sync_status == SyncStatus.PENDING_DELETE.value
            ).all()
            return [row_to_book(row) for row in rows]

    def record_sync_run(self, result: SyncResult, user_id: Optional[str] = None) -> None:
        """Append a completed pass to the sync history."""
        with self.database.session() as session:
            session.add(SyncRun(
                run_id=result.run_id,
                mode=_plain(result.mode),
                user_id=user_id,
                started_at=result.started_at,
                completed_at=result.completed_at,
                status="completed" if result.success else "failed",
                uploaded=result.uploaded,
                downloaded=result.downloaded,
                deleted=result.deleted,
                conflicts=result.conflicts,
                errors=list(result.errors),
            ))

    def get_sync_runs(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Most recent sync passes first."""
        with self.database.session() as session:
            runs = session.query(SyncRun).order_by(
                SyncRun.id.desc()
            ).limit(limit).all()

            return [{
                'run_id': r.run_id,
                'mode': r.mode,
                'user_id': r.user_id,
                'started_at': r.started_at.isoformat() if r.started_at else None,
                'completed_at': r.completed_at.isoformat() if r.completed_at else None,
                'status': r.status,
                'uploaded': r.uploaded,
                'downloaded': r.downloaded,
                'deleted': r.deleted,
                'conflicts': r.conflicts,
                'errors': r.errors or [],
            } for r in runs]
