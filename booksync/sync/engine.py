"""
Main sync engine for the book sync service.

Reconciles the local book store with the remote store.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, List, Set

from booksync.api.remote import RemoteBookClient
from booksync.db.store import LocalBookStore
from booksync.sync.capacity import FREE_CLOUD_SYNC_LIMIT, get_sync_eligible_ids
from booksync.sync.conflict import resolve_conflict, is_same_version
from booksync.sync.models import (
    BookRecord,
    ConflictWinner,
    SyncMode,
    SyncResult,
    SyncStatus,
)
from booksync.utils.logging import get_logger, SyncLogger

logger = get_logger(__name__)


def _owned_by(book: BookRecord, user_id: str) -> bool:
    """Books of another identity are never touched by this user's passes."""
    return not book.owner_user_id or book.owner_user_id == user_id


class SyncEngine:
    """
    Sync engine that runs full, incremental and initial passes.

    Remote failures are recorded on the result and never abort a pass.
    Local store errors propagate to the caller. The engine holds no locks;
    callers must not run two passes at once.
    """

    def __init__(
        self,
        store: LocalBookStore,
        remote: RemoteBookClient,
        is_premium: bool = False,
        cloud_sync_limit: int = FREE_CLOUD_SYNC_LIMIT,
    ):
        """
        Initialize sync engine.

        Args:
            store: Local book store
            remote: Remote book client
            is_premium: Whether the account has unbounded cloud capacity
            cloud_sync_limit: Free-tier capacity
        """
        self.store = store
        self.remote = remote
        self.is_premium = is_premium
        self.cloud_sync_limit = cloud_sync_limit

    def _start(self, mode: SyncMode, user_id: str):
        run_id = str(uuid.uuid4())[:8]
        sync_logger = SyncLogger(run_id)
        result = SyncResult(
            mode=mode,
            run_id=run_id,
            started_at=datetime.now(timezone.utc),
        )
        sync_logger.info("Starting sync pass", mode=mode.value, user_id=user_id)
        return result, sync_logger

    def _finish(self, result: SyncResult, sync_logger: SyncLogger) -> SyncResult:
        result.success = not result.errors
        result.completed_at = datetime.now(timezone.utc)
        sync_logger.info(
            "Sync pass completed",
            mode=result.mode.value,
            success=result.success,
            uploaded=result.uploaded,
            downloaded=result.downloaded,
            deleted=result.deleted,
            conflicts=result.conflicts,
            errors=len(result.errors),
        )
        return result

    def _eligible_ids(self, books: List[BookRecord]) -> Set[str]:
        return get_sync_eligible_ids(books, self.is_premium, self.cloud_sync_limit)

    def perform_full_sync(self, user_id: str) -> SyncResult:
        """
        Reconcile the whole collection in both directions.

        Args:
            user_id: Signed-in identity

        Returns:
            SyncResult with pass details
        """
        result, sync_logger = self._start(SyncMode.FULL, user_id)
        self._flush_pending_deletes(user_id, result, sync_logger)
        pending_delete_ids = {book.id for book in self.store.get_pending_delete()}

        all_local = self.store.get_all()
        local_books = [book for book in all_local if _owned_by(book, user_id)]
        foreign_ids = {book.id for book in all_local if not _owned_by(book, user_id)}
        local_by_id = {book.id: book for book in local_books}

        # A failed download must not block uploads
        remote_books: List[BookRecord] = []
        try:
            remote_books = self.remote.fetch_all()
        except Exception as e:
            sync_logger.error("Failed to fetch books from remote", error=str(e))
            result.errors.append(f"Failed to fetch books from remote: {e}")
        remote_by_id = {book.id: book for book in remote_books}

        # Remote-only rows are downloaded below and occupy cloud slots already
        remote_only = [
            book for book in remote_books
            if book.id not in local_by_id
            and book.id not in pending_delete_ids
            and book.id not in foreign_ids
        ]
        eligible = self._eligible_ids(local_books + remote_only)

        sync_logger.debug(
            "Loaded collections",
            local=len(local_books),
            remote=len(remote_books),
            eligible=len(eligible),
        )

        to_upload: List[BookRecord] = []
        already_synced: List[str] = []
        for local in local_books:
            remote = remote_by_id.get(local.id)

            if remote is not None:
                if is_same_version(local, remote):
                    if local.sync_status != SyncStatus.SYNCED:
                        already_synced.append(local.id)
                    continue
                if resolve_conflict(local, remote) != ConflictWinner.LOCAL:
                    continue

            if local.id not in eligible:
                if local.sync_status != SyncStatus.LOCAL_ONLY:
                    self.store.set_sync_status(local.id, SyncStatus.LOCAL_ONLY)
                continue

            to_upload.append(local)
            if remote is not None:
                result.conflicts += 1

        self.store.set_sync_status_many(already_synced, SyncStatus.SYNCED, user_id)
        self._upload(to_upload, user_id, result, sync_logger)

        for remote in remote_books:
            if remote.id in pending_delete_ids or remote.id in foreign_ids:
                continue

            local = local_by_id.get(remote.id)
            incoming = self._claimed(remote, user_id)

            if local is None:
                self.store.upsert(incoming)
                result.downloaded += 1
            elif is_same_version(local, remote):
                continue
            elif resolve_conflict(local, remote) == ConflictWinner.REMOTE:
                self.store.update(incoming)
                result.downloaded += 1
                result.conflicts += 1

        return self._finish(result, sync_logger)

    def perform_incremental_sync(self, user_id: str) -> SyncResult:
        """
        Push locally changed books without downloading anything.

        Args:
            user_id: Signed-in identity

        Returns:
            SyncResult with pass details
        """
        result, sync_logger = self._start(SyncMode.INCREMENTAL, user_id)
        self._flush_pending_deletes(user_id, result, sync_logger)

        needing_sync = [
            book for book in self.store.get_records_needing_sync()
            if _owned_by(book, user_id)
        ]

        to_upload: List[BookRecord] = []
        if needing_sync:
            visible = [book for book in self.store.get_all() if _owned_by(book, user_id)]
            eligible = self._eligible_ids(visible)

            for book in needing_sync:
                if book.id in eligible:
                    to_upload.append(book)
                elif book.sync_status != SyncStatus.LOCAL_ONLY:
                    self.store.set_sync_status(book.id, SyncStatus.LOCAL_ONLY)

        self._upload(to_upload, user_id, result, sync_logger)
        return self._finish(result, sync_logger)

    def perform_initial_sync(self, user_id: str) -> SyncResult:
        """First pass after sign-in; merges the local collection with the remote one."""
        result = self.perform_full_sync(user_id)
        result.mode = SyncMode.INITIAL
        return result

    def delete_with_sync(self, book_id: str) -> None:
        """
        Delete a book locally and remotely.

        The book disappears locally right away. A failing remote delete
        leaves a tombstone that the next pass retries; it is never raised.
        """
        self.store.mark_pending_delete(book_id)

        try:
            self.remote.delete_one(book_id)
        except Exception as e:
            logger.warning(
                "Failed to delete book from remote, will retry on next sync",
                book_id=book_id,
                error=str(e)
            )
            return

        try:
            self.store.delete(book_id)
        except Exception as e:
            # The remote copy is gone; the tombstone is cleaned up by the next pass
            logger.warning("Failed to remove tombstone", book_id=book_id, error=str(e))

    def _claimed(self, book: BookRecord, user_id: str) -> BookRecord:
        book.sync_status = SyncStatus.SYNCED
        book.owner_user_id = user_id
        return book

    def _upload(
        self,
        books: List[BookRecord],
        user_id: str,
        result: SyncResult,
        sync_logger: SyncLogger
    ) -> None:
        """
        Upload books in a single request.

        The whole batch is marked synced on success and error on failure.
        """
        if not books:
            return

        ids = [book.id for book in books]
        try:
            self.remote.upsert_many(books, user_id)
        except Exception as e:
            sync_logger.error("Failed to upload books", count=len(books), error=str(e))
            result.errors.append(f"Failed to upload books: {e}")
            self.store.set_sync_status_many(ids, SyncStatus.ERROR, user_id)
            return

        result.uploaded += len(books)
        self.store.set_sync_status_many(ids, SyncStatus.SYNCED, user_id)

    def _flush_pending_deletes(
        self,
        user_id: str,
        result: SyncResult,
        sync_logger: SyncLogger
    ) -> None:
        """Retry remote deletion of tombstones left by earlier failed deletes."""
        for book in self.store.get_pending_delete():
            if not _owned_by(book, user_id):
                continue

            try:
                self.remote.delete_one(book.id)
            except Exception as e:
                sync_logger.warning("Failed to delete book from remote", book_id=book.id, error=str(e))
                result.errors.append(f"Failed to delete '{book.title}' from remote: {e}")
                continue

            self.store.delete(book.id)
            result.deleted += 1


def create_sync_engine(
    store: LocalBookStore,
    remote: Optional[RemoteBookClient],
    is_premium: bool = False,
    cloud_sync_limit: int = FREE_CLOUD_SYNC_LIMIT,
) -> Optional[SyncEngine]:
    """
    Create a sync engine when a remote store is available.

    Returns:
        SyncEngine if a remote client is configured, None otherwise
    """
    if remote is None:
        logger.warning("Remote store not configured, cloud sync disabled")
        return None
    return SyncEngine(store, remote, is_premium, cloud_sync_limit)
