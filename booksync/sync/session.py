"""
Sync session controller.

Decides when to run sync passes (sign-in, network recovery, foreground,
manual and periodic triggers) and exposes the current sync state.
"""

import threading
import time
from datetime import datetime, timezone
from typing import Optional, Callable, Dict, Any

from apscheduler.triggers.interval import IntervalTrigger

from booksync.collection import BookCollection
from booksync.db.store import LocalBookStore
from booksync.sync.capacity import FREE_CLOUD_SYNC_LIMIT, CloudCapacity, get_cloud_capacity
from booksync.sync.engine import SyncEngine
from booksync.sync.models import SyncMode, SyncResult, SyncState
from booksync.sync.triggers import AuthSession, SyncTriggers
from booksync.utils.logging import get_logger

logger = get_logger(__name__)

MIN_SYNC_INTERVAL_SECONDS = 30
PERIODIC_JOB_ID = "periodic_sync"


class SyncSessionController:
    """
    Runs sync passes in response to lifecycle triggers.

    At most one pass runs at a time; a trigger arriving meanwhile is
    dropped. Incremental passes started within ``min_sync_interval_seconds``
    of the previous pass are dropped as well. Full and initial passes ignore
    the cooldown.
    """

    def __init__(
        self,
        engine: Optional[SyncEngine],
        store: LocalBookStore,
        collection: BookCollection,
        triggers: SyncTriggers,
        is_premium: bool = False,
        cloud_sync_limit: int = FREE_CLOUD_SYNC_LIMIT,
        min_sync_interval_seconds: float = MIN_SYNC_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        online: bool = True,
    ):
        self.engine = engine
        self.store = store
        self.collection = collection
        self.triggers = triggers
        self.is_premium = is_premium
        self.cloud_sync_limit = cloud_sync_limit
        self.min_sync_interval_seconds = min_sync_interval_seconds
        self.clock = clock

        # Exposed state
        self.sync_state = SyncState.IDLE if online else SyncState.OFFLINE
        self.last_sync_time: Optional[datetime] = None
        self.last_sync_result: Optional[SyncResult] = None
        self.user_id: Optional[str] = None
        self.is_online = online
        self.has_initial_synced = False

        # Guards
        self.sync_in_flight = False
        self.last_sync_started_at: Optional[float] = None
        self._lock = threading.Lock()
        # Bumped on every identity change; a pass from an older session is discarded
        self._session_generation = 0
        self._access_token: Optional[str] = None

        self._scheduler = None
        self._unsubscribers = [
            triggers.on_auth_change(self.handle_auth_change),
            triggers.on_network_change(self.handle_network_change),
            triggers.on_foreground(self.handle_foreground),
        ]

    @property
    def is_sync_enabled(self) -> bool:
        return self.user_id is not None and self.is_online

    @property
    def capacity(self) -> CloudCapacity:
        """Cloud capacity of the cached collection, computed on access."""
        return get_cloud_capacity(
            self.collection.books,
            self.is_premium,
            self.cloud_sync_limit,
        )

    def snapshot(self) -> Dict[str, Any]:
        """Current state in a JSON-friendly shape."""
        return {
            "sync_state": self.sync_state.value,
            "is_online": self.is_online,
            "is_sync_enabled": self.is_sync_enabled,
            "user_id": self.user_id,
            "has_initial_synced": self.has_initial_synced,
            "sync_in_flight": self.sync_in_flight,
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "last_sync_result": self.last_sync_result.to_dict() if self.last_sync_result else None,
            "capacity": self.capacity.to_dict(),
        }

    # Triggers

    def handle_auth_change(self, session: Optional[AuthSession]) -> Optional[SyncResult]:
        """Sign-in starts the session's initial sync; sign-out resets state."""
        if session is None:
            logger.info("Signed out, resetting sync session")
            self.user_id = None
            self.has_initial_synced = False
            self.last_sync_time = None
            self.last_sync_result = None
            self.last_sync_started_at = None
            self.sync_state = SyncState.IDLE
            self.collection.sync_user_id = None
            self._session_generation += 1
            self._apply_access_token(None)
            return None

        if session.user_id != self.user_id:
            self.has_initial_synced = False
            self.last_sync_started_at = None
            self._session_generation += 1

        logger.info("Signed in", user_id=session.user_id)
        self.user_id = session.user_id
        self.collection.sync_user_id = session.user_id
        self._apply_access_token(session.access_token)

        return self._maybe_initial_sync()

    def handle_network_change(self, online: bool) -> Optional[SyncResult]:
        """Going offline flags the state; coming back runs a full sync."""
        was_online = self.is_online
        self.is_online = online

        if not online:
            if not self.sync_in_flight:
                self.sync_state = SyncState.OFFLINE
            return None

        if self.sync_state == SyncState.OFFLINE:
            self.sync_state = SyncState.IDLE

        if not self.has_initial_synced:
            return self._maybe_initial_sync()

        if not was_online:
            logger.info("Network recovered, running full sync")
            return self._run(SyncMode.FULL)
        return None

    def handle_foreground(self) -> Optional[SyncResult]:
        if self.user_id and self.is_online and self.has_initial_synced:
            return self._run(SyncMode.INCREMENTAL)
        return None

    def trigger_sync(self) -> Optional[SyncResult]:
        """User or timer requested an incremental sync."""
        if not self.is_online:
            self._go_offline()
            return None
        return self._run(SyncMode.INCREMENTAL)

    def trigger_full_sync(self) -> Optional[SyncResult]:
        """User requested a full sync."""
        if not self.is_online:
            self._go_offline()
            return None
        return self._run(SyncMode.FULL)

    # Periodic cadence

    def schedule(self, scheduler, interval_minutes: int) -> None:
        """
        Run incremental syncs periodically on an APScheduler scheduler.

        Args:
            scheduler: Running or not-yet-started scheduler
            interval_minutes: Interval between triggers
        """
        scheduler.add_job(
            self.trigger_sync,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id=PERIODIC_JOB_ID,
            name='Periodic book sync',
            replace_existing=True,
        )
        self._scheduler = scheduler
        logger.info("Periodic sync scheduled", interval_minutes=interval_minutes)

    def close(self) -> None:
        """Unsubscribe from all triggers and drop the periodic job."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        if self._scheduler is not None:
            if self._scheduler.get_job(PERIODIC_JOB_ID):
                self._scheduler.remove_job(PERIODIC_JOB_ID)
            self._scheduler = None

    def __enter__(self) -> "SyncSessionController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Internals

    def _go_offline(self) -> None:
        if not self.sync_in_flight:
            self.sync_state = SyncState.OFFLINE

    def _maybe_initial_sync(self) -> Optional[SyncResult]:
        if self.user_id and self.is_online and not self.has_initial_synced:
            return self._run(SyncMode.INITIAL)
        return None

    def _acquire(self, mode: SyncMode) -> bool:
        """Claim the in-flight slot, honouring the cooldown for incremental passes."""
        with self._lock:
            if self.user_id is None or self.engine is None:
                return False

            if self.sync_in_flight:
                logger.debug("Sync already in progress, skipping", mode=mode.value)
                return False

            now = self.clock()
            if (
                mode == SyncMode.INCREMENTAL
                and self.last_sync_started_at is not None
                and now - self.last_sync_started_at < self.min_sync_interval_seconds
            ):
                logger.debug("Sync requested too soon, skipping", mode=mode.value)
                return False

            self.sync_in_flight = True
            self.last_sync_started_at = now
            self.sync_state = SyncState.SYNCING
            return True

    def _run(self, mode: SyncMode) -> Optional[SyncResult]:
        if not self._acquire(mode):
            return None

        user_id = self.user_id
        generation = self._session_generation
        try:
            if mode == SyncMode.INITIAL:
                result = self.engine.perform_initial_sync(user_id)
            elif mode == SyncMode.FULL:
                result = self.engine.perform_full_sync(user_id)
            else:
                result = self.engine.perform_incremental_sync(user_id)

            if mode == SyncMode.INITIAL or result.downloaded > 0 or result.deleted > 0:
                self.collection.reload()
            if mode == SyncMode.INITIAL and generation == self._session_generation:
                self.has_initial_synced = True

            state = SyncState.IDLE if result.success else SyncState.ERROR

        except Exception as e:
            logger.exception("Sync failed", mode=mode.value, error=str(e))
            result = SyncResult.failure(str(e), mode)
            state = SyncState.ERROR

        finally:
            with self._lock:
                self.sync_in_flight = False
                # A sign-in or sign-out during the pass deferred its token
                self.engine.remote.set_access_token(self._access_token)

        if generation != self._session_generation:
            logger.info("Session changed during sync, discarding result", mode=mode.value)
            # The new session's initial sync was refused while this pass ran
            self._maybe_initial_sync()
            return result

        self.last_sync_time = datetime.now(timezone.utc)
        self.last_sync_result = result
        self.sync_state = state if self.is_online else SyncState.OFFLINE
        self._record(result, user_id)
        return result

    def _apply_access_token(self, access_token: Optional[str]) -> None:
        """Switch identities on the remote client, but never under a running pass."""
        if self.engine is None:
            return
        with self._lock:
            self._access_token = access_token
            if not self.sync_in_flight:
                self.engine.remote.set_access_token(access_token)

    def _record(self, result: SyncResult, user_id: str) -> None:
        try:
            self.store.record_sync_run(result, user_id)
        except Exception as e:
            logger.error("Failed to save sync run", run_id=result.run_id, error=str(e))
