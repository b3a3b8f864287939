"""Tests for the sync session controller"""

from unittest.mock import Mock

from apscheduler.schedulers.background import BackgroundScheduler

from booksync.api.remote import book_to_remote
from booksync.sync.models import SyncMode, SyncState, SyncStatus
from booksync.sync.session import PERIODIC_JOB_ID, SyncSessionController
from booksync.sync.triggers import AuthSession

USER = AuthSession(user_id="user-1", access_token="token-1")


def _sign_in(triggers, session=USER):
    triggers.auth.emit(session)


class TestInitialSync:
    """Test the once-per-session initial sync"""

    def test_runs_on_sign_in(self, controller, triggers, store, remote, make_book):
        store.upsert(make_book(id="local", sync_status=None))

        _sign_in(triggers)

        assert controller.has_initial_synced
        assert controller.sync_state == SyncState.IDLE
        assert controller.last_sync_result.mode == SyncMode.INITIAL
        assert controller.last_sync_time is not None
        assert remote.access_token == "token-1"
        assert "local" in remote.rows

    def test_refreshes_cache(self, controller, triggers, collection, remote, make_book):
        remote.rows["r1"] = book_to_remote(make_book(id="r1"), "user-1")

        _sign_in(triggers)

        assert [b.id for b in collection.books] == ["r1"]

    def test_waits_for_network(self, controller, triggers, remote):
        triggers.network.emit(False)
        _sign_in(triggers)

        assert not controller.has_initial_synced
        assert controller.sync_state == SyncState.OFFLINE
        assert remote.calls == []

        triggers.network.emit(True)

        assert controller.has_initial_synced
        assert controller.sync_state == SyncState.IDLE

    def test_runs_only_once(self, controller, triggers, remote):
        _sign_in(triggers)
        _sign_in(triggers)

        assert remote.network_calls().count("fetch_all") == 1

    def test_not_marked_done_when_it_raises(self, controller, triggers, engine):
        engine.perform_initial_sync = Mock(side_effect=RuntimeError("disk full"))

        _sign_in(triggers)

        assert not controller.has_initial_synced
        assert controller.sync_state == SyncState.ERROR
        assert not controller.last_sync_result.success
        assert controller.sync_in_flight is False


class TestSignOut:
    """Test session reset"""

    def test_resets_state_but_keeps_data(self, controller, triggers, store, make_book):
        store.upsert(make_book(id="kept"))
        _sign_in(triggers)

        triggers.auth.emit(None)

        assert controller.user_id is None
        assert not controller.has_initial_synced
        assert controller.sync_state == SyncState.IDLE
        assert controller.last_sync_result is None
        assert controller.last_sync_time is None
        assert not controller.is_sync_enabled
        assert store.get("kept") is not None

    def test_sign_in_again_runs_initial_sync(self, controller, triggers, remote):
        _sign_in(triggers)
        triggers.auth.emit(None)
        _sign_in(triggers)

        assert controller.has_initial_synced
        assert remote.network_calls().count("fetch_all") == 2


class TestSessionChangeDuringSync:
    """Test sign-out and user switches while a pass is running"""

    OTHER_USER = AuthSession(user_id="user-2", access_token="token-2")

    def _switch_during_first_pass(self, engine, triggers, remote, *sessions):
        original = engine.perform_initial_sync
        seen = {"users": [], "tokens": []}

        def switching(user_id):
            seen["users"].append(user_id)
            if len(seen["users"]) == 1:
                for session in sessions:
                    triggers.auth.emit(session)
                seen["tokens"].append(remote.access_token)
            return original(user_id)

        engine.perform_initial_sync = switching
        return seen

    def test_new_user_gets_own_initial_sync(self, controller, triggers, engine, remote):
        seen = self._switch_during_first_pass(engine, triggers, remote, None, self.OTHER_USER)

        _sign_in(triggers)

        assert seen["users"] == ["user-1", "user-2"]
        assert controller.user_id == "user-2"
        assert controller.has_initial_synced
        assert controller.last_sync_result.mode == SyncMode.INITIAL
        assert remote.access_token == "token-2"

    def test_token_is_not_swapped_under_running_pass(self, controller, triggers, engine, remote):
        seen = self._switch_during_first_pass(engine, triggers, remote, None, self.OTHER_USER)

        _sign_in(triggers)

        assert seen["tokens"] == ["token-1"]

    def test_sign_out_discards_result(self, controller, triggers, engine, remote, store):
        self._switch_during_first_pass(engine, triggers, remote, None)

        _sign_in(triggers)

        assert controller.user_id is None
        assert not controller.has_initial_synced
        assert controller.last_sync_result is None
        assert controller.sync_state == SyncState.IDLE
        assert remote.access_token is None
        assert store.get_sync_runs() == []


class TestTriggers:
    """Test trigger policies"""

    def test_interval_guard(self, controller, triggers, clock, store, remote, make_book):
        _sign_in(triggers)
        clock.advance(60)
        store.upsert(make_book(sync_status=SyncStatus.PENDING))

        first = controller.trigger_sync()
        calls_after_first = len(remote.calls)
        clock.advance(5)
        store.upsert(make_book(sync_status=SyncStatus.PENDING))
        second = controller.trigger_sync()

        assert first is not None
        assert second is None
        assert len(remote.calls) == calls_after_first

    def test_sync_allowed_after_cooldown(self, controller, triggers, clock):
        _sign_in(triggers)
        clock.advance(31)

        assert controller.trigger_sync() is not None

    def test_cooldown_counts_from_initial_sync(self, controller, triggers, clock):
        _sign_in(triggers)
        clock.advance(10)

        assert controller.trigger_sync() is None

    def test_full_sync_bypasses_cooldown(self, controller, triggers, clock):
        _sign_in(triggers)
        clock.advance(1)

        result = controller.trigger_full_sync()

        assert result is not None
        assert result.mode == SyncMode.FULL

    def test_concurrent_trigger_is_dropped(self, controller, triggers, engine, clock):
        _sign_in(triggers)
        clock.advance(60)
        nested = {}

        def reentrant(user_id):
            nested["result"] = controller.trigger_full_sync()
            return original(user_id)

        original = engine.perform_incremental_sync
        engine.perform_incremental_sync = reentrant

        assert controller.trigger_sync() is not None
        assert nested["result"] is None

    def test_offline_short_circuits(self, controller, triggers, clock, store, remote, make_book):
        _sign_in(triggers)
        clock.advance(60)
        book = make_book(sync_status=SyncStatus.PENDING)
        store.upsert(book)
        calls = len(remote.calls)

        triggers.network.emit(False)

        assert controller.trigger_sync() is None
        assert controller.trigger_full_sync() is None
        assert controller.sync_state == SyncState.OFFLINE
        assert len(remote.calls) == calls
        assert store.get(book.id).sync_status == SyncStatus.PENDING

    def test_network_recovery_runs_full_sync(self, controller, triggers, clock):
        _sign_in(triggers)
        clock.advance(1)

        triggers.network.emit(False)
        triggers.network.emit(True)

        assert controller.last_sync_result.mode == SyncMode.FULL
        assert controller.sync_state == SyncState.IDLE

    def test_network_online_twice_does_not_resync(self, controller, triggers, remote):
        _sign_in(triggers)
        calls = len(remote.calls)

        triggers.network.emit(True)

        assert len(remote.calls) == calls

    def test_foreground_runs_incremental(self, controller, triggers, clock):
        _sign_in(triggers)
        clock.advance(60)

        triggers.foreground.emit()

        assert controller.last_sync_result.mode == SyncMode.INCREMENTAL

    def test_foreground_before_initial_sync_is_ignored(self, controller, triggers, remote):
        triggers.network.emit(False)
        _sign_in(triggers)
        triggers.foreground.emit()

        assert controller.last_sync_result is None
        assert remote.calls == []

    def test_signed_out_trigger_is_noop(self, controller, remote):
        assert controller.trigger_sync() is None
        assert controller.trigger_full_sync() is None
        assert remote.calls == []

    def test_errors_surface_as_error_state(self, controller, triggers, clock, store, remote, make_book):
        _sign_in(triggers)
        clock.advance(60)
        store.upsert(make_book(sync_status=SyncStatus.PENDING))
        remote.fail_upsert = True

        result = controller.trigger_sync()

        assert not result.success
        assert controller.sync_state == SyncState.ERROR
        assert controller.last_sync_result is result

    def test_runs_are_recorded(self, controller, triggers, store):
        _sign_in(triggers)

        runs = store.get_sync_runs()
        assert len(runs) == 1
        assert runs[0]["mode"] == "initial"
        assert runs[0]["user_id"] == "user-1"


class TestExposedState:
    """Test derived values"""

    def test_is_sync_enabled(self, controller, triggers):
        assert not controller.is_sync_enabled
        _sign_in(triggers)
        assert controller.is_sync_enabled
        triggers.network.emit(False)
        assert not controller.is_sync_enabled

    def test_capacity_follows_collection(self, controller, collection):
        assert controller.capacity.count == 0
        collection.add_book("One")
        collection.add_book("Two")

        capacity = controller.capacity
        assert capacity.count == 2
        assert capacity.limit == 50
        assert capacity.can_sync_more

    def test_snapshot(self, controller, triggers):
        _sign_in(triggers)
        snapshot = controller.snapshot()

        assert snapshot["sync_state"] == "idle"
        assert snapshot["is_sync_enabled"] is True
        assert snapshot["last_sync_result"]["mode"] == "initial"
        assert snapshot["capacity"]["limit"] == 50


class TestLifecycle:
    """Test subscription and scheduling lifecycle"""

    def test_close_unsubscribes(self, engine, store, collection, triggers):
        controller = SyncSessionController(engine, store, collection, triggers)
        assert triggers.auth.subscriber_count == 1

        with controller:
            pass

        assert triggers.auth.subscriber_count == 0
        assert triggers.network.subscriber_count == 0
        assert triggers.foreground.subscriber_count == 0

    def test_schedule_adds_and_removes_periodic_job(self, controller):
        scheduler = BackgroundScheduler()
        controller.schedule(scheduler, 15)

        assert scheduler.get_job(PERIODIC_JOB_ID) is not None

        controller.close()
        assert scheduler.get_job(PERIODIC_JOB_ID) is None

    def test_without_engine_nothing_runs(self, store, collection, triggers):
        controller = SyncSessionController(None, store, collection, triggers)
        triggers.auth.emit(USER)

        assert controller.user_id == "user-1"
        assert not controller.has_initial_synced
        assert controller.trigger_full_sync() is None
        controller.close()
