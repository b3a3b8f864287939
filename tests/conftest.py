"""Test configuration and fixtures"""

from datetime import datetime, timedelta, timezone

import pytest

from booksync.api.base import APIError
from booksync.api.remote import book_to_remote, remote_to_book
from booksync.collection import BookCollection
from booksync.db.database import Database
from booksync.db.store import LocalBookStore
from booksync.sync.engine import SyncEngine
from booksync.sync.models import BookRecord, format_timestamp
from booksync.sync.session import SyncSessionController
from booksync.sync.triggers import SyncTriggers

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def ts(minutes: int = 0) -> str:
    """Timestamp a number of minutes after 2024-01-01T00:00:00Z."""
    return format_timestamp(BASE_TIME + timedelta(minutes=minutes))


class FakeRemote:
    """In-memory stand-in for the remote books table."""

    def __init__(self):
        self.rows = {}
        self.calls = []
        self.access_token = None
        self.fail_fetch = False
        self.fail_upsert = False
        self.fail_delete = False
        self.reachable = True

    def set_access_token(self, access_token):
        self.access_token = access_token

    def is_reachable(self):
        return self.reachable

    def fetch_all(self):
        self.calls.append(("fetch_all",))
        if self.fail_fetch:
            raise APIError("fetch failed", status_code=500)
        rows = sorted(self.rows.values(), key=lambda r: r["created_at"], reverse=True)
        return [remote_to_book(dict(row)) for row in rows]

    def fetch_updated_since(self, since):
        self.calls.append(("fetch_updated_since", since))
        rows = sorted(
            (r for r in self.rows.values() if r["updated_at"] >= since),
            key=lambda r: r["updated_at"]
        )
        return [remote_to_book(dict(row)) for row in rows]

    def upsert_many(self, books, owner_user_id):
        self.calls.append(("upsert_many", [book.id for book in books]))
        if self.fail_upsert:
            raise APIError("upsert failed", status_code=503)
        for book in books:
            self.rows[book.id] = book_to_remote(book, owner_user_id)

    def delete_one(self, book_id):
        self.calls.append(("delete_one", book_id))
        if self.fail_delete:
            raise APIError("Connection error: unreachable")
        self.rows.pop(book_id, None)

    def delete_all(self):
        self.calls.append(("delete_all",))
        self.rows.clear()

    def close(self):
        pass

    def network_calls(self):
        return [call[0] for call in self.calls]


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_book():
    """Factory for BookRecord instances"""
    counter = {"n": 0}

    def factory(**overrides) -> BookRecord:
        counter["n"] += 1
        n = counter["n"]
        values = {
            "id": f"book-{n}",
            "title": f"Test Book {n}",
            "authors": ["Test Author"],
            "isbn": "9784873119038",
            "publisher": "Test Publisher",
            "categories": ["Programming"],
            "tags": [],
            "created_at": ts(n),
            "updated_at": ts(n),
        }
        values.update(overrides)
        return BookRecord(**values)

    return factory


def _memory_database():
    database = Database("sqlite:///:memory:")
    database.init()
    return database


@pytest.fixture
def database():
    """Fresh in-memory database"""
    database = _memory_database()
    yield database
    database.close()


@pytest.fixture
def store(database):
    return LocalBookStore(database)


@pytest.fixture
def other_store():
    """Local store of a second device"""
    database = _memory_database()
    yield LocalBookStore(database)
    database.close()


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def engine(store, remote):
    return SyncEngine(store, remote)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def triggers():
    return SyncTriggers()


@pytest.fixture
def collection(store, engine):
    return BookCollection(store, engine)


@pytest.fixture
def controller(engine, store, collection, triggers, clock):
    controller = SyncSessionController(
        engine,
        store,
        collection,
        triggers,
        clock=clock,
    )
    yield controller
    controller.close()
