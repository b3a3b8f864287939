"""Tests for cloud capacity allocation"""

from booksync.sync.capacity import FREE_CLOUD_SYNC_LIMIT, get_sync_eligible_ids, get_cloud_capacity
from booksync.sync.models import SyncStatus

from conftest import ts


def _books(make_book, count):
    return [make_book(id=f"b{i:02d}", created_at=ts(i), updated_at=ts(i)) for i in range(count)]


class TestEligibleIds:
    """Test eligibility selection"""

    def test_all_eligible_under_limit(self, make_book):
        books = _books(make_book, 3)
        assert get_sync_eligible_ids(books) == {"b00", "b01", "b02"}

    def test_free_tier_cutoff_keeps_oldest(self, make_book):
        books = _books(make_book, 60)
        # Input order must not matter
        books.reverse()

        eligible = get_sync_eligible_ids(books, is_premium=False)

        assert len(eligible) == 50
        assert eligible == {f"b{i:02d}" for i in range(50)}
        assert not eligible & {f"b{i:02d}" for i in range(50, 60)}

    def test_premium_is_unbounded(self, make_book):
        books = _books(make_book, 60)
        assert len(get_sync_eligible_ids(books, is_premium=True)) == 60

    def test_pending_delete_excluded(self, make_book):
        books = _books(make_book, 3)
        books[0].sync_status = SyncStatus.PENDING_DELETE
        assert get_sync_eligible_ids(books) == {"b01", "b02"}

    def test_pending_delete_frees_a_slot(self, make_book):
        books = _books(make_book, 51)
        assert "b50" not in get_sync_eligible_ids(books)

        books[3].sync_status = SyncStatus.PENDING_DELETE
        assert "b50" in get_sync_eligible_ids(books)

    def test_premium_never_smaller(self, make_book):
        for count in (0, 1, 49, 50, 51, 75):
            books = _books(make_book, count)
            free = get_sync_eligible_ids(books, is_premium=False)
            premium = get_sync_eligible_ids(books, is_premium=True)
            assert len(premium) >= len(free)
            assert len(free) == min(count, FREE_CLOUD_SYNC_LIMIT)

    def test_removing_newer_book_keeps_older_eligible(self, make_book):
        books = _books(make_book, 55)
        before = get_sync_eligible_ids(books)

        remaining = [book for book in books if book.id != "b30"]
        after = get_sync_eligible_ids(remaining)

        older = {f"b{i:02d}" for i in range(30)}
        assert older <= before
        assert older <= after
        assert "b50" in after

    def test_custom_limit(self, make_book):
        books = _books(make_book, 5)
        assert get_sync_eligible_ids(books, limit=2) == {"b00", "b01"}


class TestCloudCapacity:
    """Test capacity projection"""

    def test_free_tier_metrics(self, make_book):
        capacity = get_cloud_capacity(_books(make_book, 10))
        assert capacity.limit == 50
        assert capacity.count == 10
        assert capacity.can_sync_more

    def test_full_free_tier(self, make_book):
        capacity = get_cloud_capacity(_books(make_book, 55))
        assert capacity.count == 50
        assert not capacity.can_sync_more

    def test_premium_metrics(self, make_book):
        capacity = get_cloud_capacity(_books(make_book, 55), is_premium=True)
        assert capacity.limit is None
        assert capacity.count == 55
        assert capacity.can_sync_more
        assert capacity.to_dict()["limit"] is None
