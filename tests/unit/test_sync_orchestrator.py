"""
Unit tests for the sync orchestrator.

Tests cover:
- Past years served offline once cached
- Current year fetching only what is newer than the cache
- ALL_TIME bypassing the cache
- Pagination, the page cap and remote errors
- Single-page passthrough with background archiving
"""

import threading
from datetime import datetime, timezone

import pytest

from activity_archive.connectors import InMemoryActivityFetcher
from activity_archive.core.connector import ActivityFetcher, FetchParams
from activity_archive.core.exceptions import ArchiveClosedError, RemoteFetchError
from activity_archive.core.models import ALL_TIME, year_window
from activity_archive.runner import BackgroundArchiver, SyncConfig, SyncOrchestrator

from conftest import FIXED_NOW, TEST_ACCOUNT_ID, TEST_KEY, days_ago


TOKEN = "access-token"


def _epoch(value: str) -> int:
    return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())


class StaticFetcher(ActivityFetcher):
    """Returns one fixed page, then an empty page."""

    def __init__(self, page):
        self.page = page
        self.calls = []

    def fetch(self, access_token, params):
        self.calls.append(params)
        return list(self.page) if params.page == 1 else []

    def get_name(self):
        return "static"


class _GatedStore:
    """Reads pass through; writes wait until released."""

    def __init__(self, store):
        self.store = store
        self.release = threading.Event()

    def get_cached(self, account_id, key_string, month=None):
        return self.store.get_cached(account_id, key_string, month=month)

    def archive(self, account_id, records, key_string):
        self.release.wait(timeout=5)
        self.store.archive(account_id, records, key_string)


@pytest.fixture
def archiver(store):
    background = BackgroundArchiver(store)
    yield background
    background.close()


@pytest.fixture
def make_orchestrator(store, archiver, fixed_clock):
    def _make(fetcher, config=None):
        return SyncOrchestrator(
            store=store,
            fetcher=fetcher,
            archiver=archiver,
            config=config,
            clock=fixed_clock,
        )
    return _make


ACTIVITIES_2023 = [
    {"id": 101, "start_date": "2023-03-05T07:00:00Z", "name": "Spring"},
    {"id": 102, "start_date": "2023-07-14T18:30:00Z", "name": "Summer"},
    {"id": 103, "start_date": "2023-12-31T22:00:00Z", "name": "Last of year"},
]

ACTIVITIES_2024 = [
    {"id": 201, "start_date": "2024-01-20T09:00:00Z", "name": "January"},
    {"id": 202, "start_date": "2024-03-02T09:00:00Z", "name": "March"},
    {"id": 203, "start_date": days_ago(3), "name": "This week"},
]


@pytest.mark.unit
class TestPastYear:
    """Past years are offline-first."""

    def test_cache_hit_makes_no_remote_call(self, store, make_orchestrator):
        store.archive(TEST_ACCOUNT_ID, ACTIVITIES_2023, TEST_KEY)
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2023 + [{"id": 999, "start_date": "2023-05-01T00:00:00Z"}])

        result = make_orchestrator(fetcher).get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2023)

        assert fetcher.calls == []
        assert [r["id"] for r in result] == [103, 102, 101]

    def test_cache_miss_fetches_year_window(self, make_orchestrator):
        fetcher = InMemoryActivityFetcher(
            ACTIVITIES_2023
            + [{"id": 1, "start_date": "2022-06-01T00:00:00Z"}]
            + ACTIVITIES_2024
        )

        result = make_orchestrator(fetcher).get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2023)

        assert [r["id"] for r in result] == [103, 102, 101]
        start, end = year_window(2023)
        assert fetcher.calls[0] == FetchParams(after=start, before=end, page=1, per_page=100)

    def test_fetched_year_is_archived_then_served_offline(self, store, archiver, make_orchestrator):
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2023)
        orchestrator = make_orchestrator(fetcher)

        orchestrator.get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2023)
        assert archiver.drain(timeout=5)
        calls_after_first = len(fetcher.calls)

        assert store.list_months(TEST_ACCOUNT_ID) == ["2023-03", "2023-07", "2023-12"]

        second = orchestrator.get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2023)
        assert len(fetcher.calls) == calls_after_first
        assert [r["id"] for r in second] == [103, 102, 101]

    def test_unreadable_month_skipped(self, store, cache_root, make_orchestrator):
        store.archive(TEST_ACCOUNT_ID, [{"id": 1, "start_date": "2023-01-05T00:00:00Z"}], TEST_KEY)
        (cache_root / str(TEST_ACCOUNT_ID) / "2023-03.bin").mkdir()
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2023)

        result = make_orchestrator(fetcher).get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2023)

        assert fetcher.calls == []
        assert [r["id"] for r in result] == [1]

    def test_caller_edits_not_archived(self, store, fixed_clock):
        gated = _GatedStore(store)
        archiver = BackgroundArchiver(gated, max_workers=1)
        fetcher = InMemoryActivityFetcher([{"id": 7, "start_date": "2023-04-01T00:00:00Z", "name": "src"}])
        try:
            orchestrator = SyncOrchestrator(gated, fetcher, archiver=archiver, clock=fixed_clock)
            result = orchestrator.get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2023)
            result[0]["name"] = "edited-by-caller"
            gated.release.set()
            assert archiver.drain(timeout=5)
        finally:
            gated.release.set()
            archiver.close()

        assert store.get_cached(TEST_ACCOUNT_ID, TEST_KEY)[0]["name"] == "src"

    def test_other_key_misses_cache(self, store, make_orchestrator):
        store.archive(TEST_ACCOUNT_ID, ACTIVITIES_2023, "old-key")
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2023)

        result = make_orchestrator(fetcher).get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2023)

        assert len(fetcher.calls) >= 1
        assert len(result) == 3


@pytest.mark.unit
class TestCurrentYear:
    """The current year combines cached months with a narrowed remote fetch."""

    def test_after_bound_advances_to_latest_cached(self, store, make_orchestrator):
        store.archive(TEST_ACCOUNT_ID, ACTIVITIES_2024[:2], TEST_KEY)
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2023 + ACTIVITIES_2024)

        result = make_orchestrator(fetcher).get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2024)

        assert fetcher.calls[0].after == _epoch("2024-03-02T09:00:00Z")
        assert fetcher.calls[0].before == year_window(2024)[1]
        assert [r["id"] for r in result] == [203, 202, 201]

    def test_empty_cache_uses_year_start(self, make_orchestrator):
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2024)

        result = make_orchestrator(fetcher).get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2024)

        assert fetcher.calls[0].after == year_window(2024)[0]
        assert len(result) == 3

    def test_after_bound_never_before_year_start(self, store, make_orchestrator):
        # Lands in the 2024-01 partition by its own offset, but is a 2023 instant in UTC.
        early = {"id": 300, "start_date": "2024-01-01T00:30:00+01:00"}
        store.archive(TEST_ACCOUNT_ID, [early], TEST_KEY)
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2024)

        result = make_orchestrator(fetcher).get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2024)

        assert fetcher.calls[0].after == year_window(2024)[0]
        assert {r["id"] for r in result} == {201, 202, 203, 300}

    def test_fresh_record_wins_over_cached(self, store, make_orchestrator):
        store.archive(
            TEST_ACCOUNT_ID,
            [{"id": 201, "start_date": "2024-01-20T09:00:00Z", "name": "stale"}],
            TEST_KEY,
        )
        fetcher = StaticFetcher([{"id": 201, "start_date": "2024-01-20T09:00:00Z", "name": "renamed"}])

        result = make_orchestrator(fetcher).get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2024)

        assert result == [{"id": 201, "start_date": "2024-01-20T09:00:00Z", "name": "renamed"}]

    def test_recent_records_returned_but_not_archived(self, store, archiver, make_orchestrator):
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2024)

        make_orchestrator(fetcher).get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2024)
        archiver.drain(timeout=5)

        cached_ids = sorted(r["id"] for r in store.get_cached(TEST_ACCOUNT_ID, TEST_KEY))
        assert cached_ids == [201, 202]


@pytest.mark.unit
class TestAllTimeAndFuture:
    """ALL_TIME and future years always go to the remote source."""

    def test_all_time_bypasses_cache(self, store, make_orchestrator):
        store.archive(TEST_ACCOUNT_ID, [{"id": 5, "start_date": "2020-01-01T00:00:00Z"}], TEST_KEY)
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2023 + ACTIVITIES_2024)

        result = make_orchestrator(fetcher).get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, ALL_TIME)

        assert fetcher.calls[0].after == 0
        assert fetcher.calls[0].before == int(FIXED_NOW.timestamp())
        assert 5 not in {r["id"] for r in result}
        assert [r["id"] for r in result] == [203, 202, 201, 103, 102, 101]

    def test_future_year_is_remote_only(self, make_orchestrator):
        fetcher = InMemoryActivityFetcher([{"id": 1, "start_date": "2025-02-01T00:00:00Z"}])

        result = make_orchestrator(fetcher).get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2025)

        assert fetcher.calls[0].after == year_window(2025)[0]
        assert [r["id"] for r in result] == [1]

    def test_negative_year_rejected(self, make_orchestrator):
        with pytest.raises(ValueError):
            make_orchestrator(InMemoryActivityFetcher()).get_year_activities(
                TEST_ACCOUNT_ID, TOKEN, TEST_KEY, -1
            )


@pytest.mark.unit
class TestPaging:
    """Remote pagination behaviour."""

    def test_pages_until_empty(self, make_orchestrator):
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2023)

        result = make_orchestrator(fetcher, SyncConfig(page_size=2)).get_year_activities(
            TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2023
        )

        assert [c.page for c in fetcher.calls] == [1, 2, 3]
        assert all(c.per_page == 2 for c in fetcher.calls)
        assert len(result) == 3

    def test_page_cap_stops_endless_source(self, make_orchestrator):
        fetcher = InMemoryActivityFetcher(endless=True)

        result = make_orchestrator(fetcher, SyncConfig(page_size=1, max_pages=3)).get_year_activities(
            TEST_ACCOUNT_ID, TOKEN, TEST_KEY, ALL_TIME
        )

        assert len(fetcher.calls) == 3
        assert sorted(r["id"] for r in result) == [1, 2, 3]

    def test_remote_error_propagates(self, store, archiver, make_orchestrator):
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2023, fail_on_pages=[2])

        with pytest.raises(RemoteFetchError):
            make_orchestrator(fetcher, SyncConfig(page_size=1)).get_year_activities(
                TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2023
            )

        # The page fetched before the failure is still archived.
        archiver.drain(timeout=5)
        assert [r["id"] for r in store.get_cached(TEST_ACCOUNT_ID, TEST_KEY)] == [103]

    def test_archive_failure_does_not_affect_result(self, store, fixed_clock):
        archiver = BackgroundArchiver(_BrokenWriteStore())
        fetcher = InMemoryActivityFetcher([{"id": 1, "start_date": "2025-02-01T00:00:00Z"}])
        try:
            with SyncOrchestrator(store, fetcher, archiver=archiver, clock=fixed_clock) as orchestrator:
                result = orchestrator.get_year_activities(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, 2025)
            archiver.drain(timeout=5)
            assert archiver.metrics.failed == 1
        finally:
            archiver.close()

        assert [r["id"] for r in result] == [1]


class _BrokenWriteStore:
    def archive(self, account_id, records, key_string):
        raise OSError("read-only filesystem")


@pytest.mark.unit
class TestFetchPage:
    """Single-page passthrough."""

    def test_returns_page_and_archives(self, store, archiver, make_orchestrator):
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2023)
        params = FetchParams(page=1, per_page=2)

        page = make_orchestrator(fetcher).fetch_page(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, params)
        archiver.drain(timeout=5)

        assert [r["id"] for r in page] == [103, 102]
        assert fetcher.calls == [params]
        assert sorted(r["id"] for r in store.get_cached(TEST_ACCOUNT_ID, TEST_KEY)) == [102, 103]

    @pytest.mark.parametrize("account_id,key", [(None, TEST_KEY), (TEST_ACCOUNT_ID, None), (TEST_ACCOUNT_ID, "")])
    def test_no_archive_without_account_or_key(self, store, archiver, make_orchestrator, account_id, key):
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2023)

        page = make_orchestrator(fetcher).fetch_page(account_id, TOKEN, key, FetchParams(page=1))
        archiver.drain(timeout=5)

        assert len(page) == 3
        assert archiver.metrics.submitted == 0

    def test_error_propagates(self, make_orchestrator):
        fetcher = InMemoryActivityFetcher(ACTIVITIES_2023, fail_on_pages=[1])
        with pytest.raises(RemoteFetchError):
            make_orchestrator(fetcher).fetch_page(TEST_ACCOUNT_ID, TOKEN, TEST_KEY, FetchParams(page=1))


@pytest.mark.unit
class TestLifecycle:
    """Archiver ownership."""

    def test_owned_archiver_closed(self, store, fixed_clock):
        orchestrator = SyncOrchestrator(store, InMemoryActivityFetcher(), clock=fixed_clock)
        orchestrator.close()

        with pytest.raises(ArchiveClosedError):
            orchestrator.archiver.submit(TEST_ACCOUNT_ID, [{"id": 1}], TEST_KEY)

    def test_injected_archiver_left_open(self, archiver, make_orchestrator):
        with make_orchestrator(InMemoryActivityFetcher()):
            pass
        assert archiver.submit(TEST_ACCOUNT_ID, [], TEST_KEY) is None
        archiver.submit(TEST_ACCOUNT_ID, [{"id": 1, "start_date": "2020-01-01T00:00:00Z"}], TEST_KEY)
        assert archiver.drain(timeout=5)


def test_year_window_is_utc():
    start, _ = year_window(2024)
    assert datetime.fromtimestamp(start, tz=timezone.utc) == datetime(2024, 1, 1, tzinfo=timezone.utc)
