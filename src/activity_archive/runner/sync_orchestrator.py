"""
Sync orchestrator: answers "all activities for account X in year Y".

Combines the archive with the remote source:
1. Past years are served from the archive when it has any records
2. The current year reads cached months, then fetches only what is newer
3. Remote pages are archived in the background as they arrive
4. Cached and fresh records are merged by id (fresh wins), newest first

Known staleness window: once a past year has cached records, later edits or
back-filled activities for that year at the source are not seen.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..core.connector import ActivityFetcher, FetchParams
from ..core.merge import latest_start_date, merge_by_id, sort_newest_first
from ..core.models import ALL_TIME, as_utc, months_of_year, year_window
from ..storage.archive_store import ArchiveStore
from .background import BackgroundArchiver


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SyncConfig:
    """
    Configuration for remote pagination.

    Attributes:
        page_size: Activities requested per page
        max_pages: Upper bound on pages per fetch (guards against a remote
            source that never returns an empty page)
    """
    page_size: int = 100
    max_pages: int = 500


class SyncOrchestrator:
    """
    Read path over the archive store and a remote activity fetcher.

    Remote errors propagate to the caller. Archive writes go through a
    BackgroundArchiver and never affect the returned result.
    """

    def __init__(
        self,
        store: ArchiveStore,
        fetcher: ActivityFetcher,
        archiver: Optional[BackgroundArchiver] = None,
        config: Optional[SyncConfig] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Archive store for cached reads
            fetcher: Remote activity source
            archiver: Background archiver (one is created and owned if omitted)
            config: Pagination settings
            clock: Returns the current time (aware datetime)
        """
        self.store = store
        self.fetcher = fetcher
        self.config = config or SyncConfig()
        self._clock = clock
        self._owns_archiver = archiver is None
        self.archiver = archiver or BackgroundArchiver(store)

    def close(self) -> None:
        """Close the archiver if this orchestrator created it."""
        if self._owns_archiver:
            self.archiver.close()

    def __enter__(self) -> "SyncOrchestrator":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # -------- Public API --------

    def get_year_activities(
        self,
        account_id: int,
        access_token: str,
        key_string: str,
        year: int,
    ) -> List[Dict[str, Any]]:
        """
        Return all activities for a calendar year, newest first.

        Args:
            account_id: Account whose archive is used
            access_token: Token for the remote fetcher
            key_string: Key for sealing/opening archive partitions
            year: Calendar year, or ALL_TIME (0) for the full history

        Raises:
            RemoteFetchError if the remote source fails
        """
        year = int(year)
        if year < 0:
            raise ValueError(f"Invalid year: {year}")

        log_extra = {"account_id": account_id, "year": year}
        now = as_utc(self._clock())

        if year == ALL_TIME:
            logger.info("Fetching full history (cache bypassed)", extra=log_extra)
            fresh = self._fetch_all(
                account_id, access_token, key_string,
                after=0, before=int(now.timestamp()),
            )
            return sort_newest_first(merge_by_id(fresh))

        window_start, window_end = year_window(year)

        if year < now.year:
            cached = self._read_months(account_id, key_string, months_of_year(year))
            if cached:
                logger.info(
                    f"Serving {len(cached)} cached activities for past year",
                    extra=log_extra,
                )
                return sort_newest_first(merge_by_id(cached))
            logger.info("No cached activities for past year; fetching", extra=log_extra)
            after = window_start

        elif year == now.year:
            cached = self._read_months(
                account_id, key_string, months_of_year(year, through_month=now.month)
            )
            after = self._advance_lower_bound(window_start, cached)
            logger.info(
                f"Current year: {len(cached)} cached, fetching after {after}",
                extra=log_extra,
            )

        else:
            cached = []
            after = window_start

        fresh = self._fetch_all(
            account_id, access_token, key_string, after=after, before=window_end,
        )
        return sort_newest_first(merge_by_id(cached, fresh))

    def fetch_page(
        self,
        account_id: Optional[int],
        access_token: str,
        key_string: Optional[str],
        params: FetchParams,
    ) -> List[Dict[str, Any]]:
        """
        Fetch a single remote page unchanged, archiving it in the background.

        The page is archived only when both an account id and a key are
        given.

        Raises:
            RemoteFetchError if the remote source fails
        """
        page = self.fetcher.fetch(access_token, params)
        if account_id is not None and key_string:
            self.archiver.submit(account_id, page, key_string)
        return page

    # -------- Helpers --------

    def _read_months(
        self,
        account_id: int,
        key_string: str,
        months: List[str],
    ) -> List[Dict[str, Any]]:
        records: List[Dict[str, Any]] = []
        for month in months:
            records.extend(self.store.get_cached(account_id, key_string, month=month))
        return records

    def _advance_lower_bound(self, window_start: int, cached: List[Dict[str, Any]]) -> int:
        """Move the fetch lower bound forward to the newest cached activity."""
        latest = latest_start_date(cached)
        if latest is None:
            return window_start
        latest_epoch = int(latest.timestamp())
        if latest_epoch <= window_start:
            return window_start
        return latest_epoch

    def _fetch_all(
        self,
        account_id: int,
        access_token: str,
        key_string: str,
        after: int,
        before: int,
    ) -> List[Dict[str, Any]]:
        """Page through the remote source until an empty page."""
        collected: List[Dict[str, Any]] = []
        page = 1

        while True:
            if page > self.config.max_pages:
                logger.warning(
                    f"Stopped paging after {self.config.max_pages} pages",
                    extra={"account_id": account_id},
                )
                break

            batch = self.fetcher.fetch(
                access_token,
                FetchParams(
                    after=after,
                    before=before,
                    page=page,
                    per_page=self.config.page_size,
                ),
            )
            if not batch:
                break

            logger.debug(
                f"Fetched page {page}: {len(batch)} activities",
                extra={"account_id": account_id},
            )
            collected.extend(batch)
            self.archiver.submit(account_id, batch, key_string)
            page += 1

        return collected
