"""
In-memory activity fetcher for tests and offline runs.

Serves a fixed list of activities with the same paging and time-window
semantics as the remote API, without any network access.
"""

from typing import Any, Dict, Iterable, List, Optional, Set

from ..core.connector import ActivityFetcher, FetchParams
from ..core.exceptions import RemoteFetchError
from ..core.models import as_utc, parse_start_date


class InMemoryActivityFetcher(ActivityFetcher):
    """
    Deterministic fetcher over a fixed activity list.

    Activities are served newest first, filtered by ``after``/``before``
    (exclusive, epoch seconds) and sliced by ``page``/``per_page``.
    """

    def __init__(
        self,
        activities: Optional[Iterable[Dict[str, Any]]] = None,
        fail_on_pages: Optional[Iterable[int]] = None,
        endless: bool = False,
    ):
        """
        Initialize the fetcher.

        Args:
            activities: Activities to serve
            fail_on_pages: Page numbers that raise RemoteFetchError
            endless: Never return an empty page (simulates a broken source)
        """
        self.activities = list(activities or [])
        self.fail_on_pages: Set[int] = set(fail_on_pages or [])
        self.endless = endless
        self.calls: List[FetchParams] = []

    def fetch(self, access_token: str, params: FetchParams) -> List[Dict[str, Any]]:
        self.calls.append(params)

        page = params.page or 1
        per_page = params.per_page or 30

        if page in self.fail_on_pages:
            raise RemoteFetchError(f"Simulated failure on page {page}", status_code=500)

        if self.endless:
            return [{"id": page, "start_date": "2000-01-01T00:00:00Z"}]

        matching = [a for a in self._sorted() if self._in_window(a, params)]
        start = (page - 1) * per_page
        return matching[start:start + per_page]

    def _sorted(self) -> List[Dict[str, Any]]:
        def sort_key(activity: Dict[str, Any]) -> float:
            parsed = parse_start_date(activity)
            return as_utc(parsed).timestamp() if parsed else 0.0

        return sorted(self.activities, key=sort_key, reverse=True)

    def _in_window(self, activity: Dict[str, Any], params: FetchParams) -> bool:
        parsed = parse_start_date(activity)
        if parsed is None:
            return False
        epoch = as_utc(parsed).timestamp()
        if params.after is not None and epoch <= params.after:
            return False
        if params.before is not None and epoch >= params.before:
            return False
        return True

    def get_name(self) -> str:
        return "memory"
