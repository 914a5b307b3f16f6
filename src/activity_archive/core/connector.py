"""
Fetcher interface for the remote activity source.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class FetchParams:
    """
    Query for one page of remote activities.

    Attributes:
        after: Only activities starting after this epoch second
        before: Only activities starting before this epoch second
        page: 1-based page number
        per_page: Page size
    """
    after: Optional[int] = None
    before: Optional[int] = None
    page: Optional[int] = None
    per_page: Optional[int] = None

    def to_query(self) -> Dict[str, int]:
        """Return the non-empty parameters as a query dict."""
        query = {
            "after": self.after,
            "before": self.before,
            "page": self.page,
            "per_page": self.per_page,
        }
        return {k: int(v) for k, v in query.items() if v is not None}


class ActivityFetcher(ABC):
    """
    Abstract base class for remote activity sources.

    An empty list from ``fetch`` signals the end of pagination.
    """

    @abstractmethod
    def fetch(self, access_token: str, params: FetchParams) -> List[Dict[str, Any]]:
        """
        Fetch one page of activities.

        Raises:
            RemoteFetchError if the source cannot be read
        """
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Return the fetcher name/identifier."""
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass
