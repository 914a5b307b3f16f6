"""
Core types shared across the activity archive.
"""

from .connector import ActivityFetcher, FetchParams
from .exceptions import (
    ActivityArchiveError,
    ArchiveClosedError,
    ArchiveConfigError,
    DecryptionFailed,
    RemoteFetchError,
)
from .merge import latest_start_date, merge_by_id, sort_newest_first
from .models import ALL_TIME, PartitionKey, month_of, parse_start_date

__all__ = [
    "ActivityFetcher",
    "FetchParams",
    "ActivityArchiveError",
    "ArchiveClosedError",
    "ArchiveConfigError",
    "DecryptionFailed",
    "RemoteFetchError",
    "latest_start_date",
    "merge_by_id",
    "sort_newest_first",
    "ALL_TIME",
    "PartitionKey",
    "month_of",
    "parse_start_date",
]
