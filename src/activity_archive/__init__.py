"""
Activity archive: encrypted, month-partitioned local cache of remote activities.

This package provides:
- SealedBlobCodec: JSON value ⇄ gzip + AES-256-GCM blob
- ArchiveStore: per-account, per-month partition files with merge-on-write
- BackgroundArchiver: best-effort, fire-and-forget archive writes
- SyncOrchestrator: year/all-time reads combining archive and remote source
"""

from .codec import SealedBlobCodec, derive_key
from .core import (
    ALL_TIME,
    ActivityArchiveError,
    ActivityFetcher,
    DecryptionFailed,
    FetchParams,
    PartitionKey,
    RemoteFetchError,
    merge_by_id,
)
from .runner import BackgroundArchiver, SyncConfig, SyncOrchestrator
from .storage import ArchiveStore

__version__ = "0.1.0"

__all__ = [
    "SealedBlobCodec",
    "derive_key",
    "ALL_TIME",
    "ActivityArchiveError",
    "ActivityFetcher",
    "DecryptionFailed",
    "FetchParams",
    "PartitionKey",
    "RemoteFetchError",
    "merge_by_id",
    "BackgroundArchiver",
    "SyncConfig",
    "SyncOrchestrator",
    "ArchiveStore",
]
