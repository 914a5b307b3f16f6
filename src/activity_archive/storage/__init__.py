"""
Storage for archived activity partitions.
"""

from .archive_store import ArchiveStore, DEFAULT_FRESHNESS_DAYS

__all__ = ["ArchiveStore", "DEFAULT_FRESHNESS_DAYS"]
