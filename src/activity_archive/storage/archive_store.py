"""
Month-partitioned, per-account archive of activity records.

Files are organised as: {cache_root}/{account_id}/{YYYY-MM}.{ext}
Each file holds exactly one sealed blob (see activity_archive.codec).
"""

import logging
import os
import tempfile
import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..codec import SealedBlobCodec
from ..core.exceptions import ArchiveClosedError, DecryptionFailed
from ..core.merge import merge_by_id
from ..core.models import (
    PartitionKey,
    as_utc,
    is_valid_month,
    month_of,
    parse_start_date,
    record_id,
)


logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_DAYS = 7


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ArchiveStore:
    """
    Encrypted on-disk cache of activities, one partition per account and month.

    Writes merge into the existing partition (new records win on duplicate
    ids) and replace the file atomically. Reads return whatever partitions
    can be opened with the given key; anything unreadable is skipped.

    Records younger than ``freshness_days`` are never archived, since the
    remote source may still revise them.
    """

    def __init__(
        self,
        cache_root: Path,
        codec: Optional[SealedBlobCodec] = None,
        freshness_days: int = DEFAULT_FRESHNESS_DAYS,
        file_extension: str = "bin",
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Initialize the archive store.

        Args:
            cache_root: Root directory holding one sub-directory per account
            codec: Codec used to seal/open partitions
            freshness_days: Records newer than this many days are not archived
            file_extension: Partition file extension (without dot)
            clock: Returns the current time (aware datetime)
        """
        self.cache_root = Path(cache_root)
        self.codec = codec or SealedBlobCodec()
        self.freshness_days = freshness_days
        self.file_extension = file_extension.lstrip(".")
        self._clock = clock

        self._locks_guard = threading.Lock()
        self._partition_locks: Dict[Path, threading.Lock] = {}
        self._closed = False

    # -------- Lifecycle --------

    def close(self) -> None:
        """Release the store; further calls raise ArchiveClosedError."""
        self._closed = True
        with self._locks_guard:
            self._partition_locks.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "ArchiveStore":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise ArchiveClosedError("ArchiveStore is closed")

    # -------- Layout --------

    def account_dir(self, account_id: int) -> Path:
        return self.cache_root / str(int(account_id))

    def partition_path(self, key: PartitionKey) -> Path:
        """Return the file path for a partition."""
        return self.account_dir(key.account_id) / f"{key.month}.{self.file_extension}"

    def list_months(self, account_id: int) -> List[str]:
        """
        List the months that have a partition file for an account.

        Returns an empty list when the account directory does not exist.
        """
        self._ensure_open()
        directory = self.account_dir(account_id)
        if not directory.is_dir():
            return []

        suffix = f".{self.file_extension}"
        months = []
        for entry in directory.iterdir():
            if not entry.is_file() or entry.suffix != suffix:
                continue
            if is_valid_month(entry.stem):
                months.append(entry.stem)
        return sorted(months)

    # -------- Writes --------

    def archive(
        self,
        account_id: int,
        records: Iterable[Dict[str, Any]],
        key_string: str,
    ) -> None:
        """
        Archive sufficiently old records into their month partitions.

        For each month touched: read the existing partition (missing or
        unreadable means empty), merge by id with the new records winning,
        then seal and replace the file.

        Args:
            account_id: Account the records belong to
            records: Activity records (dicts with ``id`` and ``start_date``)
            key_string: Caller key used to seal the partitions
        """
        self._ensure_open()
        buckets = self._bucket_by_month(account_id, records)
        if not buckets:
            return

        for month, new_records in sorted(buckets.items()):
            key = PartitionKey(account_id=int(account_id), month=month)
            with self._partition_lock(key):
                self._write_partition(key, new_records, key_string)

    def _bucket_by_month(
        self,
        account_id: int,
        records: Iterable[Dict[str, Any]],
    ) -> Dict[str, List[Dict[str, Any]]]:
        cutoff = as_utc(self._clock()) - timedelta(days=self.freshness_days)
        buckets: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        skipped = 0

        for record in records or []:
            started = parse_start_date(record)
            if started is None or record_id(record) is None:
                skipped += 1
                continue
            if as_utc(started) >= cutoff:
                continue
            buckets[month_of(started)].append(record)

        if skipped:
            logger.warning(
                f"Skipped {skipped} record(s) without a usable id/start_date",
                extra={"account_id": account_id},
            )
        return buckets

    def _write_partition(
        self,
        key: PartitionKey,
        new_records: List[Dict[str, Any]],
        key_string: str,
    ) -> None:
        path = self.partition_path(key)
        existing = self._read_for_merge(key, path, key_string)
        merged = merge_by_id(existing, new_records)

        blob = self.codec.seal(merged, key_string)
        _atomic_write_bytes(path, blob)

        logger.debug(
            f"Wrote partition {path.name}: {len(merged)} record(s) "
            f"({len(new_records)} incoming, {len(existing)} existing)",
            extra={"account_id": key.account_id, "month": key.month},
        )

    def _read_for_merge(
        self,
        key: PartitionKey,
        path: Path,
        key_string: str,
    ) -> List[Dict[str, Any]]:
        try:
            blob = path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning(
                f"Cache unreadable for {path} ({e}); overwriting",
                extra={"account_id": key.account_id, "month": key.month},
            )
            return []

        try:
            existing = self.codec.open(blob, key_string)
        except DecryptionFailed as e:
            logger.warning(
                f"Cache unreadable for {path} ({e.reason}); overwriting",
                extra={"account_id": key.account_id, "month": key.month},
            )
            return []

        if not isinstance(existing, list):
            logger.warning(
                f"Cache payload for {path} is not a record list; overwriting",
                extra={"account_id": key.account_id, "month": key.month},
            )
            return []
        return existing

    def _partition_lock(self, key: PartitionKey) -> threading.Lock:
        path = self.partition_path(key)
        with self._locks_guard:
            lock = self._partition_locks.get(path)
            if lock is None:
                lock = threading.Lock()
                self._partition_locks[path] = lock
            return lock

    # -------- Reads --------

    def get_cached(
        self,
        account_id: int,
        key_string: str,
        month: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Return cached records for an account.

        Args:
            account_id: Account to read
            key_string: Caller key used to open the partitions
            month: Optional "YYYY-MM" to read a single partition

        Returns:
            Records from every partition that could be opened. Missing
            directories or files yield an empty list; unreadable partitions
            are logged and skipped.
        """
        self._ensure_open()

        if month is not None:
            if not is_valid_month(month):
                raise ValueError(f"Invalid month: {month!r}")
            months = [month]
        else:
            months = self.list_months(account_id)

        results: List[Dict[str, Any]] = []
        for name in months:
            key = PartitionKey(account_id=int(account_id), month=name)
            results.extend(self._read_partition(key, key_string))
        return results

    def _read_partition(self, key: PartitionKey, key_string: str) -> List[Dict[str, Any]]:
        path = self.partition_path(key)
        try:
            blob = path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning(
                f"Failed to read cache file {path.name} ({e}); ignoring",
                extra={"account_id": key.account_id, "month": key.month},
            )
            return []

        try:
            records = self.codec.open(blob, key_string)
        except DecryptionFailed as e:
            logger.warning(
                f"Failed to open cache file {path.name} ({e.reason}); ignoring",
                extra={"account_id": key.account_id, "month": key.month},
            )
            return []

        if not isinstance(records, list):
            logger.warning(
                f"Cache file {path.name} does not hold a record list; ignoring",
                extra={"account_id": key.account_id, "month": key.month},
            )
            return []
        return records


def _atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write bytes to a temp file in the target directory, then rename over."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix="._tmp_", suffix=path.suffix, dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
