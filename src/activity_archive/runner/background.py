"""
Best-effort background archiving.

Archive writes are submitted to a small thread pool and never report back
to the submitting caller: failures are logged, counted, and handed to an
optional callback.
"""

import copy
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_for_futures
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from ..core.exceptions import ArchiveClosedError
from ..storage.archive_store import ArchiveStore


logger = logging.getLogger(__name__)

ErrorCallback = Callable[[int, Exception], None]


@dataclass
class ArchiverMetrics:
    """Counters for submitted background writes."""
    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    records_submitted: int = 0


class BackgroundArchiver:
    """
    Fire-and-forget wrapper around ArchiveStore.archive.

    No retries and no cancellation: a failed write is repaired by the next
    remote fetch of the same data.
    """

    def __init__(
        self,
        store: ArchiveStore,
        max_workers: int = 2,
        on_error: Optional[ErrorCallback] = None,
    ):
        """
        Initialize the archiver.

        Args:
            store: Archive store receiving the writes
            max_workers: Worker threads for background writes
            on_error: Called with (account_id, exception) when a write fails
        """
        self.store = store
        self.on_error = on_error
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="archive-writer"
        )
        self._lock = threading.Lock()
        self._pending: Set[Future] = set()
        self._metrics = ArchiverMetrics()
        self._closed = False

    @property
    def metrics(self) -> ArchiverMetrics:
        with self._lock:
            return ArchiverMetrics(**vars(self._metrics))

    def submit(
        self,
        account_id: int,
        records: List[Dict[str, Any]],
        key_string: str,
    ) -> Optional[Future]:
        """
        Schedule an archive write and return immediately.

        The records are deep-copied first, so later changes by the caller
        never reach the archive.

        Returns:
            The Future for the write, or None when there was nothing to write.
            The Future never carries an exception.
        """
        if not records:
            return None
        snapshot = copy.deepcopy(list(records))

        with self._lock:
            if self._closed:
                raise ArchiveClosedError("BackgroundArchiver is closed")
            self._metrics.submitted += 1
            self._metrics.records_submitted += len(records)
            future = self._executor.submit(
                self._run, account_id, snapshot, key_string
            )
            self._pending.add(future)

        future.add_done_callback(self._forget)
        return future

    def _run(self, account_id: int, records: List[Dict[str, Any]], key_string: str) -> None:
        try:
            self.store.archive(account_id, records, key_string)
        except Exception as e:
            with self._lock:
                self._metrics.failed += 1
            logger.error(
                f"Failed to archive {len(records)} activities: {e}",
                exc_info=True,
                extra={"account_id": account_id},
            )
            self._notify(account_id, e)
            return

        with self._lock:
            self._metrics.succeeded += 1

    def _notify(self, account_id: int, error: Exception) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(account_id, error)
        except Exception as callback_error:
            logger.error(f"Archive error callback raised: {callback_error}")

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for in-flight writes.

        Returns:
            True if every pending write finished within the timeout
        """
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait_for_futures(pending, timeout=timeout)
        return not not_done

    def close(self, wait: bool = True) -> None:
        """Stop accepting writes and shut down the worker pool."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "BackgroundArchiver":
        return self

    def __exit__(self, *args) -> None:
        self.close()
