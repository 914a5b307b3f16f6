"""
Pure merge helpers for activity record sets.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from .models import as_utc, parse_start_date, record_id

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def merge_by_id(*sequences: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Merge record sequences by ``id``, last writer wins.

    The sequences are reduced in order, so a record from a later sequence
    replaces one with the same id from an earlier sequence (and a later
    duplicate within one sequence replaces an earlier one). Output keeps the
    position where each id was first seen. Records without an integer id are
    dropped.

    Example:
        >>> merge_by_id([{"id": 1, "v": "old"}], [{"id": 1, "v": "new"}])
        [{'id': 1, 'v': 'new'}]
    """
    by_id: Dict[int, Dict[str, Any]] = {}
    for sequence in sequences:
        for record in sequence:
            rid = record_id(record)
            if rid is None:
                continue
            by_id[rid] = record
    return list(by_id.values())


def sort_newest_first(records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Sort records by ``start_date`` descending; unparseable dates go last."""
    def sort_key(record: Dict[str, Any]) -> datetime:
        parsed = parse_start_date(record)
        return as_utc(parsed) if parsed is not None else _OLDEST

    return sorted(records, key=sort_key, reverse=True)


def latest_start_date(records: Iterable[Dict[str, Any]]):
    """Return the most recent parsed ``start_date`` (UTC-comparable), or None."""
    latest = None
    for record in records:
        parsed = parse_start_date(record)
        if parsed is None:
            continue
        parsed = as_utc(parsed)
        if latest is None or parsed > latest:
            latest = parsed
    return latest
