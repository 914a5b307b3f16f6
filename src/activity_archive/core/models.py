"""
Core data models for the activity archive.

Activity records are plain dicts; only ``id`` and ``start_date`` are read.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

# Window sentinel meaning "the whole remote history".
ALL_TIME = 0

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


@dataclass(frozen=True)
class PartitionKey:
    """
    Address of one archive partition.

    Attributes:
        account_id: Remote account (athlete) identifier
        month: Calendar month as "YYYY-MM"
    """
    account_id: int
    month: str

    def __post_init__(self):
        if not is_valid_month(self.month):
            raise ValueError(f"Invalid partition month: {self.month!r}")


def is_valid_month(value: Any) -> bool:
    """Return True for strings shaped like "YYYY-MM"."""
    return isinstance(value, str) and bool(MONTH_PATTERN.match(value))


def parse_start_date(record: Dict[str, Any]) -> Optional[datetime]:
    """
    Parse a record's ``start_date`` as an ISO-8601 timestamp.

    Accepts anything ``datetime.fromisoformat`` does on Python 3.11+
    (any fractional-second precision, "+01:00" or "+0100" offsets). The
    timestamp keeps its own offset; a trailing "Z" is read as UTC.
    Returns None when the field is missing or unparseable.
    """
    raw = record.get("start_date") if isinstance(record, dict) else None
    if not raw or not isinstance(raw, str):
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def as_utc(value: datetime) -> datetime:
    """Make a datetime comparable; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def month_of(value: datetime) -> str:
    """Floor a timestamp to its month, in the timestamp's own offset."""
    return value.strftime("%Y-%m")


def record_id(record: Dict[str, Any]) -> Optional[int]:
    """Return the integer ``id`` of a record, or None if absent/invalid."""
    if not isinstance(record, dict):
        return None
    value = record.get("id")
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def year_window(year: int) -> Tuple[int, int]:
    """
    Epoch-second bounds of a UTC calendar year: [Jan 1 year, Jan 1 year+1).
    """
    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    return int(start.timestamp()), int(end.timestamp())


def months_of_year(year: int, through_month: int = 12) -> list:
    """Month names for January up to ``through_month`` of ``year``."""
    return [f"{year:04d}-{m:02d}" for m in range(1, through_month + 1)]
