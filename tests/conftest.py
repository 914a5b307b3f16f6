"""
Shared test fixtures and configuration for pytest.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from activity_archive.codec import SealedBlobCodec  # noqa: E402
from activity_archive.storage import ArchiveStore  # noqa: E402


# Fixed "now" for every time-dependent test.
FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)

TEST_ACCOUNT_ID = 999999
TEST_KEY = "test-key-cache-123"


def iso(value: datetime) -> str:
    """Format like the remote API: UTC with a trailing Z."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def days_ago(days: float) -> str:
    return iso(FIXED_NOW - timedelta(days=days))


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fixed_clock():
    """Clock callable pinned to FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def codec() -> SealedBlobCodec:
    return SealedBlobCodec()


@pytest.fixture
def store(cache_root: Path, codec: SealedBlobCodec, fixed_clock):
    """Archive store rooted in a temp directory with a fixed clock."""
    archive_store = ArchiveStore(cache_root=cache_root, codec=codec, clock=fixed_clock)
    yield archive_store
    archive_store.close()


@pytest.fixture
def make_activity():
    """Factory for minimal activity records."""
    def _make(activity_id: int, start_date: str, **fields):
        record = {"id": activity_id, "start_date": start_date, "name": f"Ride {activity_id}"}
        record.update(fields)
        return record
    return _make
