"""
Runner module for the archive read path and background writes.
"""

from .background import ArchiverMetrics, BackgroundArchiver
from .sync_orchestrator import SyncConfig, SyncOrchestrator

__all__ = ["ArchiverMetrics", "BackgroundArchiver", "SyncConfig", "SyncOrchestrator"]
