"""
Remote activity sources.
"""

from .memory_connector import InMemoryActivityFetcher
from .strava_connector import StravaActivitiesConnector

__all__ = ["InMemoryActivityFetcher", "StravaActivitiesConnector"]
