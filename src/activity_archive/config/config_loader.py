"""
Configuration loader for the activity archive.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..connectors.strava_connector import StravaActivitiesConnector
from ..core.exceptions import ArchiveConfigError
from ..runner.sync_orchestrator import SyncConfig
from ..storage.archive_store import ArchiveStore


logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "storage": {
        "cache_root": "data/cache",
        "file_extension": "bin",
        "freshness_days": 7,
    },
    "sync": {
        "page_size": 100,
        "max_pages": 500,
    },
    "background": {
        "max_workers": 2,
    },
    "remote": {
        "base_url": "https://www.strava.com/api/v3",
        "timeout": 30,
        "max_retries": 3,
        "rate_limit_delay": 0.0,
    },
    "logging": {
        "level": "INFO",
        "structured": False,
    },
}

# Environment variable -> dotted config key
ENV_OVERRIDES = {
    "ACTIVITY_ARCHIVE_CACHE_DIR": "storage.cache_root",
    "ACTIVITY_ARCHIVE_API_BASE_URL": "remote.base_url",
    "ACTIVITY_ARCHIVE_LOG_LEVEL": "logging.level",
}


class ArchiveConfig:
    """
    Configuration for the activity archive.

    Loads a YAML file (optional), layers it over the defaults, then applies
    environment variable overrides.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
        """
        self.config_path = Path(config_path) if config_path else None
        self.config = copy.deepcopy(DEFAULT_CONFIG)
        if self.config_path:
            _deep_update(self.config, self._load_config())
        self._apply_env_overrides()
        self._validate()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)

        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            raise ArchiveConfigError(
                f"Config file must contain a mapping: {self.config_path}"
            )
        return loaded

    def _apply_env_overrides(self) -> None:
        for env_var, dotted in ENV_OVERRIDES.items():
            value = os.environ.get(env_var)
            if value:
                section, key = dotted.split(".", 1)
                self.config.setdefault(section, {})[key] = value

    def _validate(self) -> None:
        for dotted, minimum in (
            ("storage.freshness_days", 0),
            ("sync.page_size", 1),
            ("sync.max_pages", 1),
            ("background.max_workers", 1),
            ("remote.max_retries", 1),
        ):
            value = self.get(dotted)
            if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
                raise ArchiveConfigError(
                    f"{dotted} must be an integer >= {minimum}, got {value!r}"
                )

    def get_storage_config(self) -> Dict[str, Any]:
        return self.config.get("storage", {})

    def get_sync_config(self) -> Dict[str, Any]:
        return self.config.get("sync", {})

    def get_background_config(self) -> Dict[str, Any]:
        return self.config.get("background", {})

    def get_remote_config(self) -> Dict[str, Any]:
        return self.config.get("remote", {})

    def get_logging_config(self) -> Dict[str, Any]:
        return self.config.get("logging", {})

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        value = self.config
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        return value if value is not None else default

    def log_level(self) -> int:
        """Return the configured logging level as an int."""
        name = str(self.get("logging.level", "INFO")).upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ArchiveConfigError(f"Unknown log level: {name}")
        return level

    def build_store(self) -> ArchiveStore:
        """Create an ArchiveStore from the storage section."""
        storage = self.get_storage_config()
        return ArchiveStore(
            cache_root=Path(storage["cache_root"]),
            freshness_days=storage["freshness_days"],
            file_extension=storage.get("file_extension", "bin"),
        )

    def build_sync_config(self) -> SyncConfig:
        sync = self.get_sync_config()
        return SyncConfig(page_size=sync["page_size"], max_pages=sync["max_pages"])

    def build_connector(self) -> StravaActivitiesConnector:
        """Create the HTTP activities connector from the remote section."""
        remote = self.get_remote_config()
        return StravaActivitiesConnector(
            base_url=remote.get("base_url"),
            rate_limit_delay=float(remote.get("rate_limit_delay", 0.0)),
            timeout=int(remote.get("timeout", 30)),
            max_retries=remote["max_retries"],
        )


def _deep_update(target: Dict[str, Any], updates: Dict[str, Any]) -> None:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_update(target[key], value)
        else:
            target[key] = value
