"""Configuration management for the storage client."""

import json
import os
import shutil
from pathlib import Path
from typing import Any, Optional

from common.constants import (
    DEFAULT_CHUNK_SIZE_BYTES,
    DEFAULT_MASTER_HOST,
    DEFAULT_MASTER_PORT,
    DEFAULT_MAX_CONNECTIONS,
    DEFAULT_TIMEOUT_SECONDS,
    LOCATION_CACHE_TTL_SECONDS,
)
from common.logging_config import get_logger

logger = get_logger(__name__)


class Config:
    """Manages client configuration, optionally stored in a JSON file."""

    DEFAULT_CONFIG = {
        "master_host": os.environ.get("WEED_MASTER_HOST", DEFAULT_MASTER_HOST),
        "master_port": int(os.environ.get("WEED_MASTER_PORT", str(DEFAULT_MASTER_PORT))),
        "chunk_size_bytes": int(os.environ.get("WEED_CHUNK_SIZE_BYTES", str(DEFAULT_CHUNK_SIZE_BYTES))),
        "timeout": DEFAULT_TIMEOUT_SECONDS,
        "max_connections": DEFAULT_MAX_CONNECTIONS,
        "max_retries": 3,
        "retry_backoff_multiplier": 2,
        "location_cache_ttl_seconds": LOCATION_CACHE_TTL_SECONDS,
        "upload_workers": 1,
        "legacy_chunk_count": False,
        "compress_manifest": False,
    }

    def __init__(self, config_path: Optional[Path] = None, **overrides: Any):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.weed/config.json).
                None keeps the configuration in memory only.
            **overrides: Values applied on top of the loaded configuration
        """
        self.config_path = Path(config_path) if config_path is not None else None
        self.data = self._load()
        self.data.update(overrides)

    def _load(self) -> dict:
        """
        Load configuration from file, creating defaults if necessary.

        Returns:
            Configuration dictionary
        """
        if self.config_path is None:
            return self.DEFAULT_CONFIG.copy()

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                config = self.DEFAULT_CONFIG.copy()
                config.update(data)
                return config
            except (json.JSONDecodeError, IOError) as e:
                backup_path = self.config_path.with_suffix('.json.bak')
                logger.warning(f"Unreadable config {self.config_path}: {e}, backing up to {backup_path}")
                try:
                    shutil.copy(self.config_path, backup_path)
                except IOError as copy_error:
                    logger.warning(f"Could not back up config: {copy_error}")
                return self.DEFAULT_CONFIG.copy()
        else:
            config = self.DEFAULT_CONFIG.copy()
            try:
                with open(self.config_path, 'w') as f:
                    json.dump(config, f, indent=2)
            except IOError as e:
                logger.warning(f"Could not write default config to {self.config_path}: {e}")
            return config

    def save(self) -> None:
        """Save current configuration to file."""
        if self.config_path is None:
            return
        try:
            with open(self.config_path, 'w') as f:
                json.dump(self.data, f, indent=2)
        except IOError as e:
            logger.warning(f"Could not save config to {self.config_path}: {e}")

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value and save to file.

        Args:
            key: Configuration key
            value: New value
        """
        self.data[key] = value
        self.save()

    def get_master_address(self) -> str:
        """
        Get master server address.

        Returns:
            Address string (e.g., "localhost:9333")
        """
        host = self.data.get('master_host', DEFAULT_MASTER_HOST)
        port = self.data.get('master_port', DEFAULT_MASTER_PORT)
        return f"{host}:{port}"

    def get_chunk_size(self) -> int:
        """
        Get chunk size in bytes.

        Returns:
            Chunk size; 0 disables chunking
        """
        return int(self.data.get('chunk_size_bytes', DEFAULT_CHUNK_SIZE_BYTES))

    def get_timeout(self) -> float:
        """
        Get per-request timeout in seconds.

        Returns:
            Timeout value in seconds
        """
        return self.data.get('timeout', DEFAULT_TIMEOUT_SECONDS)

    def get_max_connections(self) -> int:
        return int(self.data.get('max_connections', DEFAULT_MAX_CONNECTIONS))

    def get_retry_config(self) -> dict:
        """
        Get retry configuration.

        Returns:
            Dictionary with 'max_retries' and 'retry_backoff_multiplier'
        """
        return {
            'max_retries': self.data.get('max_retries', 3),
            'retry_backoff_multiplier': self.data.get('retry_backoff_multiplier', 2),
        }

    def get_location_cache_ttl(self) -> float:
        return self.data.get('location_cache_ttl_seconds', LOCATION_CACHE_TTL_SECONDS)

    def get_upload_workers(self) -> int:
        return max(1, int(self.data.get('upload_workers', 1)))

    def use_legacy_chunk_count(self) -> bool:
        return bool(self.data.get('legacy_chunk_count', False))

    def compress_manifest(self) -> bool:
        return bool(self.data.get('compress_manifest', False))
