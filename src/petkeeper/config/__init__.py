"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_env_var
from .errors import ConfigurationError
from .locking import LockingPolicy, get_locking_policy
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "LockingPolicy",
    "StorageConfig",
    "configure_logging",
    "get_database_config",
    "get_locking_policy",
    "get_storage_config",
    "optional_env_var",
]
