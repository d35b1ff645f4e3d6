"""Application configuration helpers."""

from __future__ import annotations

from .daemon import ALL_RECONCILERS, DaemonConfig, get_daemon_config, parse_enabled
from .env import require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .notifier import NotifierConfig, RetryPolicy, get_notifier_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "ALL_RECONCILERS",
    "ConfigurationError",
    "DaemonConfig",
    "DatabaseConfig",
    "MissingConfigurationError",
    "NotifierConfig",
    "RetryPolicy",
    "StorageConfig",
    "get_daemon_config",
    "get_database_config",
    "get_notifier_config",
    "get_storage_config",
    "parse_enabled",
    "require_env_var",
    "require_env_vars",
]
