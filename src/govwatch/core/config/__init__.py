"""Configuration loading and validation.

The database-backed stores live in ``govwatch.core.config.store`` and are
imported from there directly.
"""

from .heuristics import HeuristicsConfig, find_key_date_field
from .models import (
    # Enums
    SourceName,
    Frequency,
    AlertType,
    FREQUENCY_HOURS,
    # Config models
    AppConfig,
    ApiConfig,
    AuthenticatedSourceSettings,
    BrowserConfig,
    DatabaseConfig,
    FetchConfig,
    LoggingConfig,
    OrchestratorConfig,
    SchedulerConfig,
    SourceConfig,
    SourceConfigUpdate,
)
from .loader import ConfigError, load_app_config, validate_app_config_file

__all__ = [
    # Enums
    "SourceName",
    "Frequency",
    "AlertType",
    "FREQUENCY_HOURS",
    # Config models
    "AppConfig",
    "ApiConfig",
    "AuthenticatedSourceSettings",
    "BrowserConfig",
    "DatabaseConfig",
    "FetchConfig",
    "LoggingConfig",
    "OrchestratorConfig",
    "SchedulerConfig",
    "SourceConfig",
    "SourceConfigUpdate",
    "HeuristicsConfig",
    "find_key_date_field",
    # Loaders
    "ConfigError",
    "load_app_config",
    "validate_app_config_file",
]
