"""Configuration management for the document forwarder."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import build_app_config, load_config
from .models import (
    AppConfig,
    DeliveryConfig,
    DriveConfig,
    EmailConfig,
    HttpConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    WorkerConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "build_app_config",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "WorkerConfig",
    "DeliveryConfig",
    "EmailConfig",
    "DriveConfig",
    "HttpConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
