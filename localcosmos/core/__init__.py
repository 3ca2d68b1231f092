"""Core infrastructure: configuration and logging."""

from .config_manager import ConfigManager, LocalCosmosConfig, LoggingConfig, StoreConfig
from .logging_config import setup_logging, get_logger

__all__ = [
    "ConfigManager",
    "LocalCosmosConfig",
    "LoggingConfig",
    "StoreConfig",
    "setup_logging",
    "get_logger",
]
