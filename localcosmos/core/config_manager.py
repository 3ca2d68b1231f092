"""
Configuration management for LocalCosmos.

Handles loading, validation, and access to configuration settings.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

import yaml
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Supported log output formats."""
    JSON = "json"
    TEXT = "text"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = 5
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'localcosmos.store.query': 'DEBUG'}"
    )

    model_config = ConfigDict(use_enum_values=True)


class StoreConfig(BaseModel):
    """Document store behaviour."""
    id_field: str = Field(
        default="id",
        description="Document property holding the identifier"
    )
    max_item_count: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Default page size for query results"
    )
    enable_cross_partition_query: bool = Field(
        default=False,
        description="Allow queries without a partition key to span every partition"
    )
    max_patch_operations: int = Field(
        default=10,
        ge=1,
        description="Maximum operations in one patch batch"
    )

    @field_validator("id_field")
    @classmethod
    def validate_id_field(cls, v: str) -> str:
        """Validate the identifier property name."""
        if not v or v.startswith("_") or "/" in v:
            raise ValueError(f"Invalid id field name: {v!r}")
        return v


class LocalCosmosConfig(BaseModel):
    """Main LocalCosmos configuration schema."""

    version: str = Field(default="0.1.0", description="Configuration version")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    store: StoreConfig = Field(default_factory=StoreConfig)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate version format."""
        parts = v.split(".")
        if len(parts) != 3:
            raise ValueError("Version must be in format x.y.z")
        for part in parts:
            if not part.isdigit():
                raise ValueError("Version components must be numeric")
        return v

    model_config = ConfigDict(use_enum_values=True)


class ConfigManager:
    """
    Manages LocalCosmos configuration loading and validation.

    Configuration precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables (LOCALCOSMOS_*)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    def __init__(self):
        self._config: Optional[LocalCosmosConfig] = None
        self._config_file: Optional[Path] = None

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> LocalCosmosConfig:
        """
        Load and validate configuration from multiple sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            cli_overrides: Dictionary of CLI argument overrides

        Returns:
            Validated LocalCosmosConfig instance

        Raises:
            ValidationError: If configuration is invalid
            FileNotFoundError: If specified config file doesn't exist
        """
        logger.info("Loading LocalCosmos configuration")

        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            self._config_file = Path(config_file)
            logger.info(f"Loaded configuration from file: {config_file}")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.info(f"Applied {len(env_config)} environment variable overrides")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, cli_overrides)
            logger.info(f"Applied {len(cli_overrides)} CLI argument overrides")

        try:
            self._config = LocalCosmosConfig(**config_dict)
            logger.info("Configuration validated successfully")
            logger.debug(f"Active configuration: {json.dumps(self._config.model_dump(), indent=2)}")
            return self._config
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif path.suffix == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        # Logging configuration
        if log_level := os.getenv("LOCALCOSMOS_LOG_LEVEL"):
            config.setdefault("logging", {})["level"] = log_level.upper()
        if log_format := os.getenv("LOCALCOSMOS_LOG_FORMAT"):
            config.setdefault("logging", {})["format"] = log_format.lower()
        if log_file := os.getenv("LOCALCOSMOS_LOG_FILE"):
            config.setdefault("logging", {})["file"] = log_file

        # Store configuration
        if id_field := os.getenv("LOCALCOSMOS_ID_FIELD"):
            config.setdefault("store", {})["id_field"] = id_field
        if max_item_count := os.getenv("LOCALCOSMOS_MAX_ITEM_COUNT"):
            config.setdefault("store", {})["max_item_count"] = int(max_item_count)
        if cross_partition := os.getenv("LOCALCOSMOS_CROSS_PARTITION_QUERY"):
            config.setdefault("store", {})["enable_cross_partition_query"] = (
                cross_partition.lower() in ['true', '1', 'yes']
            )

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> LocalCosmosConfig:
        """
        Get the loaded configuration.

        Returns:
            LocalCosmosConfig instance

        Raises:
            RuntimeError: If configuration hasn't been loaded
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def reload(self) -> LocalCosmosConfig:
        """
        Reload configuration from the same sources.

        Returns:
            Reloaded LocalCosmosConfig instance
        """
        config_file = str(self._config_file) if self._config_file else None
        return self.load(config_file=config_file)
