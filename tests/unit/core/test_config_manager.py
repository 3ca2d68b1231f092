"""
Tests for ConfigManager.
"""

import os
import json
import tempfile
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from localcosmos.core.config_manager import (
    ConfigManager,
    LocalCosmosConfig,
    LogFormat,
    LogLevel,
    StoreConfig,
)


class TestConfigManager:
    """Test suite for ConfigManager."""

    def test_load_defaults(self):
        """Test loading default configuration."""
        manager = ConfigManager()
        config = manager.load()

        assert config is not None
        assert config.version == "0.1.0"
        assert config.logging.level == LogLevel.INFO
        assert config.logging.format == LogFormat.JSON
        assert config.store.id_field == "id"
        assert config.store.max_item_count == 100
        assert config.store.enable_cross_partition_query is False

    def test_load_from_yaml_file(self):
        """Test loading configuration from YAML file."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml_config = {
                "version": "1.0.0",
                "store": {
                    "max_item_count": 25,
                    "enable_cross_partition_query": True
                },
                "logging": {
                    "level": "DEBUG"
                }
            }
            yaml.dump(yaml_config, f)
            config_file = f.name

        try:
            manager = ConfigManager()
            config = manager.load(config_file=config_file)

            assert config.version == "1.0.0"
            assert config.store.max_item_count == 25
            assert config.store.enable_cross_partition_query is True
            assert config.logging.level == LogLevel.DEBUG
        finally:
            os.unlink(config_file)

    def test_load_from_json_file(self):
        """Test loading configuration from JSON file."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            json.dump({"version": "2.0.0", "store": {"id_field": "key"}}, f)
            config_file = f.name

        try:
            manager = ConfigManager()
            config = manager.load(config_file=config_file)

            assert config.version == "2.0.0"
            assert config.store.id_field == "key"
        finally:
            os.unlink(config_file)

    def test_load_from_env_variables(self):
        """Test loading configuration from environment variables."""
        os.environ["LOCALCOSMOS_LOG_LEVEL"] = "warning"
        os.environ["LOCALCOSMOS_LOG_FORMAT"] = "TEXT"
        os.environ["LOCALCOSMOS_MAX_ITEM_COUNT"] = "50"
        os.environ["LOCALCOSMOS_CROSS_PARTITION_QUERY"] = "yes"

        try:
            manager = ConfigManager()
            config = manager.load()

            assert config.logging.level == LogLevel.WARNING
            assert config.logging.format == LogFormat.TEXT
            assert config.store.max_item_count == 50
            assert config.store.enable_cross_partition_query is True
        finally:
            del os.environ["LOCALCOSMOS_LOG_LEVEL"]
            del os.environ["LOCALCOSMOS_LOG_FORMAT"]
            del os.environ["LOCALCOSMOS_MAX_ITEM_COUNT"]
            del os.environ["LOCALCOSMOS_CROSS_PARTITION_QUERY"]

    def test_cli_overrides(self):
        """Test CLI argument overrides."""
        manager = ConfigManager()
        config = manager.load(cli_overrides={"logging": {"level": "ERROR"}})

        assert config.logging.level == LogLevel.ERROR

    def test_configuration_precedence(self):
        """Test configuration precedence: CLI > ENV > FILE > DEFAULTS."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml_config = {
                "logging": {"level": "DEBUG", "format": "text"},
                "store": {"id_field": "fileKey", "max_item_count": 10}
            }
            yaml.dump(yaml_config, f)
            config_file = f.name

        os.environ["LOCALCOSMOS_ID_FIELD"] = "envKey"

        try:
            manager = ConfigManager()
            config = manager.load(
                config_file=config_file,
                cli_overrides={"logging": {"level": "ERROR"}}
            )

            # CLI level should override file
            assert config.logging.level == LogLevel.ERROR
            # file values survive a partial override of their section
            assert config.logging.format == LogFormat.TEXT
            assert config.store.max_item_count == 10
            # ENV id field should override file
            assert config.store.id_field == "envKey"
        finally:
            os.unlink(config_file)
            del os.environ["LOCALCOSMOS_ID_FIELD"]

    def test_invalid_version_format(self):
        """Test that invalid version format raises validation error."""
        manager = ConfigManager()

        with pytest.raises(ValidationError) as exc_info:
            manager.load(cli_overrides={"version": "1.0"})

        assert "Version must be in format x.y.z" in str(exc_info.value)

    def test_invalid_store_settings(self):
        """Test that out-of-range store settings are rejected."""
        manager = ConfigManager()

        with pytest.raises(ValidationError):
            manager.load(cli_overrides={"store": {"max_item_count": 0}})
        with pytest.raises(ValidationError):
            manager.load(cli_overrides={"store": {"id_field": "_id"}})

    def test_file_not_found(self):
        """Test that missing config file raises FileNotFoundError."""
        manager = ConfigManager()

        with pytest.raises(FileNotFoundError):
            manager.load(config_file="/nonexistent/config.yaml")

    def test_unsupported_file_format(self):
        """Test that unsupported file format raises ValueError."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.txt', delete=False) as f:
            f.write("invalid config")
            config_file = f.name

        try:
            manager = ConfigManager()
            with pytest.raises(ValueError) as exc_info:
                manager.load(config_file=config_file)

            assert "Unsupported config file format" in str(exc_info.value)
        finally:
            os.unlink(config_file)

    def test_get_config_before_load(self):
        """Test that getting config before loading raises RuntimeError."""
        manager = ConfigManager()

        with pytest.raises(RuntimeError) as exc_info:
            manager.get_config()

        assert "Configuration not loaded" in str(exc_info.value)

    def test_get_config_after_load(self):
        """Test getting config after loading."""
        manager = ConfigManager()
        config1 = manager.load()
        config2 = manager.get_config()

        assert config1 is config2

    def test_reload_configuration(self):
        """Test reloading configuration."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml.dump({"store": {"max_item_count": 5}}, f)
            config_file = f.name

        try:
            manager = ConfigManager()
            config1 = manager.load(config_file=config_file)
            assert config1.store.max_item_count == 5

            with open(config_file, 'w') as f:
                yaml.dump({"store": {"max_item_count": 6}}, f)

            config2 = manager.reload()
            assert config2.store.max_item_count == 6
        finally:
            Path(config_file).unlink()


class TestLocalCosmosConfig:
    """Test suite for LocalCosmosConfig model."""

    def test_default_config(self):
        """Test default configuration values."""
        config = LocalCosmosConfig()

        assert config.version == "0.1.0"
        assert config.logging.rotation_size == "10MB"
        assert config.logging.module_levels is None
        assert isinstance(config.store, StoreConfig)
        assert config.store.max_patch_operations == 10
