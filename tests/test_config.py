"""
Tests for configuration management.

Tests validation bounds, immutability, YAML loading and environment overrides.
"""

import dataclasses

import pytest
import yaml

from hawkwatch.config import (
    ConfigManager,
    DatastoreThresholds,
    LoggingSettings,
    LogLevel,
    MonitoringConfig,
    PerformanceThresholds,
    config_to_dict,
    load_config,
    validate_config_file
)
from hawkwatch.utils.errors import ConfigurationError


class TestConfigModels:
    """Test configuration data models and validation."""

    def test_defaults(self):
        config = MonitoringConfig()

        assert config.health_check_interval == 30000
        assert config.health_check_timeout == 10000
        assert config.metrics_collection_interval == 60000
        assert config.performance.memory_usage_threshold == 85
        assert config.performance.cpu_usage_threshold == 80
        assert config.performance.disk_usage_threshold == 90
        assert config.performance.response_time_threshold == 5000
        assert config.gateway.latency_threshold == 1000
        assert config.alerts.max_active_alerts == 50
        assert config.alerts.critical_alert_threshold == 3
        assert config.metrics.retention_period == 86400000
        assert config.metrics.max_metrics_in_memory == 1000

    def test_memory_threshold_bounds(self):
        """Test memory threshold floor and ceiling."""
        assert PerformanceThresholds(memory_usage_threshold=85).memory_usage_threshold == 85

        with pytest.raises(ValueError):
            PerformanceThresholds(memory_usage_threshold=40)  # Min is 50

        with pytest.raises(ValueError):
            PerformanceThresholds(memory_usage_threshold=96)  # Max is 95

    def test_interval_bounds(self):
        with pytest.raises(ValueError):
            MonitoringConfig(health_check_interval=999)

        with pytest.raises(ValueError):
            MonitoringConfig(metrics_collection_interval=600001)

    def test_datastore_timeouts_cross_check(self):
        with pytest.raises(ValueError, match="query_timeout"):
            DatastoreThresholds(connection_timeout=8000, query_timeout=4000)

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValueError):
            MonitoringConfig(health_check_intervall=5000)

    def test_config_is_immutable(self):
        config = MonitoringConfig()

        with pytest.raises(dataclasses.FrozenInstanceError):
            config.health_check_interval = 5000

    def test_seconds_properties(self):
        config = MonitoringConfig(health_check_interval=1500, health_check_timeout=250)

        assert config.health_check_interval_seconds == 1.5
        assert config.health_check_timeout_seconds == 0.25
        assert config.metrics_collection_interval_seconds == 60.0

    def test_log_level_normalized(self):
        settings = LoggingSettings(level="WARNING")

        assert settings.level == LogLevel.WARNING
        assert settings.to_logging_config().level.value == "warning"


class TestConfigManager:
    """Test configuration loading and environment overrides."""

    def test_load_defaults_without_file(self):
        config = ConfigManager(environ={}).load_config()
        assert config == MonitoringConfig()

    def test_load_from_file(self, config_path):
        config = load_config(config_path, environ={})

        assert config.health_check_interval == 15000
        assert config.health_check_timeout == 2000
        assert config.performance.memory_usage_threshold == 90
        assert config.performance.cpu_usage_threshold == 75
        # Keys absent from the file keep their defaults
        assert config.performance.disk_usage_threshold == 90
        assert config.gateway.latency_threshold == 800
        assert config.logging.level == LogLevel.DEBUG

    def test_missing_file(self, temp_dir):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(temp_dir / "missing.yaml", environ={})

    def test_environment_override_beats_file(self, config_path):
        manager = ConfigManager(environ={
            'MONITORING_HEALTH_CHECK_INTERVAL': '45000',
            'MONITORING_MEMORY_THRESHOLD': '70',
            'MONITORING_CPU_THRESHOLD': ' 65 '
        })
        config = manager.load_config(config_path)

        assert config.health_check_interval == 45000
        assert config.performance.memory_usage_threshold == 70
        assert config.performance.cpu_usage_threshold == 65
        # Untouched file values survive the merge
        assert config.health_check_timeout == 2000
        assert manager.get_environment_overrides() == {
            'MONITORING_HEALTH_CHECK_INTERVAL': 45000,
            'MONITORING_MEMORY_THRESHOLD': 70,
            'MONITORING_CPU_THRESHOLD': 65
        }

    def test_metrics_interval_override(self):
        config = load_config(environ={'MONITORING_METRICS_INTERVAL': '120000'})
        assert config.metrics_collection_interval == 120000

    def test_gateway_latency_alias(self):
        config = load_config(environ={'MONITORING_DISCORD_LATENCY_THRESHOLD': '1500'})
        assert config.gateway.latency_threshold == 1500

    def test_canonical_gateway_variable_wins(self):
        config = load_config(environ={
            'MONITORING_DISCORD_LATENCY_THRESHOLD': '1500',
            'MONITORING_GATEWAY_LATENCY_THRESHOLD': '2500'
        })
        assert config.gateway.latency_threshold == 2500

    def test_empty_variable_ignored(self):
        config = load_config(environ={'MONITORING_CPU_THRESHOLD': ''})
        assert config.performance.cpu_usage_threshold == 80

    def test_non_integer_override_rejected(self):
        with pytest.raises(ConfigurationError, match="MONITORING_MEMORY_THRESHOLD"):
            load_config(environ={'MONITORING_MEMORY_THRESHOLD': 'eighty'})

    def test_out_of_range_lists_every_field(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(environ={
                'MONITORING_MEMORY_THRESHOLD': '40',
                'MONITORING_CPU_THRESHOLD': '99'
            })

        message = str(exc_info.value)
        assert "memory_usage_threshold" in message
        assert "cpu_usage_threshold" in message

    def test_validate_config_reports_errors(self):
        errors = ConfigManager(environ={}).validate_config({
            'health_check_interval': 10,
            'performance': {'memory_usage_threshold': 30}
        })

        assert len(errors) == 2
        assert any("health_check_interval" in error for error in errors)
        assert any("memory_usage_threshold" in error for error in errors)


class TestConfigFiles:
    """Test file validation and export helpers."""

    def test_validate_valid_file(self, config_path):
        assert validate_config_file(config_path) == []

    def test_validate_invalid_file(self, temp_dir):
        path = temp_dir / "bad.yaml"
        with open(path, 'w') as f:
            yaml.dump({'performance': {'memory_usage_threshold': 40}}, f)

        errors = validate_config_file(path)
        assert len(errors) == 1
        assert "memory_usage_threshold" in errors[0]

    def test_validate_missing_file(self, temp_dir):
        errors = validate_config_file(temp_dir / "missing.yaml")
        assert errors and "Failed to load" in errors[0]

    def test_config_to_dict_is_yaml_safe(self):
        data = config_to_dict(MonitoringConfig())

        assert data['performance']['memory_usage_threshold'] == 85
        assert data['logging']['level'] == "info"
        assert yaml.safe_load(yaml.safe_dump(data)) == data
        assert MonitoringConfig(**data) == MonitoringConfig()
