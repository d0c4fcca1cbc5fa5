"""
Configuration management for the monitoring subsystem.

This module provides the validated, immutable monitoring configuration, YAML
loading, and integer environment variable overrides. Every duration is
expressed in milliseconds; out-of-range values abort construction instead of
being clamped.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
from dataclasses import field
from enum import Enum
import yaml
from pydantic import ConfigDict, TypeAdapter, ValidationError, Field, field_validator, model_validator
from pydantic.dataclasses import dataclass as pydantic_dataclass

from .utils.errors import ConfigurationError
from .utils.logging import get_logger, LoggingConfig, LogFormat, LogLevel as LoggerLevel


_STRICT = ConfigDict(extra="forbid")


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@pydantic_dataclass(frozen=True, config=_STRICT)
class PerformanceThresholds:
    """Process-level performance thresholds."""
    memory_usage_threshold: int = Field(default=85, ge=50, le=95, description="Resident memory alert threshold (%)")
    cpu_usage_threshold: int = Field(default=80, ge=50, le=95, description="Lifetime CPU alert threshold (%)")
    disk_usage_threshold: int = Field(default=90, ge=50, le=99, description="Disk usage alert threshold (%)")
    response_time_threshold: int = Field(default=5000, ge=1, le=600000, description="Slow API request threshold (ms)")


@pydantic_dataclass(frozen=True, config=_STRICT)
class GatewayThresholds:
    """Chat gateway thresholds."""
    latency_threshold: int = Field(default=1000, ge=100, le=10000, description="Round-trip latency before degraded (ms)")
    max_reconnect_attempts: int = Field(default=5, ge=0, le=100, description="Reconnect attempts before giving up")
    guild_count_threshold: int = Field(default=1, ge=0, description="Minimum expected guild count")


@pydantic_dataclass(frozen=True, config=_STRICT)
class DatastoreThresholds:
    """Relational datastore thresholds."""
    connection_timeout: int = Field(default=5000, ge=1, le=600000, description="Connection timeout (ms)")
    query_timeout: int = Field(default=10000, ge=1, le=600000, description="Query timeout (ms)")
    max_connections: int = Field(default=10, ge=1, le=1000, description="Connection pool size")

    @model_validator(mode='after')
    def validate_timeouts(self):
        """A query cannot be given less time than opening the connection."""
        if self.query_timeout < self.connection_timeout:
            raise ValueError(
                f"query_timeout ({self.query_timeout}) must be >= connection_timeout ({self.connection_timeout})"
            )
        return self


@pydantic_dataclass(frozen=True, config=_STRICT)
class CacheThresholds:
    """Key-value cache thresholds."""
    connection_timeout: int = Field(default=3000, ge=1, le=600000, description="Connection timeout (ms)")
    operation_timeout: int = Field(default=5000, ge=1, le=600000, description="Operation timeout (ms)")
    memory_usage_threshold: int = Field(default=80, ge=1, le=100, description="Cache memory alert threshold (%)")


@pydantic_dataclass(frozen=True, config=_STRICT)
class AlertPolicy:
    """Alert store capacity and policy knobs."""
    max_active_alerts: int = Field(default=50, ge=1, le=10000, description="Alert store capacity")
    alert_cooldown: int = Field(default=300000, ge=0, le=86400000, description="Cooldown callers may apply between similar alerts (ms)")
    critical_alert_threshold: int = Field(default=3, ge=1, le=1000, description="Active critical alerts before escalation")


@pydantic_dataclass(frozen=True, config=_STRICT)
class MetricsRetention:
    """Metrics buffer retention."""
    retention_period: int = Field(default=86400000, ge=1000, le=604800000, description="Maximum sample age (ms)")
    max_metrics_in_memory: int = Field(default=1000, ge=1, le=100000, description="Maximum buffered samples")


@pydantic_dataclass(frozen=True, config=_STRICT)
class LoggingSettings:
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    format: str = Field(default="colored", pattern="^(json|text|colored)$", description="Console log format")
    log_file: Optional[str] = Field(default=None, description="Path to log file")
    max_file_size_mb: int = Field(default=100, ge=1, le=1000, description="Maximum log file size (MB)")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of backup log files")
    console_output: bool = Field(default=True, description="Enable console output")
    json_output: bool = Field(default=False, description="Render structlog events as JSON")

    @field_validator('level', mode='before')
    @classmethod
    def normalize_level(cls, v):
        """Accept level names in any case."""
        if isinstance(v, str):
            return v.lower()
        return v

    def to_logging_config(self) -> LoggingConfig:
        """Build the runtime logging configuration."""
        return LoggingConfig(
            level=LoggerLevel(self.level.value),
            format=LogFormat(self.format),
            log_file=self.log_file,
            max_file_size_mb=self.max_file_size_mb,
            backup_count=self.backup_count,
            console_output=self.console_output,
            json_output=self.json_output
        )


@pydantic_dataclass(frozen=True, config=_STRICT)
class MonitoringConfig:
    """Top-level monitoring configuration. Durations are milliseconds."""
    health_check_interval: int = Field(default=30000, ge=1000, le=300000, description="Health check interval (ms)")
    health_check_timeout: int = Field(default=10000, ge=1, le=300000, description="Per-probe timeout (ms)")
    metrics_collection_interval: int = Field(default=60000, ge=1000, le=600000, description="Metrics collection interval (ms)")

    performance: PerformanceThresholds = field(default_factory=PerformanceThresholds)
    gateway: GatewayThresholds = field(default_factory=GatewayThresholds)
    datastore: DatastoreThresholds = field(default_factory=DatastoreThresholds)
    cache: CacheThresholds = field(default_factory=CacheThresholds)
    alerts: AlertPolicy = field(default_factory=AlertPolicy)
    metrics: MetricsRetention = field(default_factory=MetricsRetention)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @property
    def health_check_interval_seconds(self) -> float:
        return self.health_check_interval / 1000

    @property
    def health_check_timeout_seconds(self) -> float:
        return self.health_check_timeout / 1000

    @property
    def metrics_collection_interval_seconds(self) -> float:
        return self.metrics_collection_interval / 1000


# Environment variable -> dotted config path. Values are parsed as integers.
ENV_OVERRIDES: Dict[str, str] = {
    'MONITORING_HEALTH_CHECK_INTERVAL': 'health_check_interval',
    'MONITORING_METRICS_INTERVAL': 'metrics_collection_interval',
    'MONITORING_MEMORY_THRESHOLD': 'performance.memory_usage_threshold',
    'MONITORING_CPU_THRESHOLD': 'performance.cpu_usage_threshold',
    # Legacy name first so the canonical one wins when both are set
    'MONITORING_DISCORD_LATENCY_THRESHOLD': 'gateway.latency_threshold',
    'MONITORING_GATEWAY_LATENCY_THRESHOLD': 'gateway.latency_threshold',
}

_config_adapter = TypeAdapter(MonitoringConfig)


class ConfigManager:
    """Loads monitoring configuration from YAML and the environment."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        """
        Initialize configuration manager.

        Args:
            environ: Environment mapping to read overrides from (defaults to os.environ)
        """
        self._environ = environ if environ is not None else os.environ
        self._logger = get_logger(__name__)
        self._environment_overrides: Dict[str, int] = {}

    def load_config(
        self,
        config_path: Optional[Union[str, Path]] = None,
        merge_environment: bool = True
    ) -> MonitoringConfig:
        """
        Load configuration from an optional YAML file with validation.

        Args:
            config_path: Path to configuration file, or None for defaults
            merge_environment: Whether to merge environment variable overrides

        Returns:
            Loaded and validated configuration

        Raises:
            ConfigurationError: If the file cannot be read or values are invalid
        """
        config_data: Dict[str, Any] = {}
        path_str = str(config_path) if config_path else None

        if config_path is not None:
            config_data = self._read_yaml(Path(config_path))

        if merge_environment:
            config_data = self._merge_environment_overrides(config_data)

        return self.build_config(config_data, config_path=path_str)

    def build_config(
        self,
        config_data: Dict[str, Any],
        config_path: Optional[str] = None
    ) -> MonitoringConfig:
        """Validate a configuration dictionary, wrapping validation errors."""
        try:
            config = MonitoringConfig(**config_data)
        except ValidationError as e:
            error_details = self._format_validation_errors(e)
            raise ConfigurationError(
                f"Configuration validation failed:\n{error_details}",
                config_path=config_path,
                context={'validation_errors': error_details}
            )
        self._logger.debug("Monitoring configuration validated")
        return config

    def validate_config(self, config_dict: Dict[str, Any]) -> List[str]:
        """
        Validate configuration without building it.

        Returns:
            List of validation errors (empty if valid)
        """
        try:
            MonitoringConfig(**config_dict)
            return []
        except ValidationError as e:
            return self._format_validation_errors(e).split('\n')

    def get_environment_overrides(self) -> Dict[str, int]:
        """Get the environment overrides applied by the last load."""
        return self._environment_overrides.copy()

    def _read_yaml(self, config_path: Path) -> Dict[str, Any]:
        if not config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_path}",
                config_path=str(config_path)
            )

        self._logger.info(f"Loading configuration from {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)
        except (yaml.YAMLError, IOError) as e:
            raise ConfigurationError(
                f"Failed to load configuration file {config_path}: {e}",
                config_path=str(config_path),
                original_exception=e
            )

        if config_data is None:
            return {}
        if not isinstance(config_data, dict):
            raise ConfigurationError(
                f"Configuration file {config_path} must contain a mapping",
                config_path=str(config_path)
            )
        return config_data

    def _merge_environment_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Merge integer environment variable overrides into configuration."""
        overrides: Dict[str, Any] = {}
        self._environment_overrides = {}

        for env_var, config_path in ENV_OVERRIDES.items():
            value = self._environ.get(env_var)
            if value is None or value.strip() == '':
                continue

            converted_value = self._convert_env_value(env_var, value)
            self._set_nested_value(overrides, config_path, converted_value)
            self._environment_overrides[env_var] = converted_value

        if overrides:
            config_data = self._deep_merge(config_data, overrides)
            self._logger.info(f"Applied {len(self._environment_overrides)} environment overrides")

        return config_data

    def _convert_env_value(self, env_var: str, value: str) -> int:
        try:
            return int(value.strip())
        except ValueError as e:
            raise ConfigurationError(
                f"Environment variable {env_var} must be an integer (got: {value!r})",
                context={'env_var': env_var},
                original_exception=e
            )

    def _set_nested_value(self, dictionary: Dict[str, Any], path: str, value: Any) -> None:
        """Set a nested dictionary value using dot notation."""
        keys = path.split('.')
        current = dictionary

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _deep_merge(self, base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge two dictionaries."""
        result = base.copy()

        for key, value in updates.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _format_validation_errors(self, error: ValidationError) -> str:
        """Format validation errors into a readable string."""
        errors = []
        for err in error.errors():
            location = ' -> '.join(str(loc) for loc in err['loc'])
            message = err['msg']
            value = err.get('input', 'N/A')
            errors.append(f"  {location}: {message} (got: {value})")

        return '\n'.join(errors)


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None
) -> MonitoringConfig:
    """Load configuration from an optional file plus environment overrides."""
    return ConfigManager(environ=environ).load_config(config_path)


def config_to_dict(config: MonitoringConfig) -> Dict[str, Any]:
    """Convert configuration to a plain, YAML-safe dictionary."""
    return _config_adapter.dump_python(config, mode='json')


def validate_config_file(config_path: Union[str, Path]) -> List[str]:
    """
    Validate a configuration file without loading it.

    Args:
        config_path: Path to configuration file

    Returns:
        List of validation errors (empty if valid)
    """
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, IOError) as e:
        return [f"Failed to load configuration file: {e}"]

    if not isinstance(config_data, dict):
        return ["Configuration file must contain a mapping"]

    return ConfigManager(environ={}).validate_config(config_data)
