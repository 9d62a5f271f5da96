"""Core configuration management for kairo.

This module provides the main configuration classes and loading functionality
with YAML file and environment variable support.
"""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from kairo.core.orchestrator import OrchestratorConfig
from kairo.storage.cache import CacheProvider, InMemoryCacheProvider
from kairo.storage.sqlite_cache import SQLiteCacheProvider
from kairo.utils.retry import RetryPolicy
from kairo.utils.telemetry import setup_logging, setup_tracing, start_metrics_server


class ConfigError(Exception):
    """Configuration-related errors."""

    pass


class ExecutorConfig(BaseModel):
    """Defaults applied by executors to jobs that do not set their own."""

    default_timeout: float | None = None
    default_max_retries: int = 0
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_backoff_multiplier: float = 2.0

    def retry_policy(self) -> RetryPolicy | None:
        """Build the default retry policy, or None when retries are off."""
        if self.default_max_retries <= 0:
            return None
        return RetryPolicy(
            max_retries=self.default_max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            backoff_multiplier=self.retry_backoff_multiplier,
        )


class CacheConfig(BaseModel):
    """Cache backend configuration."""

    backend: Literal["memory", "sqlite"] = "memory"
    max_entries: int = 1000
    default_ttl_seconds: float | None = None
    sqlite_path: str = "kairo_cache.db"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "text"] = "json"
    enable_pii_redaction: bool = True


class MetricsConfig(BaseModel):
    """Metrics configuration."""

    enabled: bool = False
    port: int = 8000


class TracingConfig(BaseModel):
    """Tracing configuration."""

    enabled: bool = False
    service_name: str = "kairo"
    otlp_endpoint: str | None = None


class Config(BaseModel):
    """Main configuration class for kairo.

    This class combines all configuration sections and provides
    validation and environment variable loading.
    """

    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    tracing: TracingConfig = Field(default_factory=TracingConfig)

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("orchestrator", mode="before")
    @classmethod
    def validate_orchestrator_config(cls, v):
        """Validate orchestrator configuration."""
        if isinstance(v, dict):
            return OrchestratorConfig(**v)
        return v


def load_config_from_file(config_path: Path) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Loaded configuration

    Raises:
        ConfigError: If configuration is invalid or file cannot be read
    """
    try:
        with open(config_path) as f:
            config_data = yaml.safe_load(f)

        if config_data is None:
            config_data = {}

        return Config(**config_data)

    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e
    except (ValidationError, TypeError) as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e


def _env_number(name: str, convert: type[int] | type[float]) -> int | float | None:
    env_val = os.getenv(name)
    if env_val is None:
        return None
    try:
        return convert(env_val)
    except ValueError as e:
        raise ConfigError(f"Invalid {name}: {env_val}") from e


def load_config_from_env() -> Config:
    """Load configuration from environment variables.

    Environment variables are mapped as follows:
    - KAIRO_ENVIRONMENT: Environment name (development/staging/production)
    - KAIRO_DEBUG: Enable debug mode (true/false)
    - KAIRO_LOG_LEVEL: Logging level
    - KAIRO_LOG_FORMAT: Logging format (json/text)
    - KAIRO_METRICS_PORT: Metrics server port
    - KAIRO_OTLP_ENDPOINT: OTLP endpoint, enables tracing
    - KAIRO_MAX_EVENTS_PER_WINDOW: Rate limit per event kind and window
    - KAIRO_RATE_LIMIT_WINDOW_SECONDS: Rate limit window length
    - KAIRO_DEFAULT_TIMEOUT: Default job timeout in seconds
    - KAIRO_DEFAULT_MAX_RETRIES: Default retry count
    - KAIRO_CACHE_BACKEND: Cache backend (memory/sqlite)
    - KAIRO_CACHE_SQLITE_PATH: SQLite cache file
    - KAIRO_CACHE_TTL_SECONDS: Default cache TTL

    Returns:
        Configuration loaded from environment variables
    """
    config_data: dict = {}

    if env_val := os.getenv("KAIRO_ENVIRONMENT"):
        config_data["environment"] = env_val
    if env_val := os.getenv("KAIRO_DEBUG"):
        config_data["debug"] = env_val.lower() in ("true", "1", "yes", "on")

    logging_config = {}
    if env_val := os.getenv("KAIRO_LOG_LEVEL"):
        logging_config["level"] = env_val.upper()
    if env_val := os.getenv("KAIRO_LOG_FORMAT"):
        logging_config["format"] = env_val.lower()
    if logging_config:
        config_data["logging"] = logging_config

    if (port := _env_number("KAIRO_METRICS_PORT", int)) is not None:
        config_data["metrics"] = {"enabled": True, "port": port}

    if env_val := os.getenv("KAIRO_OTLP_ENDPOINT"):
        config_data["tracing"] = {"enabled": True, "otlp_endpoint": env_val}

    orchestrator_config = {}
    if (value := _env_number("KAIRO_MAX_EVENTS_PER_WINDOW", int)) is not None:
        orchestrator_config["max_events_per_window"] = value
    if (value := _env_number("KAIRO_RATE_LIMIT_WINDOW_SECONDS", float)) is not None:
        orchestrator_config["rate_limit_window_seconds"] = value
    if orchestrator_config:
        config_data["orchestrator"] = orchestrator_config

    executor_config = {}
    if (value := _env_number("KAIRO_DEFAULT_TIMEOUT", float)) is not None:
        executor_config["default_timeout"] = value
    if (value := _env_number("KAIRO_DEFAULT_MAX_RETRIES", int)) is not None:
        executor_config["default_max_retries"] = value
    if executor_config:
        config_data["executor"] = executor_config

    cache_config: dict = {}
    if env_val := os.getenv("KAIRO_CACHE_BACKEND"):
        cache_config["backend"] = env_val.lower()
    if env_val := os.getenv("KAIRO_CACHE_SQLITE_PATH"):
        cache_config["sqlite_path"] = env_val
    if (value := _env_number("KAIRO_CACHE_TTL_SECONDS", float)) is not None:
        cache_config["default_ttl_seconds"] = value
    if cache_config:
        config_data["cache"] = cache_config

    try:
        return Config(**config_data)
    except ValidationError as e:
        raise ConfigError(f"Environment configuration validation failed: {e}") from e


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file and environment variables.

    Configuration is loaded in the following order (later sources override earlier):
    1. Default values
    2. Configuration file (if provided)
    3. Environment variables

    Args:
        config_path: Optional path to configuration file

    Returns:
        Merged configuration
    """
    config = Config()

    if config_path and config_path.exists():
        file_config = load_config_from_file(config_path)
        config = _merge(config, file_config)

    env_config = load_config_from_env()
    return _merge(config, env_config)


def _merge(base: Config, override: Config) -> Config:
    # Sections the override did not set keep the base values.
    merged = dict(base)
    merged.update({name: getattr(override, name) for name in override.model_fields_set})
    return Config(**merged)


def validate_config(config: Config) -> None:
    """Validate configuration for consistency and correctness.

    Args:
        config: Configuration to validate

    Raises:
        ConfigError: If configuration is invalid
    """
    if config.orchestrator.max_events_per_window <= 0:
        raise ConfigError("max_events_per_window must be positive")

    if config.orchestrator.rate_limit_window_seconds <= 0:
        raise ConfigError("rate_limit_window_seconds must be positive")

    for kind, limit in config.orchestrator.event_limits.items():
        if limit <= 0:
            raise ConfigError(f"event limit for {kind} must be positive")

    timeout = config.executor.default_timeout
    if timeout is not None and timeout <= 0:
        raise ConfigError("executor.default_timeout must be positive")

    if config.executor.default_max_retries < 0:
        raise ConfigError("executor.default_max_retries must be non-negative")

    if config.executor.retry_backoff_multiplier < 1.0:
        raise ConfigError("executor.retry_backoff_multiplier must be >= 1.0")

    if config.cache.max_entries <= 0:
        raise ConfigError("cache.max_entries must be positive")

    ttl = config.cache.default_ttl_seconds
    if ttl is not None and ttl <= 0:
        raise ConfigError("cache.default_ttl_seconds must be positive")

    if config.metrics.port <= 0 or config.metrics.port > 65535:
        raise ConfigError("metrics.port must be between 1 and 65535")

    if config.environment == "production":
        if config.debug:
            raise ConfigError("Debug mode should not be enabled in production")
        if not config.logging.enable_pii_redaction:
            raise ConfigError("PII redaction should be enabled in production")


def build_cache(config: Config) -> CacheProvider:
    """Create the cache provider selected by ``config.cache``.

    A SQLite provider still needs ``await provider.initialize()``.
    """
    if config.cache.backend == "sqlite":
        return SQLiteCacheProvider(
            db_path=config.cache.sqlite_path,
            default_ttl=config.cache.default_ttl_seconds,
        )

    return InMemoryCacheProvider(
        max_entries=config.cache.max_entries,
        default_ttl=config.cache.default_ttl_seconds,
    )


def executor_defaults(config: Config) -> dict[str, Any]:
    """Keyword arguments applying ``config.executor`` to an executor.

    Example:
        >>> executor = FetchUserExecutor(bus=bus, **executor_defaults(config))
    """
    return {
        "default_timeout": config.executor.default_timeout,
        "default_retry_policy": config.executor.retry_policy(),
    }


def configure_telemetry(config: Config) -> None:
    """Apply the logging, tracing and metrics sections of ``config``.

    Call once at application startup, before creating buses and executors.
    """
    setup_logging(
        log_level=config.logging.level,
        enable_pii_redaction=config.logging.enable_pii_redaction,
        json_format=config.logging.format == "json",
    )

    if config.tracing.enabled:
        setup_tracing(
            service_name=config.tracing.service_name,
            otlp_endpoint=config.tracing.otlp_endpoint,
        )

    if config.metrics.enabled:
        start_metrics_server(config.metrics.port)
