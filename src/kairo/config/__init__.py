"""Configuration management for kairo.

This module provides configuration loading and validation for the job engine.
"""

from .config import (
    CacheConfig,
    Config,
    ConfigError,
    ExecutorConfig,
    LoggingConfig,
    MetricsConfig,
    TracingConfig,
    build_cache,
    configure_telemetry,
    executor_defaults,
    load_config,
    load_config_from_env,
    load_config_from_file,
    validate_config,
)

__all__ = [
    "CacheConfig",
    "Config",
    "ConfigError",
    "ExecutorConfig",
    "LoggingConfig",
    "MetricsConfig",
    "TracingConfig",
    "build_cache",
    "configure_telemetry",
    "executor_defaults",
    "load_config",
    "load_config_from_env",
    "load_config_from_file",
    "validate_config",
]
