"""
Pydantic Settings for Pool Lifecycle Management

This module provides strongly-typed configuration settings using Pydantic,
with support for environment variables and YAML configuration files.
"""

from typing import Any, List, Optional, Union
from pathlib import Path
import os

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_yaml import to_yaml_str

from lifecycle_exceptions import ConfigurationError


class PoolSettings(BaseSettings):
    """
    Pool settings for establishing and sizing connections to the backing service.

    These settings control:
    - Where the backing service lives
    - How many connections the pool keeps open
    - How long a single connect attempt may take before it counts as failed
    - The default timeout applied to operations issued through the manager
    """
    host: str = Field("localhost", description="Hostname or IP address of the backing service")
    port: str = Field("19530", description="Port number on which the backing service is listening")
    secure: bool = Field(False, description="Whether to use TLS/SSL for the connection")
    min_pool_size: int = Field(1, ge=1,
                               description="Connections opened eagerly when the pool is opened")
    max_pool_size: int = Field(10, ge=1,
                               description="Upper bound on concurrently held connections in the pool")
    connect_timeout: float = Field(10.0, gt=0,
                                   description="Seconds a single connect attempt may take before it counts as failed")
    operation_timeout: float = Field(30.0, gt=0,
                                     description="Default timeout in seconds for operations issued through the manager")

    model_config = SettingsConfigDict(env_prefix="POOL_", case_sensitive=False)

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "PoolSettings":
        if self.min_pool_size > self.max_pool_size:
            raise ValueError(
                f"min_pool_size ({self.min_pool_size}) cannot exceed max_pool_size ({self.max_pool_size})"
            )
        return self


class RetrySettings(BaseSettings):
    """
    Retry settings used to build the BackoffPolicy.

    Delays grow exponentially from ``base_delay`` up to ``max_delay`` and are
    spread by ``jitter_fraction`` so many processes do not retry in lockstep.
    ``max_attempts`` of ``None`` means retry until cancelled.
    """
    base_delay: float = Field(0.5, ge=0, description="Delay in seconds before the second attempt")
    max_delay: float = Field(30.0, ge=0, description="Upper bound on any single backoff delay in seconds")
    max_attempts: Optional[int] = Field(5, ge=1,
                                        description="Connect attempts per sequence (None = unlimited)")
    jitter_fraction: float = Field(0.2, ge=0, le=1,
                                   description="Multiplicative jitter applied to every delay (0.0-1.0)")

    model_config = SettingsConfigDict(env_prefix="RETRY_", case_sensitive=False)

    @field_validator("max_attempts", mode="before")
    @classmethod
    def _parse_unlimited(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in ("", "none", "unlimited"):
            return None
        return value

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> "RetrySettings":
        if self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) cannot be smaller than base_delay ({self.base_delay})"
            )
        return self


class HealthCheckSettings(BaseSettings):
    """
    Health check settings for the periodic liveness probe.

    The probe timeout must be shorter than the interval so a hung probe can
    never overlap with the next one.
    """
    enabled: bool = Field(True, description="Whether the manager runs the periodic health probe")
    interval: float = Field(30.0, gt=0, description="Seconds between the start of two probes")
    timeout: float = Field(5.0, gt=0, description="Seconds a single probe may take")
    unhealthy_threshold: int = Field(3, ge=1,
                                     description="Consecutive failed probes that trigger a reconnect")

    model_config = SettingsConfigDict(env_prefix="HEALTH_", case_sensitive=False)

    @model_validator(mode="after")
    def _check_timeout(self) -> "HealthCheckSettings":
        if self.timeout >= self.interval:
            raise ValueError(
                f"health check timeout ({self.timeout}s) must be shorter than the interval ({self.interval}s)"
            )
        return self


class ShutdownSettings(BaseSettings):
    """Shutdown settings for the drain window and the handled termination signals."""
    grace_period: float = Field(10.0, ge=0,
                                description="Seconds in-flight operations get to finish before the pool is force-closed")
    signals: List[str] = Field(default_factory=lambda: ["SIGINT", "SIGTERM"],
                               description="Termination signals that start the shutdown sequence")

    model_config = SettingsConfigDict(env_prefix="SHUTDOWN_", case_sensitive=False)


class MonitoringSettings(BaseSettings):
    """Monitoring settings controlling how lifecycle events are logged."""
    log_level: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    log_format: str = Field("%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                            description="Format string passed to logging.basicConfig")
    log_events: bool = Field(True, description="Whether lifecycle events are written to the log")

    model_config = SettingsConfigDict(env_prefix="MONITORING_", case_sensitive=False)


class LifecycleSettings(BaseSettings):
    """
    Main settings class that consolidates all configuration categories.

    Usage:
        # Load from environment variables and defaults
        settings = LifecycleSettings()

        # Load from YAML file
        settings = LifecycleSettings.from_yaml('config.yaml')

        # Access nested settings
        grace = settings.shutdown.grace_period
        threshold = settings.health.unhealthy_threshold
    """
    pool: PoolSettings = Field(default_factory=PoolSettings,
                               description="Backing service target and pool sizing")
    retry: RetrySettings = Field(default_factory=RetrySettings,
                                 description="Backoff policy tuning")
    health: HealthCheckSettings = Field(default_factory=HealthCheckSettings,
                                        description="Health monitor tuning")
    shutdown: ShutdownSettings = Field(default_factory=ShutdownSettings,
                                       description="Shutdown coordinator tuning")
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings,
                                           description="Logging of lifecycle events")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False, env_nested_delimiter="__")

    @classmethod
    def from_yaml(cls, yaml_file: Union[str, Path]) -> "LifecycleSettings":
        """Load settings from YAML file"""
        import yaml
        with open(yaml_file, 'r') as f:
            data = yaml.safe_load(f) or {}
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {yaml_file}: {e}") from e

    def to_yaml(self) -> str:
        """Serialize the settings to a YAML string"""
        return to_yaml_str(self)


def load_settings(config_path: Optional[str] = None) -> LifecycleSettings:
    """
    Load settings from file and/or environment variables.

    - If config_path is provided and exists, loads settings from the YAML file
    - Otherwise, creates a new settings instance with values from environment variables

    Args:
        config_path: Path to YAML configuration file. If None or file doesn't exist,
                    falls back to environment variables and default values.

    Returns:
        LifecycleSettings object with loaded configuration

    Raises:
        ConfigurationError: If any value fails validation
    """
    if config_path and os.path.exists(config_path):
        return LifecycleSettings.from_yaml(config_path)
    try:
        return LifecycleSettings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
