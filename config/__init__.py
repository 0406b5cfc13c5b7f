"""
Configuration Module

This module provides centralized configuration management for the pool lifecycle:
- Backing service target and pool sizing
- Backoff policy tuning
- Health monitor tuning
- Shutdown coordinator tuning
- Logging of lifecycle events

Settings are read from environment variables and YAML files and validated
with Pydantic.
"""

from .settings import (
    LifecycleSettings,
    PoolSettings,
    RetrySettings,
    HealthCheckSettings,
    ShutdownSettings,
    MonitoringSettings,
    load_settings,
)

__all__ = [
    'LifecycleSettings',
    'PoolSettings',
    'RetrySettings',
    'HealthCheckSettings',
    'ShutdownSettings',
    'MonitoringSettings',
    'load_settings',
]
