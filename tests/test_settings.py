"""
Tests for the pydantic settings layer.
"""

import pytest
from pydantic import ValidationError

from config import (
    HealthCheckSettings,
    LifecycleSettings,
    PoolSettings,
    RetrySettings,
    ShutdownSettings,
    load_settings,
)
from lifecycle_exceptions import ConfigurationError


def test_defaults():
    settings = LifecycleSettings()

    assert settings.pool.min_pool_size == 1
    assert settings.pool.max_pool_size == 10
    assert settings.pool.connect_timeout == 10.0
    assert settings.retry.base_delay == 0.5
    assert settings.retry.max_delay == 30.0
    assert settings.retry.max_attempts == 5
    assert settings.retry.jitter_fraction == 0.2
    assert settings.health.interval == 30.0
    assert settings.health.timeout == 5.0
    assert settings.health.unhealthy_threshold == 3
    assert settings.shutdown.grace_period == 10.0
    assert settings.shutdown.signals == ["SIGINT", "SIGTERM"]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("POOL_MAX_POOL_SIZE", "25")
    monkeypatch.setenv("RETRY_BASE_DELAY", "0.1")
    monkeypatch.setenv("SHUTDOWN_GRACE_PERIOD", "3")

    settings = LifecycleSettings()

    assert settings.pool.max_pool_size == 25
    assert settings.retry.base_delay == 0.1
    assert settings.shutdown.grace_period == 3.0


@pytest.mark.parametrize("raw", ["unlimited", "None", ""])
def test_unlimited_attempts_from_environment(monkeypatch, raw):
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", raw)

    assert RetrySettings().max_attempts is None


def test_pool_bounds_are_validated():
    with pytest.raises(ValidationError):
        PoolSettings(min_pool_size=5, max_pool_size=2)


def test_retry_bounds_are_validated():
    with pytest.raises(ValidationError):
        RetrySettings(base_delay=2.0, max_delay=1.0)
    with pytest.raises(ValidationError):
        RetrySettings(jitter_fraction=1.5)


def test_health_timeout_must_be_below_interval():
    with pytest.raises(ValidationError):
        HealthCheckSettings(interval=5.0, timeout=5.0)


def test_negative_grace_period_is_rejected():
    with pytest.raises(ValidationError):
        ShutdownSettings(grace_period=-1)


def test_yaml_round_trip(tmp_path):
    settings = LifecycleSettings(
        pool=PoolSettings(host="milvus.internal", max_pool_size=4),
        retry=RetrySettings(max_attempts=None),
    )
    path = tmp_path / "lifecycle.yaml"
    path.write_text(settings.to_yaml())

    loaded = load_settings(str(path))

    assert loaded.pool.host == "milvus.internal"
    assert loaded.pool.max_pool_size == 4
    assert loaded.retry.max_attempts is None
    assert loaded.shutdown.grace_period == settings.shutdown.grace_period


def test_invalid_yaml_values_raise_configuration_error(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("health:\n  interval: 1.0\n  timeout: 2.0\n")

    with pytest.raises(ConfigurationError):
        LifecycleSettings.from_yaml(path)


def test_missing_file_falls_back_to_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("HEALTH_UNHEALTHY_THRESHOLD", "7")

    settings = load_settings(str(tmp_path / "missing.yaml"))

    assert settings.health.unhealthy_threshold == 7
