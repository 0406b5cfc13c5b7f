"""
Tests for the BackoffPolicy delay calculator.
"""

import random
import dataclasses

import pytest

from config import RetrySettings
from connection_management import BackoffPolicy
from lifecycle_exceptions import ConfigurationError


def test_delays_double_until_capped():
    policy = BackoffPolicy(base_delay=0.1, max_delay=0.5, max_attempts=10, jitter_fraction=0.0)

    delays = [policy.next_delay(attempt) for attempt in range(1, 6)]

    assert delays == pytest.approx([0.1, 0.2, 0.4, 0.5, 0.5])


def test_delay_never_exceeds_max_delay_even_with_full_jitter():
    policy = BackoffPolicy(base_delay=0.5, max_delay=3.0, jitter_fraction=1.0, rng=random.Random(7))

    for attempt in range(1, 200):
        delay = policy.next_delay(attempt)
        assert 0.0 <= delay <= 3.0


def test_huge_attempt_numbers_do_not_overflow():
    policy = BackoffPolicy(base_delay=1.0, max_delay=30.0, jitter_fraction=0.0)

    assert policy.next_delay(10_000) == 30.0


def test_expected_delay_is_non_decreasing():
    policy = BackoffPolicy(base_delay=0.25, max_delay=10.0)

    expected = [policy.base_delay_for(attempt) for attempt in range(1, 20)]

    assert expected == sorted(expected)


def test_jitter_stays_within_fraction_of_base_delay():
    policy = BackoffPolicy(base_delay=0.1, max_delay=10.0, jitter_fraction=0.25, rng=random.Random(42))

    samples = [policy.next_delay(3) for _ in range(500)]

    assert min(samples) >= 0.4 * 0.75
    assert max(samples) <= 0.4 * 1.25
    # jitter actually spreads the values
    assert len(set(samples)) > 1


def test_attempt_below_one_is_treated_as_first_attempt():
    policy = BackoffPolicy(base_delay=0.2, max_delay=1.0, jitter_fraction=0.0)

    assert policy.next_delay(0) == policy.next_delay(1) == 0.2
    assert policy.next_delay(-3) == 0.2


def test_allows_attempt_respects_budget():
    policy = BackoffPolicy(max_attempts=3)

    assert policy.allows_attempt(1)
    assert policy.allows_attempt(3)
    assert not policy.allows_attempt(4)
    assert not policy.unlimited


def test_unlimited_policy_allows_any_attempt():
    policy = BackoffPolicy(max_attempts=None)

    assert policy.unlimited
    assert policy.allows_attempt(1_000_000)


@pytest.mark.parametrize("kwargs", [
    {"base_delay": -0.1},
    {"max_delay": -1.0},
    {"base_delay": 5.0, "max_delay": 1.0},
    {"jitter_fraction": -0.1},
    {"jitter_fraction": 1.5},
    {"max_attempts": 0},
])
def test_malformed_configuration_is_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        BackoffPolicy(**kwargs)


def test_policy_is_immutable():
    policy = BackoffPolicy()

    with pytest.raises(dataclasses.FrozenInstanceError):
        policy.max_delay = 1.0


def test_from_settings_copies_every_field():
    settings = RetrySettings(base_delay=0.3, max_delay=4.0, max_attempts=7, jitter_fraction=0.1)

    policy = BackoffPolicy.from_settings(settings)

    assert policy.base_delay == 0.3
    assert policy.max_delay == 4.0
    assert policy.max_attempts == 7
    assert policy.jitter_fraction == 0.1
