"""
Backoff Policy

Exponential backoff with multiplicative jitter for connect retries. The
jitter spreads retries from many processes so a recovering service is not
hit by synchronized retry storms.
"""

import random
from dataclasses import dataclass, field
from typing import Optional

from lifecycle_exceptions import ConfigurationError

# 2**63 already exceeds any sensible max_delay
_MAX_EXPONENT = 63


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Immutable retry delay calculator.

    The delay before attempt ``n + 1`` is ``min(base_delay * 2**(n-1), max_delay)``
    scaled by a random factor in ``[1 - jitter_fraction, 1 + jitter_fraction]``
    and clamped to ``max_delay`` again, so no delay ever exceeds the cap.

    Example:
        >>> policy = BackoffPolicy(base_delay=0.1, max_delay=5.0, max_attempts=5, jitter_fraction=0.0)
        >>> policy.next_delay(1), policy.next_delay(2), policy.next_delay(3)
        (0.1, 0.2, 0.4)
    """
    base_delay: float = 0.5
    max_delay: float = 30.0
    max_attempts: Optional[int] = 5
    jitter_fraction: float = 0.2
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    def __post_init__(self):
        """Reject malformed configuration at construction time."""
        if self.base_delay < 0:
            raise ConfigurationError(f"base_delay cannot be negative (got {self.base_delay})")
        if self.max_delay < 0:
            raise ConfigurationError(f"max_delay cannot be negative (got {self.max_delay})")
        if self.max_delay < self.base_delay:
            raise ConfigurationError(
                f"max_delay ({self.max_delay}) cannot be smaller than base_delay ({self.base_delay})"
            )
        if not 0.0 <= self.jitter_fraction <= 1.0:
            raise ConfigurationError(
                f"jitter_fraction must be between 0.0 and 1.0 (got {self.jitter_fraction})"
            )
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be at least 1 (got {self.max_attempts})")

    @classmethod
    def from_settings(cls, settings, rng: Optional[random.Random] = None) -> "BackoffPolicy":
        """Build a policy from a ``RetrySettings`` section."""
        return cls(
            base_delay=settings.base_delay,
            max_delay=settings.max_delay,
            max_attempts=settings.max_attempts,
            jitter_fraction=settings.jitter_fraction,
            rng=rng or random.Random(),
        )

    @property
    def unlimited(self) -> bool:
        return self.max_attempts is None

    def allows_attempt(self, attempt: int) -> bool:
        """Whether a sequence may make its ``attempt``-th (1-indexed) attempt."""
        return self.max_attempts is None or attempt <= self.max_attempts

    def base_delay_for(self, attempt: int) -> float:
        """Capped exponential delay for ``attempt`` without jitter."""
        exponent = min(max(attempt, 1) - 1, _MAX_EXPONENT)
        return min(self.base_delay * (2 ** exponent), self.max_delay)

    def next_delay(self, attempt: int) -> float:
        """
        Compute the delay in seconds to wait after the ``attempt``-th failure.

        Args:
            attempt: 1-indexed number of the attempt that just failed. Values
                    below 1 are treated as 1.

        Returns:
            float: Delay in seconds, never larger than ``max_delay``
        """
        delay = self.base_delay_for(attempt)
        if self.jitter_fraction:
            factor = self.rng.uniform(1.0 - self.jitter_fraction, 1.0 + self.jitter_fraction)
            delay = min(delay * factor, self.max_delay)
        return delay
