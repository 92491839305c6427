"""
Retry policy and backoff calculation for outbound calls.
"""

import random
from dataclasses import dataclass

BACKOFF_STRATEGIES = ("exponential", "linear", "fixed")
JITTER_RATIO = 0.1


@dataclass(frozen=True)
class RetryConfig:
    """How many attempts a logical call gets and how long to wait between them.

    Attempts are 1-based. The delay after attempt ``n`` is
    ``base_delay * exponential_base ** (n - 1)`` for the exponential strategy,
    capped at ``max_delay``.
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 5.0
    exponential_base: float = 2.0
    jitter: bool = False
    backoff_strategy: str = "exponential"

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_strategy not in BACKOFF_STRATEGIES:
            raise ValueError(f"unknown backoff strategy: {self.backoff_strategy}")


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait after the given failed attempt."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * config.exponential_base ** (attempt - 1)
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    else:
        delay = config.base_delay

    delay = min(delay, config.max_delay)

    if config.jitter:
        spread = delay * JITTER_RATIO
        delay += random.uniform(-spread, spread)

    return max(0.0, delay)
