"""
Retry Service - Backoff Module.

Module: backoff.py
Capped exponential backoff with optional bounded jitter.

    delay  = min(base_delay * backoff_multiplier ** retry_count, max_delay)
    jitter = random() * 0.1 * delay   (0 when jitter is disabled)
    next   = now + delay + jitter

Example with defaults: 1min, 2min, 4min, ... capped at 1h.
"""

import random
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any

from app.utils.datetime_utils import utc_now

from .constants import (
    BACKOFF_MULTIPLIER,
    BASE_DELAY_MS,
    MAX_DELAY_MS,
    MAX_JITTER_FRACTION,
    WEBHOOK_BASE_DELAY_MS,
    WEBHOOK_MAX_DELAY_MS,
    WEBHOOK_MAX_RETRIES,
)


@dataclass(frozen=True)
class RetryConfig:
    """Per-item backoff configuration. Delays are in milliseconds."""

    base_delay: int = BASE_DELAY_MS
    max_delay: int = MAX_DELAY_MS
    backoff_multiplier: float = BACKOFF_MULTIPLIER
    jitter_enabled: bool = False
    max_retries: int | None = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "RetryConfig":
        """
        Build a config from a stored JSON mapping.

        Missing or falsy fields fall back to the defaults, so an empty or
        absent mapping yields the default policy with jitter off.

        Args:
            mapping: Stored retry_config (camelCase keys are accepted)

        Returns:
            RetryConfig
        """
        mapping = mapping or {}

        def pick(snake: str, camel: str) -> Any:
            return mapping.get(snake) or mapping.get(camel)

        return cls(
            base_delay=pick("base_delay", "baseDelay") or BASE_DELAY_MS,
            max_delay=pick("max_delay", "maxDelay") or MAX_DELAY_MS,
            backoff_multiplier=(
                pick("backoff_multiplier", "backoffMultiplier") or BACKOFF_MULTIPLIER
            ),
            jitter_enabled=bool(pick("jitter_enabled", "jitterEnabled")),
            max_retries=pick("max_retries", "maxRetries"),
        )

    def with_multiplier(self, multiplier: float | None) -> "RetryConfig":
        """Copy of this config using the item's own multiplier when set."""
        if not multiplier:
            return self
        return replace(self, backoff_multiplier=multiplier)


# Webhook events: 1s base, 5 min cap, jitter on
WEBHOOK_RETRY_CONFIG = RetryConfig(
    base_delay=WEBHOOK_BASE_DELAY_MS,
    max_delay=WEBHOOK_MAX_DELAY_MS,
    backoff_multiplier=BACKOFF_MULTIPLIER,
    jitter_enabled=True,
    max_retries=WEBHOOK_MAX_RETRIES,
)


def compute_delay_ms(retry_count: int, config: RetryConfig) -> float:
    """
    Deterministic part of the delay.

    Args:
        retry_count: Exponent (non-negative)
        config: Backoff configuration

    Returns:
        Delay in milliseconds, never above config.max_delay
    """
    if retry_count < 0:
        raise ValueError(f"retry_count must be >= 0, got {retry_count}")

    # A multiplier of 1 or less never grows, so the loop would not stop early
    if config.backoff_multiplier <= 1:
        delay = config.base_delay * config.backoff_multiplier ** retry_count
        return min(float(delay), float(config.max_delay))

    # Skip the power once it is certain to saturate; keeps huge counts finite
    delay = float(config.base_delay)
    for _ in range(retry_count):
        delay *= config.backoff_multiplier
        if delay >= config.max_delay:
            return float(config.max_delay)
    return min(delay, float(config.max_delay))


def compute_jitter_ms(
    delay_ms: float,
    enabled: bool,
    rand: Callable[[], float] = random.random,
) -> float:
    """Jitter in [0, 0.1 * delay_ms] when enabled, else 0."""
    if not enabled:
        return 0.0
    return rand() * MAX_JITTER_FRACTION * delay_ms


def calculate_next_retry_time(
    retry_count: int,
    config: RetryConfig | Mapping[str, Any] | None = None,
    now: datetime | None = None,
    rand: Callable[[], float] = random.random,
) -> datetime:
    """
    Calculate next retry time using capped exponential backoff.

    Args:
        retry_count: Exponent for the backoff
        config: RetryConfig or stored mapping (defaults when None)
        now: Reference time (defaults to current UTC time)
        rand: Source of uniform [0, 1) values for jitter

    Returns:
        Next retry datetime
    """
    if not isinstance(config, RetryConfig):
        config = RetryConfig.from_mapping(config)

    now = now or utc_now()
    delay = compute_delay_ms(retry_count, config)
    jitter = compute_jitter_ms(delay, config.jitter_enabled, rand)
    return now + timedelta(milliseconds=delay + jitter)
