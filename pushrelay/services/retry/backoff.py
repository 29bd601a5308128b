from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from pushrelay.core.config import Settings, get_settings


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay_ms: int = 5000
    backoff_multiplier: float = 2.0
    max_delay_ms: int = 300000

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RetryConfig:
        settings = settings or get_settings()
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_ms=settings.retry_base_delay_ms,
            backoff_multiplier=settings.retry_backoff_multiplier,
            max_delay_ms=settings.retry_max_delay_ms,
        )


DEFAULT_RETRY_CONFIG = RetryConfig()


def next_delay_ms(attempts: int, config: RetryConfig = DEFAULT_RETRY_CONFIG) -> int:
    """Delay before the next attempt after ``attempts`` failed attempts.

    ``base * multiplier ** (attempts - 1)`` capped at ``max_delay_ms``; attempts below 1
    are treated as 1.
    """
    exponent = max(1, int(attempts)) - 1
    try:
        delay = config.base_delay_ms * float(config.backoff_multiplier) ** exponent
    except OverflowError:
        return config.max_delay_ms
    return int(min(delay, config.max_delay_ms))


def next_retry_at(now: datetime, attempts: int, config: RetryConfig = DEFAULT_RETRY_CONFIG) -> datetime:
    return now + timedelta(milliseconds=next_delay_ms(attempts, config))
