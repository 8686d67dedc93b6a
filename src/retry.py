"""
ChapterIP - Retry Logic with Exponential Backoff

Backoff primitives shared by the ledger client wrappers. The ledger
error classifier decides *whether* and *how often* to retry; this module
owns the loop, the delay curve, and the bookkeeping.

Usage:
    from retry import RetryConfig, retry_call

    result = retry_call(
        submit_tx,
        config=RetryConfig(max_retries=5, base_delay=1.0),
        should_retry=is_retryable_error,
    )

Environment Variables:
    RETRY_MAX_ATTEMPTS=3
    RETRY_BASE_DELAY=2.0
    RETRY_MAX_DELAY=30.0
    RETRY_EXPONENTIAL_BASE=1.5
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Hard ceiling on any single backoff sleep (seconds)
MAX_BACKOFF_DELAY = 30.0


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    # Total attempts, including the first one
    max_retries: int = 3
    base_delay: float = 2.0  # Initial delay in seconds
    exponential_base: float = 1.5  # Multiplier applied per attempt
    max_delay: float = MAX_BACKOFF_DELAY

    # Logging
    log_retries: bool = True
    log_level: int = logging.WARNING

    @classmethod
    def from_env(cls) -> "RetryConfig":
        """Create configuration from environment variables."""
        return cls(
            max_retries=int(os.getenv("RETRY_MAX_ATTEMPTS", "3")),
            base_delay=float(os.getenv("RETRY_BASE_DELAY", "2.0")),
            max_delay=float(os.getenv("RETRY_MAX_DELAY", str(MAX_BACKOFF_DELAY))),
            exponential_base=float(os.getenv("RETRY_EXPONENTIAL_BASE", "1.5")),
        )


@dataclass
class RetryStats:
    """Statistics from retry operations."""

    attempts: int = 0
    successes: int = 0
    failures: int = 0
    retries: int = 0
    total_delay: float = 0.0
    last_error: str | None = None

    def record_attempt(self, success: bool, delay: float = 0.0, error: str | None = None):
        """Record an attempt."""
        self.attempts += 1

        if success:
            self.successes += 1
        else:
            self.failures += 1
            self.last_error = error

        if delay > 0:
            self.retries += 1
            self.total_delay += delay


def calculate_delay(
    attempt: int,
    base_delay: float,
    exponential_base: float = 1.5,
    max_delay: float = MAX_BACKOFF_DELAY,
) -> float:
    """
    Calculate the backoff delay before the next attempt.

    Args:
        attempt: Attempt that just failed (0-indexed)
        base_delay: Initial delay in seconds
        exponential_base: Multiplier for exponential growth
        max_delay: Maximum delay cap

    Returns:
        Delay in seconds
    """
    delay = base_delay * (exponential_base ** attempt)
    return max(0.0, min(delay, max_delay))


def retry_call(
    func: Callable[[], Any],
    config: RetryConfig | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    stats: RetryStats | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> Any:
    """
    Execute a function, retrying failures the predicate accepts.

    The original exception is re-raised unchanged when it is not
    retryable or when the final attempt fails.

    Args:
        func: Zero-argument callable to run
        config: Retry configuration
        should_retry: Predicate deciding whether an exception is retryable
        sleep: Sleep function (injected by tests)
        stats: Optional stats accumulator
        on_retry: Optional callback (attempt, exception, delay)

    Returns:
        Result of the function call
    """
    config = config or RetryConfig()
    stats = stats if stats is not None else RetryStats()
    attempts = max(1, config.max_retries)

    for attempt in range(attempts):
        try:
            result = func()
            stats.record_attempt(success=True)
            return result

        except Exception as e:
            retryable = should_retry(e) if should_retry else True

            if not retryable or attempt >= attempts - 1:
                stats.record_attempt(success=False, error=str(e))
                if config.log_retries:
                    reason = "Non-retryable error" if not retryable else "Max retries exceeded"
                    logger.log(config.log_level, "%s after %d attempt(s): %s", reason, attempt + 1, e)
                raise

            delay = calculate_delay(
                attempt, config.base_delay, config.exponential_base, config.max_delay
            )
            stats.record_attempt(success=False, delay=delay, error=str(e))

            if config.log_retries:
                logger.log(
                    config.log_level,
                    "Attempt %d/%d failed, retrying in %.2fs: %s",
                    attempt + 1,
                    attempts,
                    delay,
                    e,
                )

            if on_retry:
                on_retry(attempt + 1, e, delay)

            sleep(delay)
