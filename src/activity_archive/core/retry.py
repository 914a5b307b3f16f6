"""
Exponential backoff for remote activity page requests.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Type


logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Backoff settings for one remote request.

    Attributes:
        max_attempts: Attempts per request, including the first
        initial_delay_ms: Delay before the first retry
        max_delay_ms: Upper bound for any single delay
        backoff_multiplier: Growth factor between retries
        jitter: Spread each delay by up to 25% either way
    """
    max_attempts: int = 3
    initial_delay_ms: float = 1000.0
    max_delay_ms: float = 8000.0
    backoff_multiplier: float = 2.0
    jitter: bool = True


@dataclass
class RetryResult:
    """Outcome of retry_with_backoff: the value, or the error that ended it."""
    success: bool
    result: Any = None
    attempts: int = 0
    error: Optional[Exception] = None


def calculate_delay(retry_number: int, config: RetryConfig) -> float:
    """Seconds to wait before retry ``retry_number`` (0-based)."""
    delay_ms = config.initial_delay_ms * (config.backoff_multiplier ** retry_number)
    delay_ms = min(delay_ms, config.max_delay_ms)
    if config.jitter:
        delay_ms *= random.uniform(0.75, 1.25)
    return delay_ms / 1000.0


def retry_with_backoff(
    operation: Callable[[], Any],
    config: RetryConfig,
    retry_on: Tuple[Type[Exception], ...] = (Exception,),
    operation_name: str = "request",
    sleep: Callable[[float], None] = time.sleep,
) -> RetryResult:
    """
    Run ``operation`` until it succeeds or attempts run out.

    Only exceptions in ``retry_on`` are retried; anything else ends the loop
    at once. Failures are returned in the result, not raised, so the caller
    decides how to surface them.

    Args:
        operation: Zero-argument callable performing one request
        config: Backoff settings
        retry_on: Exception types worth another attempt
        operation_name: Label used in log messages
        sleep: Sleep function (tests pass a recorder)

    Returns:
        RetryResult with the value on success or the last error on failure
    """
    last_error: Optional[Exception] = None

    for attempt in range(1, config.max_attempts + 1):
        try:
            value = operation()
        except retry_on as e:
            last_error = e
            logger.warning(f"{operation_name} failed (attempt {attempt}/{config.max_attempts}): {e}")
            if attempt < config.max_attempts:
                sleep(calculate_delay(attempt - 1, config))
            continue
        except Exception as e:
            logger.error(f"{operation_name} failed with non-retryable error: {e}")
            return RetryResult(success=False, attempts=attempt, error=e)

        if attempt > 1:
            logger.info(f"{operation_name} succeeded on attempt {attempt}")
        return RetryResult(success=True, result=value, attempts=attempt)

    logger.error(f"{operation_name} gave up after {config.max_attempts} attempts")
    return RetryResult(success=False, attempts=config.max_attempts, error=last_error)
