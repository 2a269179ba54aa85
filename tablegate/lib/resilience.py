"""Retry helpers for scans against remote tables.

Counting test units on a database-backed table is a network round trip
that can fail transiently. Scans are retried with exponential backoff
before the failure is recorded on the step.

Retries are driven by tenacity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

import tenacity
from tenacity.wait import wait_base

from tablegate.lib.errors import TablegateError

logger = logging.getLogger(__name__)

__all__ = ["RetryConfig", "retry_operation"]

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Example:
        config = RetryConfig(max_attempts=5, backoff_seconds=2.0)
        count = retry_operation(lambda: expr.execute(), config, "row count")
    """

    max_attempts: int = 3
    backoff_seconds: float = 1.0
    exponential: bool = True
    jitter: bool = True
    # Validation errors are deterministic, retrying them only adds latency
    no_retry_on: Tuple[Type[BaseException], ...] = (TablegateError, TypeError, KeyError)

    @classmethod
    def none(cls) -> "RetryConfig":
        """Single attempt, no waiting."""
        return cls(max_attempts=1, backoff_seconds=0.0, jitter=False)

    def wait_strategy(self) -> wait_base:
        wait: wait_base
        if self.exponential:
            # multiplier * 2^(attempt-1), never less than backoff_seconds
            wait = tenacity.wait_exponential(multiplier=self.backoff_seconds, min=self.backoff_seconds)
        else:
            wait = tenacity.wait_fixed(self.backoff_seconds)
        if self.jitter and self.backoff_seconds > 0:
            wait = wait + tenacity.wait_random(0, self.backoff_seconds * 0.5)
        return wait


def retry_operation(
    operation: Callable[[], T],
    config: Optional[RetryConfig] = None,
    operation_name: str = "operation",
) -> T:
    """Execute an operation with retry logic.

    Args:
        operation: Callable to execute
        config: Retry configuration (default: RetryConfig())
        operation_name: Name for logging

    Returns:
        Result of the operation
    """
    config = config or RetryConfig()

    def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
            operation_name,
            retry_state.attempt_number,
            config.max_attempts,
            exception,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    retryer = tenacity.Retrying(
        stop=tenacity.stop_after_attempt(max(config.max_attempts, 1)),
        wait=config.wait_strategy(),
        retry=tenacity.retry_if_not_exception_type(config.no_retry_on),
        before_sleep=before_sleep_handler,
        reraise=True,
    )

    try:
        return retryer(operation)
    except Exception:
        logger.error("%s failed after %d attempt(s)", operation_name, config.max_attempts)
        raise
