"""Retry policy with exponential backoff for agent calls."""

import asyncio
import logging
from typing import Optional, Tuple, Type

from ..config.dispatch_config import RetryConfig
from ..exceptions import AgentError

logger = logging.getLogger(__name__)


class RetryPolicy:
    """
    Decides whether and when a failed agent call is retried.

    PATTERN: delay = min(initial * multiplier ** attempt, max)
    CRITICAL: Only AgentError (including timeouts) and asyncio timeouts are retryable
    """

    retryable_errors: Tuple[Type[BaseException], ...] = (AgentError, asyncio.TimeoutError)

    def __init__(self, config: RetryConfig, max_retries: Optional[int] = None):
        """
        Initialize retry policy.

        Args:
            config: Backoff settings
            max_retries: Overrides config.max_retries
        """
        self.config = config
        self.max_retries = config.max_retries if max_retries is None else max_retries
        self.logger = logging.getLogger(__name__)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def calculate_delay(self, attempt: int) -> float:
        """
        Delay in milliseconds before retry number attempt + 1.

        Args:
            attempt: Zero-based index of the attempt that just failed

        Returns:
            Delay in milliseconds
        """
        delay = self.config.initial_delay_ms * (self.config.backoff_multiplier ** attempt)
        return min(delay, self.config.max_delay_ms)

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, self.retryable_errors)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Whether another attempt may follow the failed zero-based attempt."""
        return self.is_retryable(error) and attempt < self.max_retries

    async def wait(self, attempt: int) -> None:
        delay_ms = self.calculate_delay(attempt)
        self.logger.debug(f"Backing off {delay_ms:.0f}ms before attempt {attempt + 2}")
        await asyncio.sleep(delay_ms / 1000)
