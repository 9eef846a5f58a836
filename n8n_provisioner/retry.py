"""Retry policy and generic async retry helper.

Replaces the fixed sleeps scattered through the old deployment scripts with
an explicit policy object, so the timing of activation and verification can
be tested without any network calls.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class Backoff(str, Enum):
    """How the delay grows between attempts."""
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy.

    Attributes:
        max_attempts: Total number of attempts (first try included)
        base_delay: Delay after the first failed attempt, in seconds
        multiplier: Growth factor (step for linear, ratio for exponential)
        backoff: Growth mode
        max_delay: Optional cap applied to every delay
    """
    max_attempts: int = 3
    base_delay: float = 2.0
    multiplier: float = 1.0
    backoff: Backoff = Backoff.LINEAR
    max_delay: Optional[float] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")
        if self.backoff == Backoff.LINEAR and self.multiplier <= 0:
            raise ValueError("linear backoff needs a positive multiplier")
        if self.backoff == Backoff.EXPONENTIAL and self.multiplier < 1:
            raise ValueError("exponential backoff needs a multiplier >= 1")

    def delay(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")

        if self.backoff == Backoff.FIXED:
            delay = self.base_delay
        elif self.backoff == Backoff.LINEAR:
            delay = self.base_delay * self.multiplier * attempt
        else:
            delay = self.base_delay * (self.multiplier ** (attempt - 1))

        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def delays(self) -> List[float]:
        """All delays a fully failing run would wait, in order."""
        return [self.delay(attempt) for attempt in range(1, self.max_attempts)]


async def retry_async(
    operation: Callable[[int], Awaitable[Any]],
    policy: RetryPolicy,
    *,
    is_success: Callable[[Any], bool] = bool,
    sleep: Sleep = asyncio.sleep,
    description: str = "operation",
) -> Any:
    """Run ``operation(attempt)`` until ``is_success(result)`` or the budget is spent.

    The operation receives the 1-based attempt number. Exceptions raised by the
    operation propagate; callers that want to retry on errors convert them to
    a failing result first.

    Returns:
        The first successful result, or the result of the last attempt.
    """
    result = None
    for attempt in range(1, policy.max_attempts + 1):
        result = await operation(attempt)
        if is_success(result):
            return result

        if attempt < policy.max_attempts:
            delay = policy.delay(attempt)
            logger.debug(
                f"{description}: attempt {attempt}/{policy.max_attempts} failed, "
                f"next try in {delay:.1f}s"
            )
            await sleep(delay)

    logger.debug(f"{description}: gave up after {policy.max_attempts} attempts")
    return result
