"""
Retry and pacing helpers

One BackoffPolicy drives every delay in the system: the fixed short delay
between network retries, exponential backoff on throttling, and the
adaptive jittered delay the mirroring loop uses between order attempts.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
    wait_random_exponential,
)

from .errors import ErrorKind, classify_error, is_retryable

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    """Delay schedule shared by the network wrapper and the mirroring loop"""
    max_attempts: int = 3
    base_delay: float = 0.6          # fixed delay between transient retries
    order_build_delay: float = 0.4   # fixed delay between order-signing retries
    orderbook_delay: float = 0.35    # base for the adaptive loop delay
    jitter_fraction: float = 0.1
    max_delay: float = 30.0
    fast_attempts: int = 2

    @classmethod
    def from_settings(cls, settings) -> "BackoffPolicy":
        return cls(
            max_attempts=settings.network_retries,
            base_delay=settings.network_delay,
            order_build_delay=settings.order_build_delay,
            orderbook_delay=settings.orderbook_delay,
            jitter_fraction=settings.jitter_fraction,
            max_delay=settings.max_delay,
            fast_attempts=settings.fast_attempts,
        )

    def jittered(self, seconds: float) -> float:
        """Spread a delay by +/- jitter_fraction / 2"""
        jitter = seconds * self.jitter_fraction * (random.random() - 0.5)
        return max(0.0, seconds + jitter)

    def adaptive(self, scale: float) -> float:
        """Loop delay that grows with the amount still to execute"""
        factor = min(2.0, max(0.5, scale / 100))
        return self.orderbook_delay * factor

    def retry_wait(self, fixed_delay: Optional[float] = None) -> Callable[[RetryCallState], float]:
        """
        tenacity wait strategy for a failed call

        Throttled failures get full-jitter exponential backoff capped at
        max_delay; everything else waits the fixed delay.
        """
        fixed = wait_fixed(self.base_delay if fixed_delay is None else fixed_delay)
        throttled = wait_random_exponential(multiplier=self.base_delay, max=self.max_delay)

        def wait(retry_state: RetryCallState) -> float:
            if classify_error(retry_state.outcome.exception()) == ErrorKind.THROTTLED:
                return throttled(retry_state)
            return fixed(retry_state)

        return wait

    def should_delay(self, retry: int) -> bool:
        return retry >= self.fast_attempts

    async def sleep_adaptive(self, scale: float):
        await asyncio.sleep(self.jittered(self.adaptive(scale)))


async def resilient_call(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    policy: BackoffPolicy,
    label: str = "call",
    delay: Optional[float] = None,
    **kwargs: Any,
) -> T:
    """
    Await fn(*args, **kwargs), retrying transient and throttled failures

    Transient failures wait a fixed delay (``delay`` or policy.base_delay),
    throttled ones back off exponentially. Anything else, or the last
    failed attempt, is re-raised.
    """
    attempts = max(1, policy.max_attempts)

    def log_retry(retry_state: RetryCallState):
        error = retry_state.outcome.exception()
        logger.warning(
            f"[RETRY] {label} attempt {retry_state.attempt_number}/{attempts} failed "
            f"({classify_error(error).value}: {error}), retrying in {retry_state.next_action.sleep:.2f}s"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=policy.retry_wait(delay),
        retry=retry_if_exception(is_retryable),
        before_sleep=log_retry,
        sleep=asyncio.sleep,
        reraise=True,
    )
    return await retrying(fn, *args, **kwargs)
