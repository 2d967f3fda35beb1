"""
Retry Policy

One reusable policy for oracle calls: retry only what the predicate marks
retryable (rate limits by default) with exponential backoff plus random
jitter; everything else propagates on the first failure.

Delay before retry n (n = 1, 2, ...):
    min(base_delay * multiplier ** (n - 1), max_delay) + uniform(0, jitter)

With the defaults (4 attempts, 5s base, x2) the nominal waits are 5s, 10s
and 20s before attempts 2, 3 and 4.

Example:
    >>> policy = RetryPolicy.from_config(config)
    >>> payload = await policy.call(lambda: llm.complete_json(prompt))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from lexis_kg.providers.base import OracleError, OracleRateLimitError

if TYPE_CHECKING:
    from lexis_kg.config import LexisConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(OracleError):
    """A retryable failure persisted through every attempt."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def is_rate_limit(error: BaseException) -> bool:
    return isinstance(error, OracleRateLimitError)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry settings applied uniformly to oracle calls.

    Attributes:
        max_attempts: Total attempts including the first call
        base_delay: First backoff delay in seconds
        multiplier: Backoff growth factor per attempt
        jitter: Upper bound of the uniform random delay added to each wait
        max_delay: Cap for the exponential part of one wait
        retryable: Predicate deciding which exceptions are retried
        sleep: Awaitable sleep, replaceable in tests
    """

    max_attempts: int = 4
    base_delay: float = 5.0
    multiplier: float = 2.0
    jitter: float = 1.0
    max_delay: float = 60.0
    retryable: Callable[[BaseException], bool] = is_rate_limit
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_config(cls, config: LexisConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            multiplier=config.retry_multiplier,
            jitter=config.retry_jitter,
            max_delay=config.retry_max_delay,
        )

    def nominal_delays(self) -> list[float]:
        """Backoff before each retry, without jitter."""
        return [
            min(self.base_delay * self.multiplier ** n, self.max_delay)
            for n in range(self.max_attempts - 1)
        ]

    def _retrying(
        self,
        on_retry: Callable[[int, BaseException, float], None] | None,
    ) -> AsyncRetrying:
        def _before_sleep(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            delay = state.next_action.sleep if state.next_action else 0.0
            logger.warning(
                f"Retryable oracle failure (attempt {state.attempt_number}/"
                f"{self.max_attempts}), retrying in {delay:.1f}s: {error}"
            )
            if on_retry is not None and error is not None:
                on_retry(state.attempt_number, error, delay)

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=(
                wait_exponential(
                    multiplier=self.base_delay,
                    exp_base=self.multiplier,
                    max=self.max_delay,
                )
                + wait_random(0, self.jitter)
            ),
            retry=retry_if_exception(self.retryable),
            before_sleep=_before_sleep,
            sleep=self.sleep,
            reraise=False,
        )

    async def call(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        on_retry: Callable[[int, BaseException, float], None] | None = None,
    ) -> T:
        """
        Await ``fn()`` under this policy.

        Args:
            fn: Zero-argument coroutine factory, called once per attempt
            on_retry: Called with (attempt, error, delay) before each backoff

        Raises:
            RetryExhaustedError: Retryable failure on every attempt
            Exception: Any non-retryable failure, unchanged, on first occurrence
        """
        try:
            async for attempt in self._retrying(on_retry):
                with attempt:
                    return await fn()
        except RetryError as e:
            last = e.last_attempt.exception()
            raise RetryExhaustedError(self.max_attempts, last or e) from last
        raise AssertionError("unreachable")  # pragma: no cover
