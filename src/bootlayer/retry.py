"""
Bounded retry-with-backoff for every external action.

Wraps tenacity so that all callers share one policy type, one log format
and one terminal error (``RetryExhaustedError``).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from bootlayer.core.errors import ConfigurationError, RetryExhaustedError

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Parameters of a bounded retry loop.

    Delay after failed attempt ``n`` is ``base_delay * multiplier ** (n - 1)``
    capped at ``max_delay`` when exponential, otherwise ``base_delay``.
    """

    max_attempts: int = 5
    base_delay: float = 10.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    exponential: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError(
                "Retry policy needs at least one attempt",
                details={"max_attempts": self.max_attempts},
            )
        if self.base_delay < 0:
            raise ConfigurationError(
                "Retry delay cannot be negative", details={"base_delay": self.base_delay}
            )
        if self.multiplier < 1:
            raise ConfigurationError(
                "Backoff multiplier must be >= 1", details={"multiplier": self.multiplier}
            )
        if self.max_delay < self.base_delay:
            raise ConfigurationError(
                "Retry delay cap is below the base delay",
                details={"base_delay": self.base_delay, "max_delay": self.max_delay},
            )

    @classmethod
    def fixed(cls, max_attempts: int = 5, delay: float = 10.0) -> RetryPolicy:
        return cls(
            max_attempts=max_attempts,
            base_delay=delay,
            multiplier=1.0,
            max_delay=delay,
            exponential=False,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        if not self.exponential:
            return self.base_delay
        try:
            delay = self.base_delay * self.multiplier ** (attempt - 1)
        except OverflowError:
            return self.max_delay
        return min(delay, self.max_delay)

    def delays(self) -> list[float]:
        """All inter-attempt delays, in order."""
        return [self.delay_for(n) for n in range(1, self.max_attempts)]

    def wait_strategy(self) -> Any:
        if not self.exponential:
            return wait_fixed(self.base_delay)
        return wait_exponential(
            multiplier=self.base_delay,
            exp_base=self.multiplier,
            min=0,
            max=self.max_delay,
        )


DEFAULT_POLICY = RetryPolicy()
DOWNLOAD_POLICY = RetryPolicy(max_attempts=5, base_delay=2.0, multiplier=2.0, max_delay=60.0)
ROLLBACK_POLICY = RetryPolicy.fixed(max_attempts=2, delay=1.0)


def _is_retryable(exc: BaseException) -> bool:
    return not getattr(exc, "fatal", False)


class RetryExecutor:
    """Runs a unit of work under a ``RetryPolicy``."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.policy = policy or DEFAULT_POLICY
        self._sleep = sleep

    def with_policy(self, policy: RetryPolicy) -> RetryExecutor:
        """Return an executor sharing this one's sleep function."""
        return RetryExecutor(policy, sleep=self._sleep)

    def run(
        self,
        work: Callable[[], T],
        description: str,
        on_exhausted: Callable[[BaseException | None], Any] | None = None,
    ) -> T:
        """Execute ``work``, retrying transient failures.

        Fatal errors propagate on the first attempt. When every attempt
        fails, ``on_exhausted`` is invoked with the last error and
        ``RetryExhaustedError`` is raised.
        """

        def before_sleep(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            logger.warning(
                "retry_attempt_failed",
                description=description,
                attempt=state.attempt_number,
                max_attempts=self.policy.max_attempts,
                error_type=type(error).__name__ if error else None,
                error=str(error) if error else None,
                next_delay=state.next_action.sleep if state.next_action else None,
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=self.policy.wait_strategy(),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=False,
        )

        try:
            return retrying(work)
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            attempts = exc.last_attempt.attempt_number
            logger.error(
                "retry_exhausted",
                description=description,
                attempts=attempts,
                error_type=type(last_error).__name__ if last_error else None,
                error=str(last_error) if last_error else None,
            )
            if on_exhausted is not None:
                on_exhausted(last_error)
            raise RetryExhaustedError(description, attempts, last_error) from last_error
