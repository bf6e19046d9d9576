"""
Retry Policy - Bounded retries for transient transport failures.

Used by the telnet/HTTP executor to resend an identical command after a
delay. The delay can stay fixed (backoff_factor=1.0, the device protocol
default) or grow exponentially. Every policy has a hard attempt cap and
can be aborted, which wakes a pending delay immediately.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from hydra_print.core.logging_utils import get_module_logger

logger = get_module_logger("RetryPolicy")

T = TypeVar('T')


class RetryOutcome(Enum):
    """Outcome of a retry operation."""
    SUCCESS = "success"
    EXHAUSTED = "exhausted"  # All retries failed
    ABORTED = "aborted"      # Retry was cancelled


@dataclass
class RetryAttempt:
    """Record of a single retry attempt."""
    attempt_number: int
    started_at: float
    duration_ms: float
    success: bool
    error: Optional[str] = None


@dataclass
class RetryResult:
    """Result of a retry operation."""
    outcome: RetryOutcome
    success: bool
    attempts: List[RetryAttempt] = field(default_factory=list)
    total_duration_ms: float = 0.0
    final_error: Optional[str] = None
    result_data: Any = None

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)


class RetryPolicy:
    """
    Retry policy with a fixed or exponential delay and an attempt cap.

    Usage:
        policy = RetryPolicy.fixed(delay=1.0, max_attempts=30)

        result = await policy.execute_with_result(
            operation=lambda: post_line(line),
            on_retry=lambda attempt, error: logger.warning(
                "Resend %d: %s", attempt, error
            ),
        )
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff_factor: float = 2.0,
        jitter: float = 0.0,
    ):
        """
        Args:
            max_attempts: Maximum number of attempts (including first try)
            base_delay: Delay before the first retry (seconds)
            max_delay: Upper bound for any single delay (seconds)
            backoff_factor: Multiplier per retry; 1.0 keeps the delay fixed
            jitter: Random jitter factor (0.1 = +/-10%)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self._abort_event: Optional[asyncio.Event] = None
        self._aborted = False

    @classmethod
    def fixed(cls, delay: float, max_attempts: int) -> "RetryPolicy":
        """Policy that waits the same ``delay`` before every retry."""
        return cls(
            max_attempts=max_attempts,
            base_delay=delay,
            max_delay=delay,
            backoff_factor=1.0,
            jitter=0.0,
        )

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self) -> None:
        """Stop retrying; a pending delay returns immediately."""
        self._aborted = True
        if self._abort_event is not None:
            self._abort_event.set()

    def reset(self) -> None:
        """Clear the abort flag for reuse."""
        self._aborted = False
        self._abort_event = None

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay before the given attempt.

        Args:
            attempt: Attempt number (1-based, first retry is attempt 2)

        Returns:
            Delay in seconds with jitter applied
        """
        if attempt <= 1:
            return 0.0

        delay = self.base_delay * (self.backoff_factor ** (attempt - 2))
        delay = min(delay, self.max_delay)

        if self.jitter > 0:
            jitter_range = delay * self.jitter
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0.0, delay)

    async def _sleep(self, delay: float) -> None:
        if self._abort_event is None:
            self._abort_event = asyncio.Event()
        if self._aborted:
            return
        try:
            await asyncio.wait_for(self._abort_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def _aborted_result(self, attempts: List[RetryAttempt], start_time: float, last_result: Any) -> RetryResult:
        return RetryResult(
            outcome=RetryOutcome.ABORTED,
            success=False,
            attempts=attempts,
            total_duration_ms=(time.time() - start_time) * 1000,
            final_error="Retry aborted",
            result_data=last_result,
        )

    async def execute_with_result(
        self,
        operation: Callable[[], Awaitable[T]],
        is_success: Callable[[T], bool] = lambda x: x is not None,
        on_retry: Optional[Callable[[int, Optional[str]], None]] = None,
    ) -> RetryResult:
        """
        Execute an operation that returns a result value.

        Exceptions raised by ``operation`` count as failed attempts; only
        cancellation propagates.

        Args:
            operation: Async function returning a result
            is_success: Function to determine if result indicates success
            on_retry: Optional callback called before each retry

        Returns:
            RetryResult with result_data containing the final result
        """
        attempts: List[RetryAttempt] = []
        start_time = time.time()
        last_error: Optional[str] = None
        last_result: Any = None

        for attempt in range(1, self.max_attempts + 1):
            if self._aborted:
                return self._aborted_result(attempts, start_time, last_result)

            if attempt > 1:
                delay = self.get_delay(attempt)
                if on_retry:
                    on_retry(attempt, last_error)
                logger.debug(
                    "Retry attempt %d/%d after %.2fs delay",
                    attempt, self.max_attempts, delay
                )
                await self._sleep(delay)
                if self._aborted:
                    return self._aborted_result(attempts, start_time, last_result)

            attempt_start = time.time()
            try:
                result = await operation()
                last_result = result
                attempt_duration = (time.time() - attempt_start) * 1000
                success = is_success(result)

                attempts.append(RetryAttempt(
                    attempt_number=attempt,
                    started_at=attempt_start,
                    duration_ms=attempt_duration,
                    success=success,
                ))

                if success:
                    return RetryResult(
                        outcome=RetryOutcome.SUCCESS,
                        success=True,
                        attempts=attempts,
                        total_duration_ms=(time.time() - start_time) * 1000,
                        result_data=result,
                    )
                last_error = "Result check failed"

            except Exception as e:
                attempt_duration = (time.time() - attempt_start) * 1000
                last_error = str(e) or type(e).__name__
                attempts.append(RetryAttempt(
                    attempt_number=attempt,
                    started_at=attempt_start,
                    duration_ms=attempt_duration,
                    success=False,
                    error=last_error,
                ))
                logger.debug(
                    "Attempt %d failed: %s (%.1fms)",
                    attempt, last_error, attempt_duration
                )

        return RetryResult(
            outcome=RetryOutcome.EXHAUSTED,
            success=False,
            attempts=attempts,
            total_duration_ms=(time.time() - start_time) * 1000,
            final_error=last_error,
            result_data=last_result,
        )


__all__ = ["RetryAttempt", "RetryOutcome", "RetryPolicy", "RetryResult"]
